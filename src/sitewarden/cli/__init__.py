"""sitewarden CLI."""
