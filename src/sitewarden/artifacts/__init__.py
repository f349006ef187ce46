"""Proxy configuration artifact writers."""

from sitewarden.artifacts.writer import ArtifactWriter, FileArtifactWriter, render

__all__ = ["ArtifactWriter", "FileArtifactWriter", "render"]
