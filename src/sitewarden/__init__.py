"""sitewarden — reconcile a directory of TOML service definitions into
reverse-proxy configuration.

Pipeline: Scanner → Reconciler → Store ⇄ state machine → Applier → ArtifactWriter,
with the Cleaner reaping orphaned rows independently.
"""
