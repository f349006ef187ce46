"""sitewarden database layer.

Import ``Store`` from ``sitewarden.db.store``.
"""

from sitewarden.db.connection import Database
from sitewarden.db.models import ConfigArtifact, File, Service
from sitewarden.db.schema import CURRENT_VERSION, SchemaError, ensure_schema

__all__ = [
    "Database",
    "File",
    "Service",
    "ConfigArtifact",
    "CURRENT_VERSION",
    "SchemaError",
    "ensure_schema",
]
