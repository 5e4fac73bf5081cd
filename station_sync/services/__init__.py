"""Service layer for the sync tools."""

from .rename_rules import RenameRegistry, STATION_2100_RULES
from .schema_translator import SchemaTranslator, infer_column_type, map_source_type
from .batch_copier import BatchCopier
from .resource_sync import ResourceDefinition, ResourceSyncer, USERS, PROFILES

__all__ = [
    "RenameRegistry",
    "STATION_2100_RULES",
    "SchemaTranslator",
    "infer_column_type",
    "map_source_type",
    "BatchCopier",
    "ResourceDefinition",
    "ResourceSyncer",
    "USERS",
    "PROFILES",
]
