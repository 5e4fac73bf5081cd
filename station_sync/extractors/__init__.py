"""Data extractors for source stores."""

from .base import BaseExtractor, ExtractionResult
from .supabase_extractor import SupabaseExtractor
from .sql_dump_extractor import SqlDumpExtractor, parse_dump

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "SupabaseExtractor",
    "SqlDumpExtractor",
    "parse_dump",
]
