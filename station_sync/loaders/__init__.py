"""Data loaders for target stores."""

from .base import BaseLoader
from .mysql_loader import MySQLLoader

__all__ = [
    "BaseLoader",
    "MySQLLoader",
]
