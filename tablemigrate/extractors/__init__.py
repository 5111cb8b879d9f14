"""Source database connectors."""

from .base import SourceConnector
from .sqlserver_extractor import SQLServerExtractor

__all__ = [
    "SourceConnector",
    "SQLServerExtractor",
]
