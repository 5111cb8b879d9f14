"""Target warehouse connectors."""

from .base import TargetConnector
from .snowflake_loader import SnowflakeLoader

__all__ = [
    "TargetConnector",
    "SnowflakeLoader",
]
