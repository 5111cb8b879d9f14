"""
Table Migration Toolkit

Moves a table's schema and data from SQL Server to Snowflake and verifies the
result with per-column statistical fingerprints.

Supports:
- Existence checks against the target catalog
- Schema translation through a pluggable oracle with execution feedback
- Bounded-memory batch data movement (staged bulk load or literal inserts)
- Reconciliation reports comparing null and distinct counts per column
"""

__version__ = "0.1.0"
