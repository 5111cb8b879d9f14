"""Test doubles shared across the test suite."""

from .fakes import (
    FakeConnection,
    InMemorySource,
    InMemoryTarget,
    ScriptedOracle,
    StaticKnowledge,
    make_rows,
)

__all__ = [
    "FakeConnection",
    "InMemorySource",
    "InMemoryTarget",
    "ScriptedOracle",
    "StaticKnowledge",
    "make_rows",
]
