"""Shared fixtures for the tablemigrate test suite."""

import pytest

from tablemigrate.models.migration import MigrationConfig
from tablemigrate.models.schema import ColumnDefinition, TableIdentifier

from tests.helpers.fakes import InMemorySource, InMemoryTarget, make_rows

EMPLOYEES_DDL = """CREATE TABLE [dbo].[Employees] (
    [EmployeeID] INT IDENTITY(1,1) NOT NULL,
    [FirstName] NVARCHAR(50) COLLATE SQL_Latin1_General_CP1_CI_AS NOT NULL,
    [Dept] VARCHAR(10) NULL,
    CONSTRAINT [PK_Employees] PRIMARY KEY CLUSTERED ([EmployeeID] ASC)
)"""

EMPLOYEE_COLUMNS = [
    ColumnDefinition(name="EmployeeID", source_type="int", nullable=False, is_identity=True, is_primary_key=True),
    ColumnDefinition(name="FirstName", source_type="nvarchar", max_length=50, nullable=False),
    ColumnDefinition(name="Dept", source_type="varchar", max_length=10),
]


@pytest.fixture
def employees() -> TableIdentifier:
    """dbo.Employees migrated to EMPLOYEES."""
    return TableIdentifier.parse("dbo.Employees:EMPLOYEES")


@pytest.fixture
def source() -> InMemorySource:
    """Source holding 25 employee rows."""
    return InMemorySource(
        tables={"dbo.Employees": make_rows(25)},
        ddl={"dbo.Employees": EMPLOYEES_DDL},
        columns={"dbo.Employees": list(EMPLOYEE_COLUMNS)},
    )


@pytest.fixture
def target() -> InMemoryTarget:
    """Empty target."""
    return InMemoryTarget()


@pytest.fixture
def config(tmp_path) -> MigrationConfig:
    """Config using the rule-based oracle and no knowledge service."""
    return MigrationConfig(
        name="test",
        oracle_provider="rules",
        knowledge_provider="none",
        chunk_size=10,
        writer_count=2,
        backoff_factor=0.0,
        output_dir=str(tmp_path / "out"),
    )
