"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime


class MigrationStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class OracleProviderEnum(str, Enum):
    CORTEX = "cortex"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    RULES = "rules"


class ExistingTablePolicyEnum(str, Enum):
    TRUNCATE = "truncate"
    APPEND = "append"
    FAIL = "fail"


class MissingColumnPolicyEnum(str, Enum):
    IGNORE = "ignore"
    WARN = "warn"
    FAIL = "fail"


# Request Models
class MigrationCreate(BaseModel):
    name: str = "migration"
    tables: List[str] = Field(..., min_length=1)
    oracle_provider: Optional[OracleProviderEnum] = None
    max_translation_attempts: Optional[int] = Field(default=None, ge=1)
    chunk_size: Optional[int] = Field(default=None, ge=1)
    on_existing_table: Optional[ExistingTablePolicyEnum] = None
    reconcile: Optional[bool] = None
    missing_column_policy: Optional[MissingColumnPolicyEnum] = None

    def overrides(self) -> Dict[str, Any]:
        """Config fields set on this request, as plain values."""
        values = self.model_dump(exclude={"name", "tables"}, exclude_none=True)
        return {k: v.value if isinstance(v, Enum) else v for k, v in values.items()}


class ReconcileRequest(BaseModel):
    tables: List[str] = Field(..., min_length=1)
    missing_column_policy: Optional[MissingColumnPolicyEnum] = None


# Response Models
class MigrationResponse(BaseModel):
    id: str
    name: str
    status: MigrationStatusEnum
    tables: List[str]
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    runs: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None


class MigrationListResponse(BaseModel):
    migrations: List[MigrationResponse]
    total: int


class ReconcileResponse(BaseModel):
    reports: List[Dict[str, Any]]
    matched: bool
