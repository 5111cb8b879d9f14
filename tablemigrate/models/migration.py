"""Migration execution models: translation attempts, runs and configuration."""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime, timezone
import json
import os
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Outcome of submitting a statement to the target."""
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ExecutionResult:
    """Structured success/failure of a DDL execution or batch write."""
    status: ExecutionStatus
    error_message: Optional[str] = None

    @classmethod
    def success(cls) -> "ExecutionResult":
        return cls(status=ExecutionStatus.SUCCESS)

    @classmethod
    def failure(cls, message: str) -> "ExecutionResult":
        return cls(status=ExecutionStatus.FAILURE, error_message=message)

    @property
    def ok(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class TranslationProposal:
    """Candidate DDL returned by a translation oracle."""
    ddl: str
    explanation: str = ""


class TranslationState(str, Enum):
    """States of the translate -> execute -> diagnose loop."""
    INIT = "init"
    TRANSLATING = "translating"
    EXECUTING = "executing"
    NEEDS_DIAGNOSTICS = "needs_diagnostics"
    SUCCESS = "success"
    FATAL_FAILURE = "fatal_failure"


@dataclass(frozen=True)
class TranslationAttempt:
    """One recorded translation attempt; immutable once appended to history."""
    attempt_number: int
    candidate_ddl: str
    diagnostic_context: str
    prior_error: str
    result: ExecutionResult
    explanation: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def error_message(self) -> Optional[str]:
        return self.result.error_message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "attempt_number": self.attempt_number,
            "candidate_ddl": self.candidate_ddl,
            "diagnostic_context": self.diagnostic_context,
            "prior_error": self.prior_error,
            "explanation": self.explanation,
            "result": self.result.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TranslationOutcome:
    """Committed DDL together with the attempt history that produced it."""
    committed_ddl: str
    attempts: List[TranslationAttempt] = field(default_factory=list)
    final_state: TranslationState = TranslationState.SUCCESS
    transitions: List[TranslationState] = field(default_factory=list)

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "committed_ddl": self.committed_ddl,
            "final_state": self.final_state.value,
            "attempt_count": self.attempt_count,
            "attempts": [a.to_dict() for a in self.attempts],
            "transitions": [s.value for s in self.transitions],
        }


class MigrationStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    CHECKING = "checking"
    TRANSLATING = "translating"
    LOADING = "loading"
    RECONCILING = "reconciling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ExistingTablePolicy(str, Enum):
    """What to do with a target table that already existed before the run."""
    TRUNCATE = "truncate"
    APPEND = "append"
    FAIL = "fail"


@dataclass
class MigrationStep:
    """A single step in a migration run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    stage: str = ""
    status: MigrationStatus = MigrationStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "stage": self.stage,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
            "warnings": self.warnings,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class MigrationRun:
    """A complete migration of one table."""
    table: Any  # TableIdentifier
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    status: MigrationStatus = MigrationStatus.PENDING

    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    steps: List[MigrationStep] = field(default_factory=list)
    current_step: Optional[str] = None

    # Stage artifacts
    table_existed: Optional[bool] = None
    committed_ddl: Optional[str] = None
    translation_attempts: List[TranslationAttempt] = field(default_factory=list)
    data_move: Optional[Any] = None  # MigrationResult
    reconciliation: Optional[Any] = None  # ReconciliationReport

    errors: List[Dict[str, Any]] = field(default_factory=list)
    failed_stage: Optional[str] = None
    report_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "table": self.table.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "steps": [s.to_dict() for s in self.steps],
            "table_existed": self.table_existed,
            "committed_ddl": self.committed_ddl,
            "translation_attempts": [a.to_dict() for a in self.translation_attempts],
            "data_move": self.data_move.to_dict() if self.data_move else None,
            "reconciliation": self.reconciliation.to_dict() if self.reconciliation else None,
            "errors": self.errors,
            "failed_stage": self.failed_stage,
            "report_path": self.report_path,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def succeeded(self) -> bool:
        return self.status == MigrationStatus.COMPLETED

    def add_step(self, name: str, stage: str) -> MigrationStep:
        """Add a new step to the run."""
        step = MigrationStep(name=name, stage=stage)
        self.steps.append(step)
        return step


REDACTED = "***"


@dataclass
class SourceSettings:
    """Connection settings for the SQL Server source."""
    server: str = ""
    port: int = 1433
    database: str = ""
    schema: str = "dbo"
    user: str = ""
    password: Optional[str] = None
    timeout: Optional[float] = 300.0
    login_timeout: float = 30.0
    fetch_size: int = 5000
    ddl_procedure: Optional[str] = None  # e.g. "sp_generate_table_ddl"

    def __post_init__(self):
        self.password = self.password or os.environ.get("SQLSERVER_PASSWORD")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server": self.server,
            "port": self.port,
            "database": self.database,
            "schema": self.schema,
            "user": self.user,
            "password": REDACTED if self.password else None,
            "timeout": self.timeout,
            "login_timeout": self.login_timeout,
            "fetch_size": self.fetch_size,
            "ddl_procedure": self.ddl_procedure,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceSettings":
        return cls(
            server=data.get("server", ""),
            port=data.get("port", 1433),
            database=data.get("database", ""),
            schema=data.get("schema", "dbo"),
            user=data.get("user", ""),
            password=data.get("password"),
            timeout=data.get("timeout", 300.0),
            login_timeout=data.get("login_timeout", 30.0),
            fetch_size=data.get("fetch_size", 5000),
            ddl_procedure=data.get("ddl_procedure"),
        )


@dataclass
class TargetSettings:
    """Connection settings for the Snowflake target."""
    account: str = ""
    user: str = ""
    password: Optional[str] = None
    warehouse: str = ""
    database: str = ""
    schema: str = "PUBLIC"
    role: Optional[str] = None
    timeout: Optional[float] = 300.0
    write_mode: str = "stage"  # stage, insert
    stage_path: str = "tablemigrate"

    def __post_init__(self):
        self.password = self.password or os.environ.get("SNOWFLAKE_PASSWORD")
        if self.write_mode not in ("stage", "insert"):
            raise ValueError(f"Unsupported write mode: {self.write_mode}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "user": self.user,
            "password": REDACTED if self.password else None,
            "warehouse": self.warehouse,
            "database": self.database,
            "schema": self.schema,
            "role": self.role,
            "timeout": self.timeout,
            "write_mode": self.write_mode,
            "stage_path": self.stage_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetSettings":
        return cls(
            account=data.get("account", ""),
            user=data.get("user", ""),
            password=data.get("password"),
            warehouse=data.get("warehouse", ""),
            database=data.get("database", ""),
            schema=data.get("schema", "PUBLIC"),
            role=data.get("role"),
            timeout=data.get("timeout", 300.0),
            write_mode=data.get("write_mode", "stage"),
            stage_path=data.get("stage_path", "tablemigrate"),
        )


@dataclass
class MigrationConfig:
    """Configuration for a migration."""
    name: str = "migration"
    description: str = ""

    # Tables as "source[:target]" specifications
    tables: List[str] = field(default_factory=list)

    source: SourceSettings = field(default_factory=SourceSettings)
    target: TargetSettings = field(default_factory=TargetSettings)

    # Schema translation
    max_translation_attempts: int = 5
    oracle_provider: str = "cortex"  # cortex, openai, anthropic, rules
    oracle_model: str = "mistral-large2"
    oracle_api_key: Optional[str] = None
    oracle_timeout: Optional[float] = 120.0
    knowledge_provider: str = "cortex"  # cortex, http, none
    knowledge_service: str = "SNOWFLAKE_DOCUMENTATION.SHARED.CKE_SNOWFLAKE_DOCS_SERVICE"
    knowledge_url: Optional[str] = None
    knowledge_top_k: int = 3
    knowledge_timeout: Optional[float] = 30.0
    ddl_timeout: Optional[float] = 60.0

    # Data movement
    chunk_size: int = 5000
    queue_size: int = 4
    writer_count: int = 2
    max_write_retries: int = 2
    backoff_factor: float = 1.0
    write_timeout: Optional[float] = 300.0
    on_existing_table: ExistingTablePolicy = ExistingTablePolicy.TRUNCATE

    # Reconciliation
    reconcile: bool = True
    missing_column_policy: str = "warn"  # ignore, warn, fail

    # Execution
    parallel_workers: int = 1
    continue_on_error: bool = True

    # Output
    output_dir: str = "./data"
    save_report: bool = True

    def __post_init__(self):
        if self.max_translation_attempts < 1:
            raise ValueError("max_translation_attempts must be at least 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if self.writer_count < 1 or self.queue_size < 1:
            raise ValueError("writer_count and queue_size must be at least 1")
        if isinstance(self.on_existing_table, str):
            self.on_existing_table = ExistingTablePolicy(self.on_existing_table)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "description": self.description,
            "tables": self.tables,
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "max_translation_attempts": self.max_translation_attempts,
            "oracle_provider": self.oracle_provider,
            "oracle_model": self.oracle_model,
            "oracle_api_key": REDACTED if self.oracle_api_key else None,
            "oracle_timeout": self.oracle_timeout,
            "knowledge_provider": self.knowledge_provider,
            "knowledge_service": self.knowledge_service,
            "knowledge_url": self.knowledge_url,
            "knowledge_top_k": self.knowledge_top_k,
            "knowledge_timeout": self.knowledge_timeout,
            "ddl_timeout": self.ddl_timeout,
            "chunk_size": self.chunk_size,
            "queue_size": self.queue_size,
            "writer_count": self.writer_count,
            "max_write_retries": self.max_write_retries,
            "backoff_factor": self.backoff_factor,
            "write_timeout": self.write_timeout,
            "on_existing_table": self.on_existing_table.value,
            "reconcile": self.reconcile,
            "missing_column_policy": self.missing_column_policy,
            "parallel_workers": self.parallel_workers,
            "continue_on_error": self.continue_on_error,
            "output_dir": self.output_dir,
            "save_report": self.save_report,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        return cls(
            name=data.get("name", "migration"),
            description=data.get("description", ""),
            tables=list(data.get("tables", [])),
            source=SourceSettings.from_dict(data.get("source", {})),
            target=TargetSettings.from_dict(data.get("target", {})),
            max_translation_attempts=data.get("max_translation_attempts", 5),
            oracle_provider=data.get("oracle_provider", "cortex"),
            oracle_model=data.get("oracle_model", "mistral-large2"),
            oracle_api_key=data.get("oracle_api_key"),
            oracle_timeout=data.get("oracle_timeout", 120.0),
            knowledge_provider=data.get("knowledge_provider", "cortex"),
            knowledge_service=data.get(
                "knowledge_service",
                "SNOWFLAKE_DOCUMENTATION.SHARED.CKE_SNOWFLAKE_DOCS_SERVICE",
            ),
            knowledge_url=data.get("knowledge_url"),
            knowledge_top_k=data.get("knowledge_top_k", 3),
            knowledge_timeout=data.get("knowledge_timeout", 30.0),
            ddl_timeout=data.get("ddl_timeout", 60.0),
            chunk_size=data.get("chunk_size", 5000),
            queue_size=data.get("queue_size", 4),
            writer_count=data.get("writer_count", 2),
            max_write_retries=data.get("max_write_retries", 2),
            backoff_factor=data.get("backoff_factor", 1.0),
            write_timeout=data.get("write_timeout", 300.0),
            on_existing_table=data.get("on_existing_table", "truncate"),
            reconcile=data.get("reconcile", True),
            missing_column_policy=data.get("missing_column_policy", "warn"),
            parallel_workers=data.get("parallel_workers", 1),
            continue_on_error=data.get("continue_on_error", True),
            output_dir=data.get("output_dir", "./data"),
            save_report=data.get("save_report", True),
        )

    def with_overrides(self, **overrides: Any) -> "MigrationConfig":
        """Copy of this config with the non-None overrides applied and re-validated."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_json_file(cls, path: str) -> "MigrationConfig":
        """Load a configuration from a JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))
