"""Migration orchestrator - coordinates check, translation, data movement and reconciliation."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .exceptions import (
    ColumnMismatchError,
    FatalTranslationFailure,
    MigrationCancelled,
    MigrationProgressError,
    TableMigrateError,
    TargetNotEmptyError,
)
from .extractors.base import SourceConnector
from .extractors.sqlserver_extractor import SQLServerExtractor
from .loaders.base import TargetConnector
from .loaders.snowflake_loader import SnowflakeLoader
from .models.migration import (
    ExistingTablePolicy,
    MigrationConfig,
    MigrationRun,
    MigrationStatus,
    MigrationStep,
    utcnow,
)
from .models.schema import TableIdentifier
from .services.data_mover import BatchDataMover
from .services.ddl_executor import DDLExecutor
from .services.knowledge import (
    CortexSearchKnowledgeService,
    HTTPKnowledgeService,
    KnowledgeService,
    NullKnowledgeService,
)
from .services.llm_inference import (
    LLMTranslationOracle,
    RuleBasedTranslationOracle,
    TranslationOracle,
)
from .services.reconciliation import ReconciliationEngine
from .services.report_builder import ReportBuilder
from .services.schema_checker import SchemaExistenceChecker
from .services.translator import TranslationOrchestrator

logger = logging.getLogger(__name__)


def build_oracle(config: MigrationConfig, target: Optional[TargetConnector] = None) -> TranslationOracle:
    """Create the translation oracle named by the configuration."""
    provider = config.oracle_provider
    if provider == "rules":
        return RuleBasedTranslationOracle()
    if provider == "cortex":
        if target is None or not hasattr(target, "cortex_complete"):
            raise ValueError("The cortex oracle needs a Snowflake target connector")
        return LLMTranslationOracle(provider="cortex", model=config.oracle_model, cortex_client=target)
    if provider in ("openai", "anthropic"):
        return LLMTranslationOracle(
            provider=provider,
            model=config.oracle_model,
            api_key=config.oracle_api_key,
        )
    raise ValueError(f"Unsupported oracle provider: {provider}")


def build_knowledge(config: MigrationConfig, target: Optional[TargetConnector] = None) -> KnowledgeService:
    """Create the knowledge service named by the configuration."""
    provider = config.knowledge_provider
    if provider == "none":
        return NullKnowledgeService()
    if provider == "http":
        if not config.knowledge_url:
            raise ValueError("knowledge_url is required for the http knowledge provider")
        return HTTPKnowledgeService(
            url=config.knowledge_url,
            top_k=config.knowledge_top_k,
            timeout=config.knowledge_timeout or 30.0,
        )
    if provider == "cortex":
        if target is None or not hasattr(target, "cortex_search"):
            raise ValueError("The cortex knowledge provider needs a Snowflake target connector")
        return CortexSearchKnowledgeService(
            target,
            service=config.knowledge_service,
            top_k=config.knowledge_top_k,
        )
    raise ValueError(f"Unsupported knowledge provider: {provider}")


class MigrationOrchestrator:
    """
    Orchestrates the migration of one or more tables.

    Handles:
    - Target existence check
    - Schema retrieval and translation with execution feedback
    - Preparing a pre-existing target table
    - Batch data movement
    - Reconciliation and reporting

    Every table gets its own MigrationRun, translation history and queues,
    so several tables can run in parallel through one orchestrator.
    """

    def __init__(
        self,
        config: MigrationConfig,
        source: Optional[SourceConnector] = None,
        target: Optional[TargetConnector] = None,
        oracle: Optional[TranslationOracle] = None,
        knowledge: Optional[KnowledgeService] = None,
        report_builder: Optional[ReportBuilder] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            source: Source connector (SQL Server from the config by default)
            target: Target connector (Snowflake from the config by default)
            oracle: Translation oracle (built from the config by default)
            knowledge: Knowledge service (built from the config by default)
            report_builder: Report builder writing under ``output_dir``
        """
        self.config = config

        self.source = source or self._create_source()
        self.target = target or self._create_target()
        self.oracle = oracle or build_oracle(config, self.target)
        self.knowledge = knowledge or build_knowledge(config, self.target)

        self._setup_directories()
        self.report_builder = report_builder or ReportBuilder(self.reports_dir)

        workers = max(1, config.parallel_workers)
        self.checker = SchemaExistenceChecker(self.target, timeout=config.ddl_timeout, workers=workers)
        self.executor = DDLExecutor(self.target, timeout=config.ddl_timeout, workers=workers)
        self.translator = TranslationOrchestrator(
            oracle=self.oracle,
            executor=self.executor,
            knowledge=self.knowledge,
            max_attempts=config.max_translation_attempts,
            oracle_timeout=config.oracle_timeout,
            knowledge_timeout=config.knowledge_timeout,
            workers=workers,
        )
        self.mover = BatchDataMover(
            self.source,
            self.target,
            chunk_size=config.chunk_size,
            queue_size=config.queue_size,
            writer_count=config.writer_count,
            max_write_retries=config.max_write_retries,
            backoff_factor=config.backoff_factor,
            write_timeout=config.write_timeout,
        )
        self.reconciler = ReconciliationEngine(
            self.source,
            self.target,
            missing_column_policy=config.missing_column_policy,
            chunk_size=config.chunk_size,
            report_builder=self.report_builder,
        )

    def _create_source(self) -> SourceConnector:
        """Create the source connector from the configuration."""
        return SQLServerExtractor(self.config.source)

    def _create_target(self) -> TargetConnector:
        """Create the target connector from the configuration."""
        return SnowflakeLoader(self.config.target)

    def _setup_directories(self):
        """Create output directories."""
        base = Path(self.config.output_dir)
        self.reports_dir = base / "reports"
        self.logs_dir = base / "logs"

        if self.config.save_report:
            for directory in [self.reports_dir, self.logs_dir]:
                directory.mkdir(parents=True, exist_ok=True)

    def run_migration(
        self,
        identifier: TableIdentifier,
        cancel_event: Optional[threading.Event] = None,
    ) -> MigrationRun:
        """
        Run the complete migration of one table.

        Errors never escape: they are recorded on the returned run, which
        ends COMPLETED, FAILED or CANCELLED.

        Returns:
            MigrationRun with stage artifacts and errors
        """
        run = MigrationRun(
            table=identifier,
            name=f"{self.config.name}:{identifier.target_qualified_name}",
        )
        run.started_at = utcnow()

        try:
            # Phase 1: Existence check
            logger.info(f"=== PHASE 1: EXISTENCE CHECK ({identifier}) ===")
            run.status = MigrationStatus.CHECKING
            self._run_check(run)

            # Phase 2: Schema translation or target preparation
            if not run.table_existed:
                logger.info("=== PHASE 2: SCHEMA TRANSLATION ===")
                run.status = MigrationStatus.TRANSLATING
                self._run_translation(run)
            else:
                logger.info("=== PHASE 2: TARGET PREPARATION (table exists) ===")
                self._run_preparation(run)

            # Phase 3: Data movement
            logger.info("=== PHASE 3: DATA MOVEMENT ===")
            run.status = MigrationStatus.LOADING
            self._run_data_move(run, cancel_event)

            # Phase 4: Reconciliation
            if self.config.reconcile:
                logger.info("=== PHASE 4: RECONCILIATION ===")
                run.status = MigrationStatus.RECONCILING
                self._run_reconciliation(run)

            run.status = MigrationStatus.COMPLETED
            logger.info(f"=== MIGRATION COMPLETED ({identifier}) ===")

        except MigrationCancelled as e:
            logger.warning(f"Migration cancelled: {e}")
            run.status = MigrationStatus.CANCELLED
            self._record_error(run, e)

        except Exception as e:
            logger.error(f"Migration failed: {e}")
            run.status = MigrationStatus.FAILED
            self._record_error(run, e)

        finally:
            run.completed_at = utcnow()
            if self.config.save_report:
                try:
                    run.report_path = str(self._save_report(run))
                except OSError as e:
                    logger.error(f"Could not save migration report: {e}")

        return run

    def run_many(
        self,
        identifiers: Optional[Sequence[TableIdentifier]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[MigrationRun]:
        """
        Migrate several independent tables.

        Tables run on a pool of ``parallel_workers`` threads. Without
        ``continue_on_error``, tables that have not started yet are skipped
        after the first failure.

        Returns:
            One MigrationRun per identifier, in input order
        """
        if identifiers is None:
            identifiers = [TableIdentifier.parse(spec) for spec in self.config.tables]
        if not identifiers:
            raise ValueError("No tables to migrate")

        halt = threading.Event()

        def migrate_one(identifier: TableIdentifier) -> MigrationRun:
            if halt.is_set() or (cancel_event is not None and cancel_event.is_set()):
                return self._skipped_run(identifier)
            run = self.run_migration(identifier, cancel_event=cancel_event)
            if not run.succeeded and not self.config.continue_on_error:
                halt.set()
            return run

        workers = max(1, min(self.config.parallel_workers, len(identifiers)))
        logger.info(f"Migrating {len(identifiers)} table(s) with {workers} worker(s)")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tablemigrate-table") as executor:
            runs = list(executor.map(migrate_one, identifiers))

        succeeded = sum(1 for r in runs if r.succeeded)
        logger.info(f"{succeeded}/{len(runs)} table(s) migrated successfully")
        return runs

    def _run_check(self, run: MigrationRun):
        """Run the existence check phase."""
        step = self._start_step(run, "Check target table", "check")
        try:
            run.table_existed = self.checker.exists(run.table)
            self._finish_step(step)
        except Exception as e:
            self._fail_step(run, step, e)
            raise

    def _run_translation(self, run: MigrationRun):
        """Run the schema translation phase."""
        step = self._start_step(run, "Translate schema", "translate")
        try:
            schema = self.source.fetch_source_schema(run.table.source_qualified_name)
            try:
                outcome = self.translator.run(schema, target_table=run.table.target_qualified_name)
            except FatalTranslationFailure as e:
                run.translation_attempts = list(e.attempts)
                raise

            run.translation_attempts = outcome.attempts
            run.committed_ddl = outcome.committed_ddl
            if outcome.attempt_count > 1:
                step.warnings.append(f"DDL committed after {outcome.attempt_count} attempts")
            self._finish_step(step)
        except Exception as e:
            self._fail_step(run, step, e)
            raise

    def _run_preparation(self, run: MigrationRun):
        """Apply the existing-table policy before loading into a table that already existed."""
        step = self._start_step(run, "Prepare existing table", "prepare")
        table_name = run.table.target_qualified_name
        policy = self.config.on_existing_table

        try:
            if policy == ExistingTablePolicy.TRUNCATE:
                self.target.truncate_table(table_name)
            elif policy == ExistingTablePolicy.FAIL:
                existing = self.target.count_rows(table_name)
                if existing:
                    raise TargetNotEmptyError(
                        f"Target table {table_name} already holds {existing} rows",
                        details={"table": table_name, "rows": existing},
                    )
            else:
                warning = f"Appending to existing table {table_name}; reconciliation counts include prior rows"
                logger.warning(warning)
                step.warnings.append(warning)
            self._finish_step(step)
        except Exception as e:
            self._fail_step(run, step, e)
            raise

    def _run_data_move(self, run: MigrationRun, cancel_event: Optional[threading.Event]):
        """Run the data movement phase."""
        step = self._start_step(run, "Move rows", "load")
        try:
            try:
                run.data_move = self.mover.migrate(run.table, cancel_event=cancel_event)
            except MigrationProgressError as e:
                run.data_move = e.result
                raise
            self._finish_step(step)
        except MigrationCancelled as e:
            self._fail_step(run, step, e, status=MigrationStatus.CANCELLED)
            raise
        except Exception as e:
            self._fail_step(run, step, e)
            raise

    def _run_reconciliation(self, run: MigrationRun):
        """Run the reconciliation phase."""
        step = self._start_step(run, "Reconcile", "reconcile")
        try:
            try:
                report = self.reconciler.reconcile(run.table)
            except ColumnMismatchError as e:
                run.reconciliation = e.report
                raise

            run.reconciliation = report
            if not report.matched:
                step.warnings.append(self.report_builder.summarize(report))
            if self.config.save_report:
                self.report_builder.save(
                    report,
                    prefix="reconciliation",
                    name=run.table.target_table,
                )
            self._finish_step(step)
        except Exception as e:
            self._fail_step(run, step, e)
            raise

    def _start_step(self, run: MigrationRun, name: str, stage: str) -> MigrationStep:
        step = run.add_step(name=name, stage=stage)
        step.status = run.status
        step.started_at = utcnow()
        run.current_step = step.id
        return step

    def _finish_step(self, step: MigrationStep):
        step.status = MigrationStatus.COMPLETED
        step.completed_at = utcnow()

    def _fail_step(
        self,
        run: MigrationRun,
        step: MigrationStep,
        error: Exception,
        status: MigrationStatus = MigrationStatus.FAILED,
    ):
        step.status = status
        step.completed_at = utcnow()
        step.errors.append(self._error_dict(error))
        run.failed_stage = step.stage

    def _error_dict(self, error: Exception) -> Dict[str, Any]:
        if isinstance(error, TableMigrateError):
            data = error.to_dict()
        else:
            data = {"error_type": type(error).__name__, "error": str(error), "details": {}}
        data["timestamp"] = utcnow().isoformat()
        return data

    def _record_error(self, run: MigrationRun, error: Exception):
        """Capture an error on the run with the stage it happened in."""
        data = {"stage": run.failed_stage or run.status.value}
        data.update(self._error_dict(error))
        run.errors.append(data)

    def _skipped_run(self, identifier: TableIdentifier) -> MigrationRun:
        run = MigrationRun(
            table=identifier,
            name=f"{self.config.name}:{identifier.target_qualified_name}",
            status=MigrationStatus.CANCELLED,
        )
        run.errors.append({
            "stage": "pending",
            "error_type": "Skipped",
            "error": "Not started because an earlier table failed or the run was cancelled",
            "details": {},
        })
        logger.info(f"Skipping {identifier}")
        return run

    def _save_report(self, run: MigrationRun) -> Path:
        """Save the migration report."""
        return self.report_builder.save(
            run,
            prefix="migration_report",
            name=run.table.target_table,
            output_dir=self.logs_dir,
        )
