"""Translate -> execute -> diagnose -> retry loop for schema translation."""

import logging
from typing import List, Optional

from .ddl_executor import DDLExecutor
from .knowledge import KnowledgeService, NullKnowledgeService, build_knowledge_query
from .llm_inference import (
    DEFAULT_DOCUMENTATION_CONTEXT,
    DEFAULT_ERROR_MESSAGE,
    TranslationOracle,
)
from .timeouts import TimeoutRunner
from .type_mapping import mapping_hints
from ..exceptions import FatalTranslationFailure, OperationTimeout, TranslationFailure
from ..models.migration import (
    ExecutionResult,
    TranslationAttempt,
    TranslationOutcome,
    TranslationProposal,
    TranslationState,
)
from ..models.schema import SchemaDefinition

logger = logging.getLogger(__name__)


class TranslationOrchestrator:
    """
    Drives schema translation until the target accepts the DDL.

    States:
        INIT -> TRANSLATING -> EXECUTING -> SUCCESS
                                         -> NEEDS_DIAGNOSTICS -> TRANSLATING ...
                                                              -> FATAL_FAILURE

    Each attempt is executed against the target; the first one that succeeds
    is committed. The attempt history is per run and never shared, so one
    orchestrator can serve several tables concurrently.
    """

    def __init__(
        self,
        oracle: TranslationOracle,
        executor: DDLExecutor,
        knowledge: Optional[KnowledgeService] = None,
        max_attempts: int = 5,
        oracle_timeout: Optional[float] = 120.0,
        knowledge_timeout: Optional[float] = 30.0,
        workers: int = 1,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.oracle = oracle
        self.executor = executor
        self.knowledge = knowledge or NullKnowledgeService()
        self.max_attempts = max_attempts
        self.oracle_timeout = oracle_timeout
        self.knowledge_timeout = knowledge_timeout
        # one helper per concurrently translated table
        self._runner = TimeoutRunner(workers, name="tablemigrate-oracle")

    def run(self, schema: SchemaDefinition, target_table: str = "") -> TranslationOutcome:
        """
        Translate a source schema and create it on the target.

        Returns:
            TranslationOutcome with the committed DDL and every attempt made

        Raises:
            FatalTranslationFailure: After ``max_attempts`` failed attempts; the
                exception carries the full history
        """
        history: List[TranslationAttempt] = []
        transitions = [TranslationState.INIT]

        hints = mapping_hints(schema.columns)
        prior_candidate = ""
        diagnostics = hints or DEFAULT_DOCUMENTATION_CONTEXT
        prior_error = DEFAULT_ERROR_MESSAGE

        while True:
            attempt_number = len(history) + 1
            logger.info(f"Translation attempt {attempt_number}/{self.max_attempts}")
            transitions.append(TranslationState.TRANSLATING)

            candidate = ""
            explanation = ""
            try:
                proposal = self._propose(schema.ddl, prior_candidate, diagnostics, prior_error, target_table)
                candidate = proposal.ddl
                explanation = proposal.explanation
            except TranslationFailure as e:
                logger.warning(f"Attempt {attempt_number}: translation failed: {e.message}")
                result = ExecutionResult.failure(e.message)
            else:
                transitions.append(TranslationState.EXECUTING)
                result = self.executor.execute(candidate)

            history.append(TranslationAttempt(
                attempt_number=attempt_number,
                candidate_ddl=candidate,
                diagnostic_context=diagnostics,
                prior_error=prior_error,
                result=result,
                explanation=explanation,
            ))

            if result.ok:
                transitions.append(TranslationState.SUCCESS)
                logger.info(f"DDL committed on attempt {attempt_number}")
                return TranslationOutcome(
                    committed_ddl=candidate,
                    attempts=history,
                    final_state=TranslationState.SUCCESS,
                    transitions=transitions,
                )

            logger.warning(f"Attempt {attempt_number} failed: {result.error_message}")
            transitions.append(TranslationState.NEEDS_DIAGNOSTICS)

            if len(history) >= self.max_attempts:
                transitions.append(TranslationState.FATAL_FAILURE)
                raise FatalTranslationFailure(
                    f"Schema translation failed after {len(history)} attempts: "
                    f"{result.error_message}",
                    attempts=history,
                    details={
                        "table": target_table or schema.table_name,
                        "transitions": [s.value for s in transitions],
                    },
                )

            diagnostics = self._diagnose(result.error_message or "", hints)
            if candidate:
                prior_candidate = candidate
            prior_error = result.error_message or DEFAULT_ERROR_MESSAGE

    def _propose(
        self,
        source_ddl: str,
        prior_candidate: str,
        diagnostics: str,
        prior_error: str,
        target_table: str,
    ) -> TranslationProposal:
        """Ask the oracle for a candidate; every failure becomes TranslationFailure."""
        try:
            proposal = self._runner.call(
                self.oracle.translate,
                self.oracle_timeout,
                source_ddl,
                prior_candidate,
                diagnostics,
                prior_error,
                target_table=target_table,
                description="translation oracle",
            )
        except TranslationFailure:
            raise
        except OperationTimeout as e:
            raise TranslationFailure(f"Translation oracle timed out: {e.message}") from e
        except Exception as e:
            raise TranslationFailure(f"Translation oracle error: {e}") from e

        if not proposal or not proposal.ddl.strip():
            raise TranslationFailure("Translation oracle returned no DDL")

        if proposal.explanation:
            logger.info(f"Oracle explanation: {proposal.explanation}")
        return proposal

    def _diagnose(self, error_message: str, hints: str) -> str:
        """Fetch documentation for an error, falling back to the default context."""
        query = build_knowledge_query(error_message)
        documentation = ""

        if query:
            try:
                documentation = self._runner.call(
                    self.knowledge.search,
                    self.knowledge_timeout,
                    query,
                    description="knowledge search",
                ) or ""
            except Exception as e:
                logger.warning(f"Knowledge search failed, continuing without it: {e}")
                documentation = ""

        parts = [p for p in (documentation.strip(), hints) if p]
        return "\n\n".join(parts) if parts else DEFAULT_DOCUMENTATION_CONTEXT
