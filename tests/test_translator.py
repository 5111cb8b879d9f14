"""Tests for the translate -> execute -> diagnose retry loop."""

import time

import pytest

from tablemigrate.exceptions import FatalTranslationFailure, TranslationFailure
from tablemigrate.models.migration import TranslationState
from tablemigrate.models.schema import ColumnDefinition, SchemaDefinition
from tablemigrate.services.ddl_executor import DDLExecutor
from tablemigrate.services.llm_inference import (
    DEFAULT_DOCUMENTATION_CONTEXT,
    DEFAULT_ERROR_MESSAGE,
)
from tablemigrate.services.translator import TranslationOrchestrator

from tests.helpers.fakes import InMemoryTarget, ScriptedOracle, StaticKnowledge

SOURCE_DDL = "CREATE TABLE [dbo].[T] ([A] INT NOT NULL)"
GOOD_DDL = "CREATE TABLE T (A INTEGER NOT NULL);"


def _orchestrator(oracle, target, knowledge=None, max_attempts=5, **kwargs):
    return TranslationOrchestrator(
        oracle=oracle,
        executor=DDLExecutor(target),
        knowledge=knowledge,
        max_attempts=max_attempts,
        **kwargs
    )


class TestTranslationOrchestrator:
    def test_first_attempt_succeeds(self):
        target = InMemoryTarget()
        outcome = _orchestrator(ScriptedOracle([GOOD_DDL]), target).run(SchemaDefinition(ddl=SOURCE_DDL))

        assert outcome.committed_ddl == GOOD_DDL
        assert outcome.attempt_count == 1
        assert outcome.final_state == TranslationState.SUCCESS
        assert outcome.transitions == [
            TranslationState.INIT,
            TranslationState.TRANSLATING,
            TranslationState.EXECUTING,
            TranslationState.SUCCESS,
        ]
        assert target.executed_ddl == [GOOD_DDL]

    def test_success_on_third_attempt_records_three(self):
        target = InMemoryTarget(ddl_errors=["error one", "error two"])
        oracle = ScriptedOracle(["bad 1", "bad 2", GOOD_DDL])

        outcome = _orchestrator(oracle, target).run(SchemaDefinition(ddl=SOURCE_DDL))

        assert outcome.attempt_count == 3
        assert [a.attempt_number for a in outcome.attempts] == [1, 2, 3]
        assert [a.result.ok for a in outcome.attempts] == [False, False, True]
        assert outcome.attempts[0].error_message == "error one"
        assert outcome.committed_ddl == GOOD_DDL

    def test_fatal_failure_carries_exactly_max_attempts(self):
        target = InMemoryTarget(ddl_errors=["nope"] * 10)
        oracle = ScriptedOracle(["CREATE TABLE T (A GEOGRAPHY)"])

        with pytest.raises(FatalTranslationFailure) as exc_info:
            _orchestrator(oracle, target, max_attempts=3).run(SchemaDefinition(ddl=SOURCE_DDL))

        error = exc_info.value
        assert len(error.attempts) == 3
        assert all(not a.result.ok for a in error.attempts)
        assert error.details["transitions"][-1] == TranslationState.FATAL_FAILURE.value
        assert len(target.executed_ddl) == 3

    def test_first_call_gets_defaults(self):
        oracle = ScriptedOracle([GOOD_DDL])
        _orchestrator(oracle, InMemoryTarget()).run(SchemaDefinition(ddl=SOURCE_DDL), target_table="T")

        call = oracle.calls[0]
        assert call["source_ddl"] == SOURCE_DDL
        assert call["prior_candidate"] == ""
        assert call["diagnostics"] == DEFAULT_DOCUMENTATION_CONTEXT
        assert call["prior_error"] == DEFAULT_ERROR_MESSAGE
        assert call["target_table"] == "T"

    def test_type_hints_seed_the_first_diagnostics(self):
        oracle = ScriptedOracle([GOOD_DDL])
        schema = SchemaDefinition(ddl=SOURCE_DDL, columns=[ColumnDefinition(name="A", source_type="int")])
        _orchestrator(oracle, InMemoryTarget()).run(schema)

        assert "A: int -> INTEGER" in oracle.calls[0]["diagnostics"]

    def test_retry_feeds_back_candidate_error_and_documentation(self):
        error = "002040 (42601): SQL compilation error:\nUnsupported data type 'GEOGRAPHYX'."
        target = InMemoryTarget(ddl_errors=[error])
        knowledge = StaticKnowledge("Chunk: GEOGRAPHY is a supported type\n")
        oracle = ScriptedOracle(["CREATE TABLE T (A GEOGRAPHYX)", GOOD_DDL])

        _orchestrator(oracle, target, knowledge=knowledge).run(SchemaDefinition(ddl=SOURCE_DDL))

        retry = oracle.calls[1]
        assert retry["prior_candidate"] == "CREATE TABLE T (A GEOGRAPHYX)"
        assert retry["prior_error"] == error
        assert "Chunk: GEOGRAPHY is a supported type" in retry["diagnostics"]
        assert knowledge.queries == ["Unsupported data type 'GEOGRAPHYX'."]

    def test_knowledge_failure_falls_back_to_default_context(self):
        target = InMemoryTarget(ddl_errors=["boom"])
        knowledge = StaticKnowledge(error=RuntimeError("search unavailable"))
        oracle = ScriptedOracle(["bad", GOOD_DDL])

        outcome = _orchestrator(oracle, target, knowledge=knowledge).run(SchemaDefinition(ddl=SOURCE_DDL))

        assert outcome.attempt_count == 2
        assert oracle.calls[1]["diagnostics"] == DEFAULT_DOCUMENTATION_CONTEXT

    def test_oracle_error_counts_as_attempt(self):
        target = InMemoryTarget()
        oracle = ScriptedOracle([TranslationFailure("model overloaded"), GOOD_DDL])

        outcome = _orchestrator(oracle, target).run(SchemaDefinition(ddl=SOURCE_DDL))

        assert outcome.attempt_count == 2
        assert outcome.attempts[0].candidate_ddl == ""
        assert "model overloaded" in outcome.attempts[0].error_message
        assert target.executed_ddl == [GOOD_DDL]

    def test_empty_oracle_answer_is_a_failed_attempt(self):
        oracle = ScriptedOracle(["   "])
        with pytest.raises(FatalTranslationFailure) as exc_info:
            _orchestrator(oracle, InMemoryTarget(), max_attempts=2).run(SchemaDefinition(ddl=SOURCE_DDL))
        assert len(exc_info.value.attempts) == 2
        assert exc_info.value.attempts[0].error_message == "Translation oracle returned no DDL"

    def test_oracle_timeout_is_a_failed_attempt(self):
        def slow(**kwargs):
            time.sleep(1.0)
            return GOOD_DDL

        oracle = ScriptedOracle([slow, GOOD_DDL])
        outcome = _orchestrator(oracle, InMemoryTarget(), oracle_timeout=0.1).run(SchemaDefinition(ddl=SOURCE_DDL))

        assert outcome.attempt_count == 2
        assert "timed out" in outcome.attempts[0].error_message

    def test_history_is_not_shared_between_runs(self):
        target = InMemoryTarget(ddl_errors=["first run error"])
        orchestrator = _orchestrator(ScriptedOracle(["bad", GOOD_DDL]), target)

        first = orchestrator.run(SchemaDefinition(ddl=SOURCE_DDL))
        second = orchestrator.run(SchemaDefinition(ddl=SOURCE_DDL))

        assert first.attempt_count == 2
        assert second.attempt_count == 1

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            _orchestrator(ScriptedOracle([GOOD_DDL]), InMemoryTarget(), max_attempts=0)
