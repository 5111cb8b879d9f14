"""Tests for the translation oracles."""

import json

import pytest

from tablemigrate.exceptions import TranslationFailure
from tablemigrate.services.llm_inference import (
    DEFAULT_DOCUMENTATION_CONTEXT,
    DEFAULT_ERROR_MESSAGE,
    LLMTranslationOracle,
    RuleBasedTranslationOracle,
    target_identifier,
)

from tests.conftest import EMPLOYEES_DDL


class FakeCortex:
    """Stands in for the Snowflake loader's cortex_complete."""

    def __init__(self, answer):
        self.answer = answer
        self.prompts = []

    def cortex_complete(self, model, prompt):
        self.prompts.append((model, prompt))
        return self.answer


class TestRuleBasedTranslationOracle:
    def test_converts_employees_table(self):
        proposal = RuleBasedTranslationOracle().translate(EMPLOYEES_DDL)

        assert proposal.ddl == (
            "CREATE TABLE Employees (\n"
            "    EmployeeID INTEGER AUTOINCREMENT NOT NULL,\n"
            "    FirstName VARCHAR NOT NULL,\n"
            "    Dept VARCHAR NULL,\n"
            "    CONSTRAINT PK_Employees PRIMARY KEY (EmployeeID)\n"
            ");"
        )
        assert "IDENTITY -> AUTOINCREMENT" in proposal.explanation

    def test_target_table_overrides_name(self):
        proposal = RuleBasedTranslationOracle().translate(EMPLOYEES_DDL, target_table="ANALYTICS.EMPLOYEES")
        assert proposal.ddl.startswith("CREATE TABLE ANALYTICS.EMPLOYEES (")

    def test_defaults_and_getdate(self):
        ddl = (
            "CREATE TABLE dbo.Orders (\n"
            "  OrderID BIGINT NOT NULL,\n"
            "  Placed DATETIME CONSTRAINT [DF_Orders_Placed] DEFAULT (GETDATE()) NOT NULL,\n"
            "  Total DECIMAL(10, 2) DEFAULT 0\n"
            ")"
        )
        proposal = RuleBasedTranslationOracle().translate(ddl)

        assert "Placed TIMESTAMP_NTZ DEFAULT (CURRENT_TIMESTAMP()) NOT NULL" in proposal.ddl
        assert "Total NUMBER(10,2) DEFAULT 0" in proposal.ddl
        assert "CONSTRAINT [DF_Orders_Placed]" not in proposal.ddl

    def test_inline_index_is_dropped(self):
        ddl = "CREATE TABLE T (A INT, INDEX IX_A (A))"
        proposal = RuleBasedTranslationOracle().translate(ddl)
        assert "INDEX" not in proposal.ddl
        assert "dropped inline index" in proposal.explanation

    def test_unmapped_type_passes_through(self):
        proposal = RuleBasedTranslationOracle().translate("CREATE TABLE T (Shape GEOMETRY NULL)")
        assert "Shape GEOMETRY NULL" in proposal.ddl
        assert "unmapped type GEOMETRY" in proposal.explanation

    def test_odd_column_names_are_quoted_upper_case(self):
        proposal = RuleBasedTranslationOracle().translate("CREATE TABLE T ([First Name] VARCHAR(20))")
        assert '"FIRST NAME" VARCHAR' in proposal.ddl

    def test_non_create_statement_fails(self):
        with pytest.raises(TranslationFailure):
            RuleBasedTranslationOracle().translate("SELECT 1")


class TestTargetIdentifier:
    def test_simple_name_stays_unquoted(self):
        assert target_identifier("EmployeeID") == "EmployeeID"

    def test_other_names_are_quoted(self):
        assert target_identifier("order-date") == '"ORDER-DATE"'


class TestLLMTranslationOracle:
    def test_cortex_requires_a_client(self):
        with pytest.raises(ValueError):
            LLMTranslationOracle(provider="cortex")

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            LLMTranslationOracle(provider="gemini", cortex_client=FakeCortex(""))

    def test_cortex_json_answer(self):
        answer = json.dumps({"sql": "CREATE TABLE T (A INTEGER);", "explanation": "mapped INT"})
        cortex = FakeCortex(answer)
        oracle = LLMTranslationOracle(provider="cortex", cortex_client=cortex)

        proposal = oracle.translate("CREATE TABLE T (A INT)")

        assert proposal.ddl == "CREATE TABLE T (A INTEGER);"
        assert proposal.explanation == "mapped INT"
        model, prompt = cortex.prompts[0]
        assert model == "mistral-large2"
        assert "SQL Server DDL: CREATE TABLE T (A INT)" in prompt
        assert f"Documentation Context: {DEFAULT_DOCUMENTATION_CONTEXT}" in prompt
        assert f"Error Message: {DEFAULT_ERROR_MESSAGE}" in prompt

    def test_correction_prompt_includes_feedback(self):
        cortex = FakeCortex('{"sql": "CREATE TABLE T (A INTEGER);"}')
        oracle = LLMTranslationOracle(provider="cortex", cortex_client=cortex)

        oracle.translate(
            "CREATE TABLE T (A INT)",
            prior_candidate="CREATE TABLE T (A INTT);",
            diagnostics="Chunk: INTEGER is a synonym for NUMBER\n",
            prior_error="Unsupported data type 'INTT'.",
            target_table="EMPLOYEES",
        )

        prompt = cortex.prompts[0][1]
        assert "Previously Generated Snowflake DDL: CREATE TABLE T (A INTT);" in prompt
        assert "Chunk: INTEGER is a synonym for NUMBER" in prompt
        assert "Error Message: Unsupported data type 'INTT'." in prompt
        assert "must be named exactly: EMPLOYEES" in prompt

    def test_fenced_sql_answer(self):
        oracle = LLMTranslationOracle(provider="cortex", cortex_client=FakeCortex(
            "Here you go:\n```sql\nCREATE TABLE T (A INTEGER);\n```\nUsed INTEGER."
        ))
        proposal = oracle.translate("CREATE TABLE T (A INT)")
        assert proposal.ddl == "CREATE TABLE T (A INTEGER);"
        assert proposal.explanation == "Used INTEGER."

    def test_bare_sql_answer(self):
        oracle = LLMTranslationOracle(provider="cortex", cortex_client=FakeCortex("CREATE TABLE T (A INTEGER);"))
        assert oracle.translate("CREATE TABLE T (A INT)").ddl == "CREATE TABLE T (A INTEGER);"

    @pytest.mark.parametrize("answer", ["", "I cannot help with that."])
    def test_unusable_answer_raises(self, answer):
        oracle = LLMTranslationOracle(provider="cortex", cortex_client=FakeCortex(answer))
        with pytest.raises(TranslationFailure):
            oracle.translate("CREATE TABLE T (A INT)")

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        oracle = LLMTranslationOracle(provider="anthropic", model="claude-sonnet-4-5")
        assert oracle.api_key == "sk-test"
