"""Translation oracles: turn SQL Server DDL into Snowflake DDL."""

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from .type_mapping import describe_type_map, map_type
from ..exceptions import TranslationFailure
from ..models.migration import TranslationProposal
from ..models.schema import split_qualified_name

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENTATION_CONTEXT = "No additional documentation context provided."
DEFAULT_ERROR_MESSAGE = "No error message provided."


class TranslationOracle(ABC):
    """
    Produces candidate target DDL.

    Implementations may be non-deterministic; the translation loop treats
    every answer as a candidate to be verified by executing it.
    """

    name = "oracle"

    @abstractmethod
    def translate(
        self,
        source_ddl: str,
        prior_candidate: str = "",
        diagnostics: str = "",
        prior_error: str = "",
        target_table: str = "",
    ) -> TranslationProposal:
        """
        Translate or correct DDL.

        Args:
            source_ddl: Original SQL Server DDL
            prior_candidate: DDL that failed on the previous attempt, or ""
            diagnostics: Documentation context or type hints
            prior_error: Error returned when the prior candidate was executed
            target_table: Name the created table must have, or "" to keep the source name

        Returns:
            TranslationProposal with the candidate DDL and an explanation
        """
        pass


class LLMTranslationOracle(TranslationOracle):
    """
    Translation oracle backed by a language model.

    Supports:
    - Snowflake Cortex COMPLETE (through the target connection)
    - OpenAI chat completions
    - Anthropic messages
    """

    name = "llm"

    def __init__(
        self,
        provider: str = "cortex",
        model: str = "mistral-large2",
        api_key: Optional[str] = None,
        cortex_client: Any = None,
    ):
        """
        Initialize the LLM oracle.

        Args:
            provider: LLM provider (cortex, openai, anthropic)
            model: Model to use for translation
            api_key: API key for hosted providers
            cortex_client: Object with ``cortex_complete(model, prompt)``,
                normally the Snowflake loader
        """
        if provider not in ("cortex", "openai", "anthropic"):
            raise ValueError(f"Unsupported provider: {provider}")
        if provider == "cortex" and cortex_client is None:
            raise ValueError("The cortex provider needs a Snowflake connection")

        self.provider = provider
        self.model = model
        self.cortex_client = cortex_client

        if api_key:
            self.api_key = api_key
        elif provider == "anthropic":
            self.api_key = os.environ.get("ANTHROPIC_API_KEY")
        else:
            self.api_key = os.environ.get("OPENAI_API_KEY")

    def translate(
        self,
        source_ddl: str,
        prior_candidate: str = "",
        diagnostics: str = "",
        prior_error: str = "",
        target_table: str = "",
    ) -> TranslationProposal:
        prompt = self._build_translation_prompt(
            source_ddl, prior_candidate, diagnostics, prior_error, target_table
        )
        content = self._call_llm(prompt)
        return self._parse_translation_response(content)

    def _build_translation_prompt(
        self,
        source_ddl: str,
        prior_candidate: str,
        diagnostics: str,
        prior_error: str,
        target_table: str,
    ) -> str:
        """Build prompt for DDL conversion or correction."""
        prior_candidate = prior_candidate.strip()
        diagnostics = diagnostics.strip() or DEFAULT_DOCUMENTATION_CONTEXT
        prior_error = prior_error.strip() or DEFAULT_ERROR_MESSAGE

        prompt = f"""
You are a SQL DDL conversion and correction assistant. Your primary responsibilities are:

1. Initial Conversion: Convert SQL Server DDL statements into Snowflake-compatible DDL
2. Error Correction: Fix faulty Snowflake DDL based on error messages and documentation context

## Data Type Conversion Mapping:
{describe_type_map()}

## Constraint and Syntax Conversion:
- PRIMARY KEY: Convert to PRIMARY KEY clause (column or table level)
- FOREIGN KEY: Use standard foreign key syntax (constraints are not enforced in Snowflake)
- DEFAULT value: Apply DEFAULT clauses as in SQL Server
- IDENTITY(1,1): Replace with AUTOINCREMENT for column definition
- Indexes: Omit INDEX definitions
- Collation: Ignore any COLLATE statements
- Functions: Replace GETDATE() with CURRENT_TIMESTAMP() for defaults
- Identifiers: Leave column names unquoted so they resolve in upper case

## Processing Logic:
For an initial conversion, convert every DDL component following the mappings
above. For an error correction, analyze the error message, use the documentation
context, and correct the previously generated DDL while keeping its intent.
"""

        if target_table:
            prompt += f"""
The created table must be named exactly: {target_table}
"""

        prompt += f"""
## Output Requirements:
Return a JSON object with the following structure:
{{
    "sql": "a single valid Snowflake CREATE TABLE statement ending with a semicolon",
    "explanation": "brief explanation of the changes made"
}}

---

SQL Server DDL: {source_ddl}
Previously Generated Snowflake DDL: {prior_candidate}
Documentation Context: {diagnostics}
Error Message: {prior_error}
"""
        return prompt

    def _call_llm(self, prompt: str) -> str:
        """Call the configured LLM provider and return its text."""
        if self.provider == "cortex":
            return self._call_cortex(prompt)
        elif self.provider == "openai":
            return self._call_openai(prompt)
        elif self.provider == "anthropic":
            return self._call_anthropic(prompt)
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

    def _call_cortex(self, prompt: str) -> str:
        """Call Snowflake Cortex COMPLETE."""
        return self.cortex_client.cortex_complete(self.model, prompt)

    def _call_openai(self, prompt: str) -> str:
        """Call OpenAI API."""
        try:
            import openai
        except ImportError:
            raise ImportError("openai package required for OpenAI translation")

        client = openai.OpenAI(api_key=self.api_key)
        response = client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.0,
            max_tokens=4096,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    def _call_anthropic(self, prompt: str) -> str:
        """Call Anthropic API."""
        try:
            import anthropic
        except ImportError:
            raise ImportError("anthropic package required for Anthropic translation")

        client = anthropic.Anthropic(api_key=self.api_key)
        response = client.messages.create(
            model=self.model,
            max_tokens=4096,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text

    def _parse_translation_response(self, content: str) -> TranslationProposal:
        """
        Parse LLM output into a proposal.

        Accepts a JSON object with ``sql`` (or ``ddl``) and ``explanation``, a
        fenced ```sql block, or bare SQL text.
        """
        content = (content or "").strip()
        if not content:
            raise TranslationFailure("Oracle returned an empty response")

        json_match = re.search(r"\{[\s\S]*\}", content)
        if json_match:
            try:
                data = json.loads(json_match.group())
            except json.JSONDecodeError:
                data = None
            if isinstance(data, dict):
                ddl = data.get("sql") or data.get("ddl") or ""
                if ddl.strip():
                    return TranslationProposal(
                        ddl=ddl.strip(),
                        explanation=str(data.get("explanation", "")),
                    )

        fence = re.search(r"```(?:sql)?\s*([\s\S]*?)```", content, re.IGNORECASE)
        if fence and fence.group(1).strip():
            explanation = content[fence.end():].strip()
            return TranslationProposal(ddl=fence.group(1).strip(), explanation=explanation)

        if re.match(r"^\s*CREATE\s", content, re.IGNORECASE):
            return TranslationProposal(ddl=content, explanation="")

        raise TranslationFailure(
            "Could not find DDL in oracle response",
            details={"response": content[:500]},
        )


_SIMPLE_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
_CREATE_TABLE = re.compile(r"^\s*CREATE\s+TABLE\s+(.+?)\s*\(", re.IGNORECASE | re.DOTALL)
_COLUMN_START = re.compile(r'^\s*(\[[^\]]+\]|"[^"]+"|[^\s(]+)\s+(.*)$', re.DOTALL)
_TYPE_TOKEN = re.compile(r"^(\[?[A-Za-z_][A-Za-z0-9_ ]*?\]?)\s*(\([^)]*\))?(?=\s|$)(.*)$", re.DOTALL)
_IDENTITY = re.compile(r"\bIDENTITY\b(\s*\(\s*\d+\s*,\s*\d+\s*\))?", re.IGNORECASE)
_COLLATE = re.compile(r"\bCOLLATE\s+\S+", re.IGNORECASE)
_GETDATE = re.compile(r"\b(GETDATE|SYSDATETIME|GETUTCDATE)\s*\(\s*\)", re.IGNORECASE)
_NAMED_DEFAULT = re.compile(r"\bCONSTRAINT\s+(\[[^\]]+\]|\S+)\s+(?=DEFAULT\b)", re.IGNORECASE)
_CLUSTERING = re.compile(r"\b(NONCLUSTERED|CLUSTERED)\b", re.IGNORECASE)
_SORT_ORDER = re.compile(r"\s+(ASC|DESC)\b", re.IGNORECASE)
_BRACKETED = re.compile(r"\[([^\]]+)\]")
_TABLE_CONSTRAINT = re.compile(r"^\s*(CONSTRAINT|PRIMARY\s+KEY|FOREIGN\s+KEY|UNIQUE|CHECK)\b", re.IGNORECASE)


def target_identifier(name: str) -> str:
    """
    Render a column or table name for Snowflake.

    Simple names stay unquoted so they resolve upper-case; others are quoted
    in upper case to match the data mover's normalized column names.
    """
    name = name.strip()
    if _SIMPLE_IDENTIFIER.match(name):
        return name
    return '"' + name.upper().replace('"', '""') + '"'


def _strip_delimiters(name: str) -> str:
    name = name.strip()
    if (name.startswith("[") and name.endswith("]")) or (name.startswith('"') and name.endswith('"')):
        return name[1:-1]
    return name


def _split_top_level(body: str) -> List[str]:
    """Split on commas that are not nested in parentheses or quotes."""
    items = []
    depth = 0
    current = []
    quote = None

    for char in body:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in ("'", '"', "["):
            quote = "]" if char == "[" else char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            items.append("".join(current))
            current = []
            continue
        current.append(char)

    items.append("".join(current))
    return [item.strip() for item in items if item.strip()]


def _extract_table_body(ddl: str) -> Tuple[str, str]:
    """Return the table name and the text inside the outer parentheses."""
    match = _CREATE_TABLE.match(ddl)
    if not match:
        raise TranslationFailure("Source DDL is not a CREATE TABLE statement")

    start = match.end() - 1
    depth = 0
    for index in range(start, len(ddl)):
        if ddl[index] == "(":
            depth += 1
        elif ddl[index] == ")":
            depth -= 1
            if depth == 0:
                return match.group(1).strip(), ddl[start + 1:index]

    raise TranslationFailure("Unbalanced parentheses in source DDL")


class RuleBasedTranslationOracle(TranslationOracle):
    """
    Deterministic DDL rewrite using the static type map.

    Handles the common subset of SQL Server table DDL: column types, IDENTITY,
    defaults, COLLATE, and table constraints. Unmapped types are passed
    through, so the target reports them and the error reaches the caller.
    """

    name = "rules"

    def translate(
        self,
        source_ddl: str,
        prior_candidate: str = "",
        diagnostics: str = "",
        prior_error: str = "",
        target_table: str = "",
    ) -> TranslationProposal:
        source_name, body = _extract_table_body(source_ddl)

        if target_table:
            table_name = target_table
        else:
            table_name = target_identifier(split_qualified_name(source_name)[-1])

        definitions = []
        notes = []
        for item in _split_top_level(body):
            if re.match(r"^\s*INDEX\b", item, re.IGNORECASE):
                notes.append("dropped inline index")
                continue
            if _TABLE_CONSTRAINT.match(item):
                definitions.append(self._convert_constraint(item))
            else:
                definitions.append(self._convert_column(item, notes))

        if not definitions:
            raise TranslationFailure("Source DDL defines no columns")

        ddl = f"CREATE TABLE {table_name} (\n    " + ",\n    ".join(definitions) + "\n);"
        explanation = "Rule-based conversion"
        if notes:
            explanation += ": " + "; ".join(sorted(set(notes)))
        return TranslationProposal(ddl=ddl, explanation=explanation)

    def _convert_column(self, item: str, notes: List[str]) -> str:
        match = _COLUMN_START.match(item)
        if not match:
            raise TranslationFailure(f"Cannot parse column definition: {item}")

        column = target_identifier(_strip_delimiters(match.group(1)))
        type_match = _TYPE_TOKEN.match(match.group(2).strip())
        if not type_match:
            raise TranslationFailure(f"Cannot parse column type: {item}")

        source_type = _strip_delimiters(type_match.group(1)) + (type_match.group(2) or "")
        mapped = map_type(source_type)
        if mapped.unmapped:
            notes.append(f"unmapped type {source_type}")

        clauses = type_match.group(3)
        if _IDENTITY.search(clauses):
            notes.append("IDENTITY -> AUTOINCREMENT")
        clauses = _IDENTITY.sub("AUTOINCREMENT", clauses)
        clauses = _COLLATE.sub("", clauses)
        clauses = _NAMED_DEFAULT.sub("", clauses)
        clauses = _GETDATE.sub("CURRENT_TIMESTAMP()", clauses)
        clauses = _CLUSTERING.sub("", clauses)
        clauses = " ".join(clauses.split())

        return f"{column} {mapped.target_type}" + (f" {clauses}" if clauses else "")

    def _convert_constraint(self, item: str) -> str:
        item = _CLUSTERING.sub("", item)
        item = _SORT_ORDER.sub("", item)
        item = re.sub(r"\bWITH\s*\([^)]*\)", "", item, flags=re.IGNORECASE)
        item = re.sub(r"\bON\s+\[?PRIMARY\]?", "", item, flags=re.IGNORECASE)
        item = _BRACKETED.sub(lambda m: target_identifier(m.group(1)), item)
        return " ".join(item.split())
