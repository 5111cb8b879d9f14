"""Documentation search used to diagnose failed DDL."""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 300

# Snowflake error code prefix, e.g. "001003 (42000): "
_ERROR_CODE = re.compile(r"^\s*\d{6}\s*\(\w+\)\s*:\s*")
_GENERIC_LINES = {"sql compilation error", "sql compilation error:"}


def build_knowledge_query(error_message: str, max_length: int = MAX_QUERY_LENGTH) -> str:
    """
    Derive a documentation query from a target error message.

    Takes the first meaningful line, collapses whitespace and caps the length.
    """
    for line in (error_message or "").splitlines():
        text = " ".join(_ERROR_CODE.sub("", line).split())
        if not text or text.lower() in _GENERIC_LINES:
            continue
        return text[:max_length]
    return " ".join((error_message or "").split())[:max_length]


def render_chunks(chunks: List[str]) -> str:
    """Concatenate search results as ``Chunk: ...`` lines."""
    return "".join(f"Chunk: {chunk}\n" for chunk in chunks if chunk)


class KnowledgeService(ABC):
    """Returns documentation text relevant to a query."""

    name = "knowledge"

    @abstractmethod
    def search(self, query: str) -> str:
        """
        Search documentation.

        Returns:
            Top results concatenated as ``Chunk: ...`` lines, or "" when
            nothing was found
        """
        pass


class NullKnowledgeService(KnowledgeService):
    """Knowledge service that never finds anything."""

    name = "none"

    def search(self, query: str) -> str:
        return ""


class CortexSearchKnowledgeService(KnowledgeService):
    """Searches a Snowflake Cortex Search service through the target connection."""

    name = "cortex"

    def __init__(
        self,
        client: Any,
        service: str = "SNOWFLAKE_DOCUMENTATION.SHARED.CKE_SNOWFLAKE_DOCS_SERVICE",
        top_k: int = 3,
        column: str = "CHUNK",
    ):
        """
        Args:
            client: Object with ``cortex_search(service, query, columns, limit)``,
                normally the Snowflake loader
            service: Fully qualified Cortex Search service name
            top_k: Number of chunks to return
            column: Result column holding the text
        """
        self.client = client
        self.service = service
        self.top_k = top_k
        self.column = column

    def search(self, query: str) -> str:
        if not query.strip():
            return ""

        results = self.client.cortex_search(
            self.service, query, columns=[self.column], limit=self.top_k
        )
        chunks = [str(r.get(self.column) or r.get(self.column.lower()) or "") for r in results]
        logger.debug(f"Cortex search returned {len(chunks)} chunk(s) for: {query}")
        return render_chunks(chunks[: self.top_k])


class HTTPKnowledgeService(KnowledgeService):
    """
    Searches an HTTP documentation endpoint.

    The endpoint receives ``{"query": ..., "limit": ...}`` as JSON and answers
    with ``{"results": [{"chunk": ...}, ...]}`` or a bare list of results.
    """

    name = "http"

    def __init__(
        self,
        url: str,
        top_k: int = 3,
        timeout: float = 30.0,
        api_key: Optional[str] = None,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
    ):
        self.url = url
        self.top_k = top_k
        self.timeout = timeout
        self.api_key = api_key
        self.session = self._create_session(max_retries, backoff_factor)

    def _create_session(self, max_retries: int, backoff_factor: float) -> requests.Session:
        """Create a requests session with retry logic."""
        session = requests.Session()

        retries = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=frozenset(["GET", "POST"]),
        )

        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.api_key:
            session.headers["Authorization"] = f"Bearer {self.api_key}"

        return session

    def search(self, query: str) -> str:
        if not query.strip():
            return ""

        response = self.session.post(
            self.url,
            json={"query": query, "limit": self.top_k},
            timeout=self.timeout,
        )
        response.raise_for_status()

        data = response.json()
        results = data.get("results", []) if isinstance(data, dict) else data
        return render_chunks([self._chunk_text(r) for r in results[: self.top_k]])

    def _chunk_text(self, result: Any) -> str:
        if isinstance(result, dict):
            for key in ("chunk", "CHUNK", "text", "content"):
                if result.get(key):
                    return str(result[key])
            return ""
        return str(result)

    def close(self):
        self.session.close()
