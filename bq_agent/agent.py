from __future__ import annotations

import time
from typing import Any, Literal, Protocol, TypedDict

from google import genai
from google.cloud import bigquery
from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel

from .config import AppConfig
from .errors import AgentError, ConfigError, RemoteError, remote_message
from .normalize import normalize_row
from .prompting import (
    UNANSWERABLE_MESSAGE,
    GeneratedSQL,
    Generation,
    Unanswerable,
    build_sql_prompt,
    interpret_model_output,
)
from .schema_cache import SchemaCache, TableSchemas
from .settings import AgentSettings
from .utils import log_event


class QueryResult(BaseModel):
    ok: bool
    sql: str | None = None
    columns: list[str] = []
    rows: list[dict[str, Any]] = []
    message: str | None = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str, sql: str | None = None) -> "QueryResult":
        return cls(ok=False, sql=sql, error=error)

    @classmethod
    def unanswerable(cls) -> "QueryResult":
        return cls(ok=True, sql=None, columns=[], rows=[], message=UNANSWERABLE_MESSAGE)


class AgentContext(Protocol):
    config: AppConfig
    schema_cache: SchemaCache

    def settings(self) -> AgentSettings: ...

    def get_client(self) -> bigquery.Client: ...

    def get_model_client(self) -> genai.Client: ...


class AgentState(TypedDict, total=False):
    question: str
    settings: AgentSettings
    client: bigquery.Client
    tables: TableSchemas
    generation: Generation
    result: QueryResult


def extract_response_text(response: object) -> str:
    if hasattr(response, "text") and response.text:
        return response.text
    if hasattr(response, "candidates") and response.candidates:
        parts = response.candidates[0].content.parts
        if parts:
            return "".join(part.text for part in parts if getattr(part, "text", None))
    return ""


def run_query(client: bigquery.Client, sql: str) -> list[dict[str, Any]]:
    job_config = bigquery.QueryJobConfig(use_legacy_sql=False)
    try:
        rows = client.query(sql, job_config=job_config).result()
        return [dict(row.items()) for row in rows]
    except Exception as exc:
        raise RemoteError(remote_message(exc), sql=sql) from exc


class QueryAgent:
    """Turns a question into SQL with Gemini and runs it on BigQuery.

    The graph is linear except for one branch: a model reply equal to the
    unanswerable sentinel ends the run with a guidance message instead of
    executing anything. Generated SQL is executed verbatim.
    """

    def __init__(self, context: AgentContext) -> None:
        self._context = context
        self._graph = self._build_graph()

    def _build_graph(self):
        builder = StateGraph(AgentState)
        builder.add_node("resolve_client", self._resolve_client_node)
        builder.add_node("load_schema", self._load_schema_node)
        builder.add_node("generate_sql", self._generate_sql_node)
        builder.add_node("execute_sql", self._execute_sql_node)
        builder.add_node("unanswerable", self._unanswerable_node)
        builder.add_edge(START, "resolve_client")
        builder.add_edge("resolve_client", "load_schema")
        builder.add_edge("load_schema", "generate_sql")
        builder.add_conditional_edges(
            "generate_sql",
            self._route_generation,
            {"execute_sql": "execute_sql", "unanswerable": "unanswerable"},
        )
        builder.add_edge("execute_sql", END)
        builder.add_edge("unanswerable", END)
        return builder.compile()

    def _resolve_client_node(self, state: AgentState) -> dict[str, Any]:
        return {"settings": self._context.settings(), "client": self._context.get_client()}

    def _load_schema_node(self, state: AgentState) -> dict[str, Any]:
        settings = state["settings"]
        tables = self._context.schema_cache.ensure_schema(
            state["client"], settings.project_id, settings.dataset_id
        )
        return {"tables": tables}

    def _generate_sql_node(self, state: AgentState) -> dict[str, Any]:
        settings = state["settings"]
        if not settings.gemini_key:
            raise ConfigError("No Gemini API key configured. Go to Settings and add your key.")
        prompt = build_sql_prompt(
            state["question"],
            settings.project_id,
            settings.dataset_id,
            state["tables"],
            self._context.config.subject_area,
        )
        model_client = self._context.get_model_client()
        started = time.monotonic()
        try:
            response = model_client.models.generate_content(
                model=self._context.config.gemini_model,
                contents=prompt,
            )
        except Exception as exc:
            raise RemoteError(remote_message(exc)) from exc
        generation = interpret_model_output(extract_response_text(response))
        log_event(
            "sql_generated",
            model=self._context.config.gemini_model,
            unanswerable=isinstance(generation, Unanswerable),
            duration_s=round(time.monotonic() - started, 3),
        )
        return {"generation": generation}

    def _route_generation(self, state: AgentState) -> Literal["execute_sql", "unanswerable"]:
        if isinstance(state["generation"], GeneratedSQL):
            return "execute_sql"
        return "unanswerable"

    def _execute_sql_node(self, state: AgentState) -> dict[str, Any]:
        sql = state["generation"].sql
        started = time.monotonic()
        rows = run_query(state["client"], sql)
        columns = list(rows[0].keys()) if rows else []
        normalized = [normalize_row(row) for row in rows]
        log_event(
            "query_executed",
            rows=len(normalized),
            columns=len(columns),
            duration_s=round(time.monotonic() - started, 3),
        )
        return {"result": QueryResult(ok=True, sql=sql, columns=columns, rows=normalized, message=None)}

    def _unanswerable_node(self, state: AgentState) -> dict[str, Any]:
        log_event("query_unanswerable")
        return {"result": QueryResult.unanswerable()}

    def answer(self, question: str) -> QueryResult:
        try:
            final = self._graph.invoke({"question": question})
        except AgentError as exc:
            log_event("operation_failed", operation="query", error_type=type(exc).__name__, error=exc.message)
            return QueryResult.failure(exc.message, sql=getattr(exc, "sql", None))
        return final["result"]
