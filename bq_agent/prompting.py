from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .schema_cache import TableSchemas


UNANSWERABLE_SENTINEL = "CANNOT_ANSWER"
MAX_ROWS = 200
UNANSWERABLE_MESSAGE = (
    "I couldn't find a way to answer that from the available data. "
    "Try rephrasing, or ask about the tables and columns in your dataset."
)


@dataclass(frozen=True)
class GeneratedSQL:
    sql: str


@dataclass(frozen=True)
class Unanswerable:
    pass


Generation = Union[GeneratedSQL, Unanswerable]


def interpret_model_output(text: str) -> Generation:
    candidate = (text or "").strip()
    if candidate == UNANSWERABLE_SENTINEL:
        return Unanswerable()
    return GeneratedSQL(sql=candidate)


def render_schema(project_id: str, dataset_id: str, tables: TableSchemas) -> str:
    blocks: list[str] = []
    for table_name, columns in tables.items():
        lines = [f"Table: `{project_id}.{dataset_id}.{table_name}`"]
        lines.extend(f"  {col.name} ({col.type})" for col in columns)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_sql_prompt(
    question: str,
    project_id: str,
    dataset_id: str,
    tables: TableSchemas,
    subject_area: str,
) -> str:
    schema_text = render_schema(project_id, dataset_id, tables)
    return (
        f"You are a BigQuery SQL expert for a {subject_area} database.\n"
        "Given the following table schemas, write a valid BigQuery SQL query that answers "
        "the user's question.\n\n"
        f"SCHEMA:\n{schema_text}\n\n"
        "RULES:\n"
        "- Return ONLY the SQL query, nothing else. No markdown, no explanation, no backticks around the query.\n"
        f"- Use fully-qualified table names: `{project_id}.{dataset_id}.TableName`\n"
        "- Use STANDARD SQL (BigQuery default). DATE functions: CURRENT_DATE(), DATE_SUB(), FORMAT_DATE().\n"
        "- TIMESTAMP columns: use TIMESTAMP_TRUNC() for grouping by day/hour.\n"
        f"- Limit results to {MAX_ROWS} rows maximum unless the question asks for all data.\n"
        "- If the question cannot be answered from the schema, respond with exactly: "
        f"{UNANSWERABLE_SENTINEL}\n\n"
        f"USER QUESTION: {question}"
    )
