from __future__ import annotations

import time
from dataclasses import dataclass

from google.cloud import bigquery

from .errors import DatasetNotConfiguredError, RemoteError, remote_message
from .utils import log_event


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str


TableSchemas = dict[str, list[ColumnInfo]]


def discover_schema(client: bigquery.Client, project_id: str, dataset_id: str) -> TableSchemas:
    """List every table in the dataset with its column names and types.

    No row data is read. Raises RemoteError on the first failing call.
    """
    dataset_ref = f"{project_id}.{dataset_id}"
    schemas: TableSchemas = {}
    try:
        for item in client.list_tables(dataset_ref):
            table = client.get_table(item.reference)
            schemas[item.table_id] = [
                ColumnInfo(name=field.name, type=field.field_type) for field in table.schema or []
            ]
    except Exception as exc:
        raise RemoteError(remote_message(exc)) from exc
    return schemas


class SchemaCache:
    """Process-lifetime mapping of table name to columns.

    Refreshes build a new mapping and swap it in only once every listing and
    metadata call has succeeded, so the cache is never half-populated.
    """

    def __init__(self) -> None:
        self._tables: TableSchemas = {}

    @property
    def tables(self) -> TableSchemas:
        return {name: list(columns) for name, columns in self._tables.items()}

    def table_names(self) -> list[str]:
        return list(self._tables)

    def is_empty(self) -> bool:
        return not self._tables

    def clear(self) -> None:
        self._tables = {}

    def ensure_schema(
        self, client: bigquery.Client, project_id: str, dataset_id: str | None
    ) -> TableSchemas:
        if not dataset_id:
            raise DatasetNotConfiguredError("No BigQuery dataset configured. Go to Settings.")
        if self._tables:
            return self.tables
        return self.refresh(client, project_id, dataset_id)

    def refresh(self, client: bigquery.Client, project_id: str, dataset_id: str | None) -> TableSchemas:
        if not dataset_id:
            raise DatasetNotConfiguredError("No BigQuery dataset configured. Go to Settings.")
        started = time.monotonic()
        fresh = discover_schema(client, project_id, dataset_id)
        self._tables = fresh
        log_event(
            "schema_refreshed",
            dataset=f"{project_id}.{dataset_id}",
            tables=len(fresh),
            duration_s=round(time.monotonic() - started, 3),
        )
        return self.tables
