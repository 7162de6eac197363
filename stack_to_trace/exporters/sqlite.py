"""
SQLite span store.

Closed spans are written to an ``otel_spans`` table, one row per span, with
microsecond timestamps and JSON encoded attributes and events.
"""

import json
import logging
import os
import sqlite3
import threading
import uuid

from ..model import Span

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS otel_spans (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trace_id TEXT NOT NULL,
  span_id TEXT NOT NULL,
  parent_span_id TEXT,
  name TEXT NOT NULL,
  start_time INTEGER NOT NULL,
  end_time INTEGER NOT NULL,
  attributes TEXT NOT NULL,
  status_code INTEGER NOT NULL,
  events TEXT NOT NULL
);
"""


def connect(db_file: str) -> sqlite3.Connection:
    """Open the database at ``db_file``, creating the file and table if needed."""
    directory = os.path.dirname(db_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_file, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute(SCHEMA)
    conn.commit()
    return conn


class SQLiteSpanExporter:
    """
    Write every closed span of one session under a single trace id.

    Spans reconstructed from samples carry their own trace ids per root; the
    exporter stores them all under ``trace_id`` so one run or replay is one
    trace in the store.
    """

    def __init__(self, db_file: str, trace_id: str = None):
        self.db_file = db_file
        self.trace_id = trace_id or uuid.uuid4().hex
        self._conn = connect(db_file)
        self._lock = threading.Lock()
        self.exported = 0

    def export(self, span: Span):
        parent_id = span.parent.span_id if span.parent else None
        row = (
            self.trace_id,
            span.span_id,
            parent_id,
            span.name,
            int(span.start_time // 1_000),  # μs
            int(span.end_time // 1_000),
            json.dumps(span.attributes, default=str),
            span.status_code,
            json.dumps(span.events, default=str),
        )
        with self._lock:
            if self._conn is None:
                raise RuntimeError(f"exporter for {self.db_file} is shut down")
            self._conn.execute(
                """
INSERT INTO otel_spans
  (trace_id, span_id, parent_span_id, name,
   start_time, end_time, attributes, status_code, events)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
""",
                row,
            )
            self._conn.commit()
            self.exported += 1

    def shutdown(self):
        with self._lock:
            if self._conn is None:
                return
            self._conn.commit()
            self._conn.close()
            self._conn = None
        logger.debug("wrote %d span(s) to %s", self.exported, self.db_file)


def list_traces(db_file: str):
    """Return ``(trace_id, span_count, first_start_us)`` rows, newest first."""
    conn = sqlite3.connect(db_file)
    try:
        cur = conn.execute(
            """
        SELECT
          trace_id,
          COUNT(*)           AS span_count,
          MIN(start_time)    AS first_start_us
        FROM otel_spans
        GROUP BY trace_id
        ORDER BY first_start_us DESC
    """
        )
        return cur.fetchall()
    finally:
        conn.close()


def read_spans(db_file: str, trace_id: str):
    """Return the raw span rows of one trace as dicts, ordered by start time."""
    conn = sqlite3.connect(db_file)
    conn.row_factory = sqlite3.Row
    try:
        cur = conn.execute(
            """
        SELECT trace_id, span_id, parent_span_id, name, start_time, end_time,
               attributes, status_code, events
          FROM otel_spans
         WHERE trace_id = ?
      ORDER BY start_time, id
    """,
            (trace_id,),
        )
        spans = []
        for row in cur.fetchall():
            span = dict(row)
            span["attributes"] = json.loads(span["attributes"])
            span["events"] = json.loads(span["events"])
            spans.append(span)
        return spans
    finally:
        conn.close()
