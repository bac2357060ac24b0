#!/usr/bin/env python3
# /// script
# requires-python = ">=3.12"
# dependencies = [
#   "duckdb>=1.4.0",
#   "pytz",
# ]
# ///
"""
cc_query - Interactive SQL over Claude Code session logs using DuckDB.

Session logs are stored at:
    ~/.claude/projects/{project-path-kebab-cased}/{session_uuid}.jsonl
    ~/.claude/projects/{project-path-kebab-cased}/{session_uuid}/subagents/agent-{id}.jsonl

The logs are exposed as a set of typed views (messages, tool_uses, token_usage, ...)
and queried either through an interactive REPL or by piping SQL on stdin.

Usage:
    uv run cc_query.py                            # All projects, interactive
    uv run cc_query.py ~/code/my-project          # One project
    uv run cc_query.py -s 0a1b2c                  # Sessions whose id starts with 0a1b2c
    uv run cc_query.py -d ./logs                  # Explicit directory of JSONL files
    echo "SELECT count(*) FROM messages;" | uv run cc_query.py .
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from pathlib import Path
from textwrap import dedent
from typing import Any, Callable, TextIO

import duckdb
import pytz

# ============================================================================
# Configuration
# ============================================================================

SCRIPT = Path(__file__)
SCRIPT_NAME = SCRIPT.stem
SCRIPT_DIR = SCRIPT.parent.resolve()

CLAUDE_HOME = Path.home() / ".claude"
PROJECTS_PATH = CLAUDE_HOME / "projects"

HISTORY_FILE = Path.home() / ".cc_query_history"
HISTORY_SIZE = 100

PROMPT = "cc-query> "
CONTINUATION_PROMPT = "      -> "

EPOCH = datetime(1970, 1, 1, tzinfo=pytz.utc)

# Logging setup
log = logging.getLogger(__name__)

# A single glob, or an ordered tuple of globs when a session filter also
# matches sub-agent files.
FilePattern = str | tuple[str, ...]

# ============================================================================
# Errors
# ============================================================================


class CcQueryError(Exception):
    """Base class for cc_query failures."""


class NoSessionsError(CcQueryError):
    """Raised when discovery finds no session or sub-agent files."""

    def __init__(self, message: str = "No Claude Code sessions found") -> None:
        super().__init__(message)


class NoProjectDataError(NoSessionsError):
    """Raised when a project path has no log directory (or an empty one)."""

    def __init__(self, project_path: str, expected_dir: Path) -> None:
        self.project_path = project_path
        self.expected_dir = expected_dir
        super().__init__(f"No Claude Code data found for {project_path}\nExpected: {expected_dir}")


class DirectoryNotFoundError(NoSessionsError):
    """Raised when an explicit data directory does not exist."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir
        super().__init__(f"No JSONL files found in {data_dir}")


class EngineQueryError(CcQueryError):
    """A statement was rejected by DuckDB."""


# ============================================================================
# Log Discovery
# ============================================================================


@dataclass(frozen=True)
class FileCounts:
    """Classified ``.jsonl`` counts under one root."""

    sessions: int = 0
    agents: int = 0
    total: int = 0

    def __add__(self, other: FileCounts) -> FileCounts:
        return FileCounts(
            self.sessions + other.sessions,
            self.agents + other.agents,
            self.total + other.total,
        )


@dataclass(frozen=True)
class SessionInfo:
    """Result of discovery, fixed for the lifetime of a QuerySession."""

    session_count: int
    agent_count: int
    project_count: int
    file_pattern: FilePattern


def resolve_project_path(project_path: str) -> Path:
    """Expand ``~`` and resolve relative paths against $CLAUDE_PROJECT_DIR (or cwd)."""
    if project_path == "~" or project_path.startswith("~/"):
        project_path = str(Path.home()) + project_path[1:]
    path = Path(project_path)
    if not path.is_absolute():
        base_dir = os.environ.get("CLAUDE_PROJECT_DIR") or os.getcwd()
        path = Path(base_dir) / path
    return path.resolve()


def project_slug(project_path: str) -> str:
    """Claude Code's directory name for a project: '/' and '.' become '-'."""
    return str(resolve_project_path(project_path)).replace("/", "-").replace(".", "-")


def resolve_project_dir(project_path: str, projects_base: Path | None = None) -> Path:
    """Log directory for a project under the projects root."""
    return (projects_base or PROJECTS_PATH) / project_slug(project_path)


def count_log_files(root: Path, session_filter: str | None = None) -> FileCounts:
    """Walk ``root`` and classify every ``.jsonl`` file.

    ``<sid>.jsonl`` directly under root is a session file and
    ``<sid>/subagents/agent-<id>.jsonl`` is a sub-agent file. With a filter,
    session files match on their basename and sub-agent files match on their
    session directory, never on their own name. A missing root counts as empty.
    """
    if not root.is_dir():
        return FileCounts()

    sessions = agents = total = 0
    for path in root.rglob("*.jsonl"):
        if not path.is_file():
            continue
        total += 1
        parts = path.relative_to(root).parts
        name = path.name
        if len(parts) == 1 and not name.startswith("agent-"):
            if not session_filter or name.startswith(session_filter):
                sessions += 1
        elif len(parts) == 3 and parts[1] == "subagents" and name.startswith("agent-"):
            if not session_filter or parts[0].startswith(session_filter):
                agents += 1
    return FileCounts(sessions, agents, total)


def build_file_pattern(root: str, session_filter: str | None, counts: FileCounts) -> FilePattern:
    """Glob(s) for DuckDB's readers under ``root``.

    Filtered globs are only emitted for file kinds that matched: DuckDB refuses
    a glob that finds nothing.
    """
    if not session_filter:
        return f"{root}/**/*.jsonl"
    session_glob = f"{root}/{session_filter}*.jsonl"
    agent_glob = f"{root}/{session_filter}*/subagents/*.jsonl"
    if counts.agents == 0:
        return session_glob
    if counts.sessions == 0:
        return agent_glob
    return (session_glob, agent_glob)


def _discover_data_dir(data_dir: Path, session_filter: str | None) -> SessionInfo:
    if not data_dir.is_dir():
        raise DirectoryNotFoundError(data_dir)

    counts = count_log_files(data_dir, session_filter)
    log.debug(f"{data_dir}: {counts}")
    if counts.sessions + counts.agents == 0:
        if counts.total > 0 and not session_filter:
            # Unrecognised naming: every .jsonl file counts as a session
            log.info(f"No session layout found in {data_dir}, using all {counts.total} JSONL files")
            return SessionInfo(counts.total, 0, 1, f"{data_dir}/**/*.jsonl")
        raise NoSessionsError(f"No JSONL files found in {data_dir}")

    pattern = build_file_pattern(str(data_dir), session_filter, counts)
    return SessionInfo(counts.sessions, counts.agents, 1, pattern)


def _discover_project(project_path: str, session_filter: str | None, projects_base: Path) -> SessionInfo:
    project_dir = resolve_project_dir(project_path, projects_base)
    counts = count_log_files(project_dir, session_filter)
    log.debug(f"{project_dir}: {counts}")
    if counts.sessions + counts.agents == 0:
        raise NoProjectDataError(project_path, project_dir)

    pattern = build_file_pattern(str(project_dir), session_filter, counts)
    return SessionInfo(counts.sessions, counts.agents, 1, pattern)


def _discover_all_projects(session_filter: str | None, projects_base: Path) -> SessionInfo:
    project_dirs = sorted(p for p in projects_base.iterdir() if p.is_dir()) if projects_base.is_dir() else []

    counts = FileCounts()
    for project_dir in project_dirs:
        counts += count_log_files(project_dir, session_filter)
    log.debug(f"{projects_base}: {len(project_dirs)} projects, {counts}")
    if counts.sessions + counts.agents == 0:
        raise NoSessionsError()

    pattern = build_file_pattern(f"{projects_base}/*", session_filter, counts)
    return SessionInfo(counts.sessions, counts.agents, len(project_dirs), pattern)


def get_session_files(
    project_path: str | None = None,
    session_filter: str | None = None,
    data_dir: str | Path | None = None,
    projects_base: Path | None = None,
) -> SessionInfo:
    """Locate the logs to query.

    An explicit ``data_dir`` wins over ``project_path``; with neither, every
    project under the projects root is included.

    Raises:
        NoSessionsError: nothing matched (session_count + agent_count == 0).
    """
    projects_base = projects_base or PROJECTS_PATH
    if data_dir is not None:
        info = _discover_data_dir(Path(data_dir).expanduser().resolve(), session_filter)
    elif project_path is not None:
        info = _discover_project(project_path, session_filter, projects_base)
    else:
        info = _discover_all_projects(session_filter, projects_base)
    log.debug(f"File pattern: {info.file_pattern}")
    return info


# ============================================================================
# Schema and Views
# ============================================================================

# Declared rather than inferred so every view has a stable shape regardless of
# which event kinds the matched files happen to contain.
COLUMN_SCHEMA: dict[str, str] = {
    # Common fields
    "uuid": "UUID",
    "type": "VARCHAR",
    "subtype": "VARCHAR",
    "parentUuid": "UUID",
    "timestamp": "TIMESTAMP",
    "sessionId": "UUID",
    "cwd": "VARCHAR",
    "gitBranch": "VARCHAR",
    "slug": "VARCHAR",
    "version": "VARCHAR",
    "isSidechain": "BOOLEAN",
    "userType": "VARCHAR",
    "message": "JSON",
    # User
    "isCompactSummary": "BOOLEAN",
    "isMeta": "BOOLEAN",
    "isVisibleInTranscriptOnly": "BOOLEAN",
    "sourceToolUseID": "VARCHAR",
    "thinkingMetadata": "JSON",
    "todos": "JSON",
    "toolUseResult": "JSON",
    # Assistant
    "error": "JSON",
    "isApiErrorMessage": "BOOLEAN",
    "requestId": "VARCHAR",
    "sourceToolAssistantUUID": "UUID",
    # System
    "content": "VARCHAR",
    "compactMetadata": "JSON",
    "hasOutput": "BOOLEAN",
    "hookCount": "INTEGER",
    "hookErrors": "JSON",
    "hookInfos": "JSON",
    "level": "VARCHAR",
    "logicalParentUuid": "UUID",
    "maxRetries": "INTEGER",
    "preventedContinuation": "BOOLEAN",
    "retryAttempt": "INTEGER",
    "retryInMs": "INTEGER",
    "stopReason": "VARCHAR",
    "toolUseID": "VARCHAR",
}

DERIVED_COLUMNS = ["file", "isAgent", "agentId", "project", "rownum"]

FILE_TOOLS = ["Read", "Write", "Edit", "Glob", "Grep"]


@dataclass(frozen=True)
class ViewDefinition:
    name: str
    description: str
    select_sql: str

    @property
    def ddl(self) -> str:
        return f"CREATE OR REPLACE VIEW {self.name} AS\n{self.select_sql.strip()};"


def sql_quote(text: str) -> str:
    """Single-quoted SQL literal with embedded quotes doubled."""
    return "'" + text.replace("'", "''") + "'"


def format_file_pattern(pattern: FilePattern) -> str:
    """SQL literal for a FilePattern: a string, or a list of strings."""
    if isinstance(pattern, str):
        return sql_quote(pattern)
    return "[" + ", ".join(sql_quote(p) for p in pattern) + "]"


def _columns_struct() -> str:
    return "{" + ", ".join(f"{sql_quote(name)}: {sql_quote(kind)}" for name, kind in COLUMN_SCHEMA.items()) + "}"


def build_views(file_pattern: FilePattern) -> list[ViewDefinition]:
    """View definitions in creation order; each only references earlier views."""
    source = format_file_pattern(file_pattern)
    base_columns = ",\n      ".join(COLUMN_SCHEMA)
    file_tools = ", ".join(sql_quote(t) for t in FILE_TOOLS)

    return [
        ViewDefinition(
            "messages",
            "All messages (user, assistant, system)",
            f"""
    SELECT
      {base_columns},
      regexp_extract(filename, '[^/]+$') AS file,
      starts_with(regexp_extract(filename, '[^/]+$'), 'agent-') AS isAgent,
      CASE WHEN starts_with(regexp_extract(filename, '[^/]+$'), 'agent-')
           THEN regexp_extract(regexp_extract(filename, '[^/]+$'), 'agent-([^.]+)', 1)
           ELSE NULL
      END AS agentId,
      regexp_extract(filename, '/projects/([^/]+)/', 1) AS project,
      ordinality AS rownum
    FROM read_ndjson(
      {source},
      filename=true,
      ignore_errors=true,
      columns={_columns_struct()}
    ) WITH ORDINALITY
    WHERE type IN ('user', 'assistant', 'system')
    """,
        ),
        ViewDefinition(
            "user_messages",
            "User messages with user-specific fields",
            """
    SELECT
      uuid, parentUuid, timestamp, sessionId, cwd, gitBranch, slug, version,
      isSidechain, userType, message, isCompactSummary, isMeta,
      isVisibleInTranscriptOnly, sourceToolUseID, sourceToolAssistantUUID,
      thinkingMetadata, todos, toolUseResult, file, isAgent, agentId, project, rownum
    FROM messages
    WHERE type = 'user'
    """,
        ),
        ViewDefinition(
            "human_messages",
            "Human-typed messages (excludes tool results)",
            """
    SELECT
      uuid, parentUuid, timestamp, sessionId, cwd, gitBranch, slug, version,
      isSidechain, message->>'content' AS content, file, project, rownum
    FROM user_messages
    WHERE json_type(message->'content') = 'VARCHAR'
      AND (agentId IS NULL OR agentId = '')
      AND (isMeta IS NULL OR isMeta = false)
    """,
        ),
        ViewDefinition(
            "assistant_messages",
            "Assistant messages with error, requestId, etc.",
            """
    SELECT
      uuid, parentUuid, timestamp, sessionId, cwd, gitBranch, slug, version,
      isSidechain, userType, message, error, isApiErrorMessage, requestId,
      file, isAgent, agentId, project, rownum
    FROM messages
    WHERE type = 'assistant'
    """,
        ),
        ViewDefinition(
            "system_messages",
            "System messages with hooks, retry info, etc.",
            """
    SELECT
      uuid, subtype, parentUuid, timestamp, sessionId, cwd, gitBranch, slug,
      version, isSidechain, userType, content, error, compactMetadata,
      hasOutput, hookCount, hookErrors, hookInfos, level, logicalParentUuid,
      maxRetries, preventedContinuation, retryAttempt, retryInMs, stopReason,
      toolUseID, isMeta, file, isAgent, agentId, project, rownum
    FROM messages
    WHERE type = 'system'
    """,
        ),
        ViewDefinition(
            "raw_messages",
            "Raw JSON for each message by uuid",
            f"""
    SELECT
      TRY_CAST(json->>'uuid' AS UUID) AS uuid,
      json AS raw
    FROM read_ndjson_objects({source}, ignore_errors=true)
    WHERE json->>'uuid' IS NOT NULL AND length(json->>'uuid') > 0
    """,
        ),
        ViewDefinition(
            "tool_uses",
            "All tool calls with unnested content blocks",
            """
    WITH array_messages AS (
      SELECT * FROM assistant_messages
      WHERE json_type(message->'content') = 'ARRAY'
    )
    SELECT
      m.uuid,
      m.timestamp,
      m.sessionId,
      m.isAgent,
      m.agentId,
      m.project,
      m.rownum,
      block->>'name' AS tool_name,
      block->>'id' AS tool_id,
      block->'input' AS tool_input,
      row_number() OVER (PARTITION BY m.uuid ORDER BY (SELECT NULL)) - 1 AS block_index
    FROM array_messages m,
    LATERAL UNNEST(CAST(m.message->'content' AS JSON[])) AS t(block)
    WHERE block->>'type' = 'tool_use'
    """,
        ),
        ViewDefinition(
            "tool_results",
            "Tool results with duration and error status",
            """
    WITH array_messages AS (
      SELECT * FROM user_messages
      WHERE json_type(message->'content') = 'ARRAY'
    )
    SELECT
      m.uuid,
      m.timestamp,
      m.sessionId,
      m.isAgent,
      m.agentId,
      m.project,
      m.rownum,
      block->>'tool_use_id' AS tool_use_id,
      TRY_CAST(block->>'is_error' AS BOOLEAN) AS is_error,
      block->>'content' AS result_content,
      TRY_CAST(m.toolUseResult->>'durationMs' AS INTEGER) AS duration_ms,
      m.sourceToolAssistantUUID
    FROM array_messages m,
    LATERAL UNNEST(CAST(m.message->'content' AS JSON[])) AS t(block)
    WHERE block->>'type' = 'tool_result'
    """,
        ),
        ViewDefinition(
            "token_usage",
            "Token counts per assistant message",
            """
    SELECT
      uuid,
      timestamp,
      sessionId,
      isAgent,
      agentId,
      project,
      message->>'model' AS model,
      message->>'stop_reason' AS stop_reason,
      TRY_CAST(message->'usage'->>'input_tokens' AS BIGINT) AS input_tokens,
      TRY_CAST(message->'usage'->>'output_tokens' AS BIGINT) AS output_tokens,
      TRY_CAST(message->'usage'->>'cache_read_input_tokens' AS BIGINT) AS cache_read_tokens,
      TRY_CAST(message->'usage'->>'cache_creation_input_tokens' AS BIGINT) AS cache_creation_tokens
    FROM assistant_messages
    WHERE (message->'usage') IS NOT NULL
    """,
        ),
        ViewDefinition(
            "bash_commands",
            "Bash tool calls with extracted command",
            """
    SELECT
      uuid,
      timestamp,
      sessionId,
      isAgent,
      agentId,
      project,
      rownum,
      tool_id,
      tool_input->>'command' AS command,
      tool_input->>'description' AS description,
      TRY_CAST(tool_input->>'timeout' AS INTEGER) AS timeout,
      TRY_CAST(tool_input->>'run_in_background' AS BOOLEAN) AS run_in_background
    FROM tool_uses
    WHERE tool_name = 'Bash'
    """,
        ),
        ViewDefinition(
            "file_operations",
            "Read/Write/Edit/Glob/Grep with file paths",
            f"""
    SELECT
      uuid,
      timestamp,
      sessionId,
      isAgent,
      agentId,
      project,
      rownum,
      tool_id,
      tool_name,
      COALESCE(tool_input->>'file_path', tool_input->>'path') AS file_path,
      tool_input->>'pattern' AS pattern
    FROM tool_uses
    WHERE tool_name IN ({file_tools})
    """,
        ),
    ]


VIEW_NAMES = [view.name for view in build_views("")]


def build_create_views_sql(file_pattern: FilePattern) -> str:
    """All view DDL as one script."""
    return "\n\n".join(view.ddl for view in build_views(file_pattern)) + "\n"


# ============================================================================
# Value Codec
# ============================================================================


def format_timestamp(value: datetime | int) -> str:
    """``YYYY-MM-DD HH:MM:SS.mmm`` in UTC from a datetime or epoch microseconds."""
    if isinstance(value, int):
        value = EPOCH + timedelta(microseconds=value)
    elif value.tzinfo is not None:
        value = value.astimezone(pytz.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}"


def uuid_from_hugeint(value: int) -> str:
    """Decode DuckDB's HUGEINT storage of a UUID (top bit inverted)."""
    if value < 0:
        value += 1 << 128
    return str(uuid.UUID(int=value ^ (1 << 127)))


def uuid_to_hugeint(text: str) -> int:
    value = uuid.UUID(text).int ^ (1 << 127)
    if value >= 1 << 127:
        value -= 1 << 128
    return value


def format_value(value: Any) -> str:
    """Canonical string for one result cell, shared by every renderer."""
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (time, timedelta)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, default=format_value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


# ============================================================================
# Result Rendering
# ============================================================================


def format_table(columns: list[str], rows: list[list[str]]) -> str:
    """Box-drawn table with a row-count footer."""
    if not columns:
        return ""
    if not rows:
        return " | ".join(columns) + "\n(0 rows)"

    widths = [len(col) for col in columns]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    def rule(left: str, mid: str, right: str) -> str:
        return left + mid.join("─" * (w + 2) for w in widths) + right

    def line(cells: list[str]) -> str:
        return "│ " + " │ ".join(cell.ljust(w) for cell, w in zip(cells, widths, strict=True)) + " │"

    lines = [rule("┌", "┬", "┐"), line(columns), rule("├", "┼", "┤")]
    lines.extend(line(row) for row in rows)
    lines.append(rule("└", "┴", "┘"))
    lines.append(f"({len(rows)} {'row' if len(rows) == 1 else 'rows'})")
    return "\n".join(lines)


def format_tsv(columns: list[str], rows: list[list[str]]) -> str:
    """Header line plus one tab-separated line per row."""
    if not columns:
        return ""
    return "\n".join(["\t".join(columns), *("\t".join(row) for row in rows)])


@dataclass
class ResultSet:
    """Column names and already-formatted cells of one statement."""

    columns: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    def to_table(self) -> str:
        return format_table(self.columns, self.rows)

    def to_tsv(self) -> str:
        return format_tsv(self.columns, self.rows)


# ============================================================================
# Query Session
# ============================================================================


class QuerySession:
    """One in-memory DuckDB connection with the log views installed.

    Build with :meth:`create`; use as a context manager so the connection is
    closed on every exit path.
    """

    def __init__(self, info: SessionInfo, connection: duckdb.DuckDBPyConnection) -> None:
        self.info = info
        self._connection: duckdb.DuckDBPyConnection | None = connection

    @classmethod
    def create(
        cls,
        project_path: str | None = None,
        session_filter: str | None = None,
        data_dir: str | Path | None = None,
        projects_base: Path | None = None,
    ) -> QuerySession:
        """Discover logs, connect and install views.

        Raises:
            NoSessionsError: nothing to query.
            EngineQueryError: a view failed to install.
        """
        info = get_session_files(project_path, session_filter, data_dir, projects_base)
        session = cls(info, duckdb.connect(":memory:"))
        try:
            session.install_views()
        except EngineQueryError:
            session.close()
            raise
        return session

    @property
    def closed(self) -> bool:
        return self._connection is None

    def _conn(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise CcQueryError("Session is closed")
        return self._connection

    def install_views(self) -> None:
        """(Re)create every view; safe to call repeatedly."""
        conn = self._conn()
        for view in build_views(self.info.file_pattern):
            log.debug(f"Creating view {view.name}")
            try:
                conn.execute(view.ddl)
            except duckdb.Error as e:
                raise EngineQueryError(f"Failed to create view {view.name}: {e}") from e

    def query(self, sql: str) -> ResultSet:
        """Run one statement and format every cell.

        Raises:
            EngineQueryError: DuckDB rejected the statement; the session stays usable.
        """
        conn = self._conn()
        log.debug(f"Executing SQL:\n{sql[:500]}")
        try:
            cursor = conn.execute(sql)
            if cursor.description is None:
                return ResultSet()
            columns = [desc[0] for desc in cursor.description]
            rows = cursor.fetchall()
        except duckdb.Error as e:
            raise EngineQueryError(str(e)) from e
        return ResultSet(columns, [[format_value(v) for v in row] for row in rows])

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> QuerySession:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


# ============================================================================
# REPL
# ============================================================================

HELP_TEXT = dedent("""
Commands:
  .help, .h      Show this help
  .schema, .s    Show schemas for all views
  .schema <view> Show schema for a specific view
  .quit, .q      Exit

Views:
{views}

Example queries:
  -- Count messages by type
  SELECT type, count(*) as cnt FROM messages GROUP BY type ORDER BY cnt DESC;

  -- Messages by project (when querying all projects)
  SELECT project, count(*) as cnt FROM messages GROUP BY project ORDER BY cnt DESC;

  -- Recent assistant messages
  SELECT timestamp, message->>'role', message->>'stop_reason'
  FROM assistant_messages ORDER BY timestamp DESC LIMIT 10;

  -- Most used tools
  SELECT tool_name, count(*) as cnt FROM tool_uses GROUP BY tool_name ORDER BY cnt DESC;

  -- Sessions summary
  SELECT sessionId, count(*) as msgs, min(timestamp) as started
  FROM messages GROUP BY sessionId ORDER BY started DESC;

  -- System message subtypes
  SELECT subtype, count(*) FROM system_messages GROUP BY subtype;

  -- Agent vs main session breakdown
  SELECT isAgent, count(*) FROM messages GROUP BY isAgent;

JSON field access (DuckDB syntax):
  message->'field'        Access JSON field (returns JSON)
  message->>'field'       Access JSON field as string
  message->'a'->'b'       Nested access

Useful functions:
  arr[n]                 Get nth element (1-indexed)
  UNNEST(arr)            Expand array into rows
  json_extract_string()  Extract string from JSON
""").format(views="\n".join(f"  {v.name:<20}{v.description}" for v in build_views("")))


def split_statements(text: str) -> list[str]:
    """Split piped input on ';' and drop blanks. Not quote aware."""
    return [stmt.strip() for stmt in text.split(";") if stmt.strip()]


class ReplState(Enum):
    READY = "ready"
    ACCUMULATING = "accumulating"


class Repl:
    """Statement loop over a QuerySession, interactive or piped."""

    def __init__(
        self,
        session: QuerySession,
        session_filter: str | None = None,
        history_path: Path | None = HISTORY_FILE,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.session = session
        self.session_filter = session_filter
        self.history_path = history_path
        self._out = out
        self._err = err
        self.state = ReplState.READY
        self.buffer: list[str] = []
        self.history: list[str] = []

    @property
    def out(self) -> TextIO:
        return self._out or sys.stdout

    @property
    def err(self) -> TextIO:
        return self._err or sys.stderr

    # -- history -------------------------------------------------------------

    def load_history(self) -> None:
        if self.history_path is None:
            return
        try:
            lines = self.history_path.read_text(encoding="utf-8").splitlines()
        except OSError:
            return
        self.history = [line for line in lines if line.strip()][-HISTORY_SIZE:]

    def save_history(self) -> None:
        if self.history_path is None:
            return
        try:
            self.history_path.write_text("\n".join(self.history[-HISTORY_SIZE:]) + "\n", encoding="utf-8")
        except OSError as e:
            log.debug(f"Could not save history to {self.history_path}: {e}")

    def add_history(self, entry: str) -> None:
        entry = " ".join(entry.split())
        if entry:
            self.history.append(entry)
            del self.history[:-HISTORY_SIZE]

    # -- execution -----------------------------------------------------------

    def execute(self, sql: str, tsv: bool = False) -> str | None:
        """Render one statement, or report its error and return None."""
        try:
            result = self.session.query(sql)
        except EngineQueryError as e:
            print(f"Error: {e}", file=self.err)
            return None
        return result.to_tsv() if tsv else result.to_table()

    def _print_result(self, sql: str) -> None:
        output = self.execute(sql)
        if output:
            print(output, file=self.out)

    def handle_dot_command(self, command: str) -> bool:
        """Run a dot-command. Returns True when the loop should exit."""
        words = command.split()
        cmd = words[0].lower() if words else command.lower()

        if cmd in (".quit", ".exit", ".q"):
            return True
        if cmd in (".help", ".h"):
            print(HELP_TEXT, file=self.out)
        elif cmd in (".schema", ".s"):
            if len(words) > 1:
                self._print_result(f"DESCRIBE {words[1]}")
            else:
                for view in VIEW_NAMES:
                    print(f"\n=== {view} ===", file=self.out)
                    self._print_result(f"DESCRIBE {view}")
        else:
            print(f"Unknown command: {command}. Type .help for usage.", file=self.out)
        return False

    def reset(self) -> None:
        """Discard any partially entered statement."""
        self.buffer = []
        self.state = ReplState.READY

    def feed_line(self, line: str) -> bool:
        """Advance the accumulation state machine by one input line.

        Returns True when the loop should exit.
        """
        trimmed = line.strip()
        if self.state is ReplState.READY:
            if not trimmed:
                return False
            if trimmed.startswith("."):
                self.add_history(trimmed)
                return self.handle_dot_command(trimmed)
            self.buffer = [line]
        else:
            self.buffer.append(line)

        if not trimmed.endswith(";"):
            self.state = ReplState.ACCUMULATING
            return False

        sql = "\n".join(self.buffer).strip()
        self.buffer = []
        self.state = ReplState.READY
        self.add_history(sql)
        self._print_result(sql)
        return False

    @property
    def prompt(self) -> str:
        return PROMPT if self.state is ReplState.READY else CONTINUATION_PROMPT

    def banner(self) -> str:
        info = self.session.info
        projects = f"{info.project_count} project(s), " if info.project_count > 1 else ""
        lines = [f"Loaded {projects}{info.session_count} session(s), {info.agent_count} agent file(s)"]
        if self.session_filter:
            lines.append(f"Filter: {self.session_filter}*")
        lines.append('Type ".help" for usage hints.\n')
        return "\n".join(lines)

    def run_interactive(self, read_line: Callable[[str], str] | None = None) -> None:
        """Prompt until .quit, EOF or Ctrl-C; history is saved on every path."""
        self.load_history()
        if read_line is None:
            _enable_line_editing(self.history)
            read_line = input

        print(self.banner(), file=self.out)
        try:
            while True:
                try:
                    line = read_line(self.prompt)
                except (EOFError, KeyboardInterrupt):
                    print(file=self.out)
                    break
                try:
                    if self.feed_line(line):
                        break
                except KeyboardInterrupt:
                    # Ctrl-C during a query drops the statement, not the session
                    print(file=self.out)
                    self.reset()
            print("Goodbye!", file=self.out)
        finally:
            self.save_history()

    def run_piped(self, text: str) -> None:
        """Run every statement in ``text``; TSV output, '---' between outputs."""
        printed = False
        for statement in split_statements(text):
            if statement.startswith("."):
                if self.handle_dot_command(statement):
                    break
                continue
            output = self.execute(statement, tsv=True)
            if not output:
                continue
            if printed:
                print("---", file=self.out)
            print(output, file=self.out)
            printed = True


def _enable_line_editing(history: list[str]) -> None:
    # Imported lazily: readline can write terminal control bytes to stdout,
    # which piped output must never contain.
    try:
        import readline
    except ImportError:
        return
    readline.clear_history()
    for entry in history:
        readline.add_history(entry)
    readline.set_history_length(HISTORY_SIZE)


# ============================================================================
# CLI Interface
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="cc-query",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=dedent(f"""\
        {SCRIPT_NAME} - Interactive SQL over Claude Code session logs using DuckDB.

        Session files are read from:
            {PROJECTS_PATH}/{{project-slug}}/{{session_uuid}}.jsonl
            {PROJECTS_PATH}/{{project-slug}}/{{session_uuid}}/subagents/agent-*.jsonl

        With no project path every project is included. Piped stdin runs each
        ';'-separated statement and prints TSV, with '---' between results.

        Examples:
            uv run {SCRIPT_NAME}.py
            uv run {SCRIPT_NAME}.py ~/code/my-project
            uv run {SCRIPT_NAME}.py -s abc123 .
            uv run {SCRIPT_NAME}.py -d ./test/fixtures
            echo "SELECT count(*) FROM messages;" | uv run {SCRIPT_NAME}.py .
        """),
    )
    parser.add_argument("project_path", nargs="?", help="Project directory (default: all projects)")
    parser.add_argument("-s", "--session", metavar="PREFIX", help="Only sessions whose id starts with PREFIX")
    parser.add_argument("-d", "--data-dir", metavar="DIR", help="Read JSONL files from DIR (overrides project path)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Show only errors")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING,
        format="%(asctime)s|%(name)s|%(levelname)s|%(filename)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(
    args: argparse.Namespace,
    projects_base: Path | None = None,
    stdin: TextIO | None = None,
    history_path: Path | None = HISTORY_FILE,
) -> int:
    """Main entry point. Returns the process exit code."""
    configure_logging(getattr(args, "verbose", False), getattr(args, "quiet", False))
    stdin = stdin or sys.stdin

    try:
        session = QuerySession.create(
            project_path=args.project_path,
            session_filter=args.session,
            data_dir=args.data_dir,
            projects_base=projects_base,
        )
    except CcQueryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with session:
        repl = Repl(session, session_filter=args.session, history_path=history_path)
        if stdin.isatty():
            repl.run_interactive()
            return 0

        try:
            text = stdin.read()
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: Failed to read stdin: {e}", file=sys.stderr)
            return 1
        repl.run_piped(text)
    return 0


def cli() -> None:
    """Console-script entry point."""
    sys.exit(main(build_parser().parse_args()))


if __name__ == "__main__":  # pragma: no cover
    cli()
