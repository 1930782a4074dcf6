from enum import Enum
from html import escape
from typing import Optional
import sqlparse

from text2sql_chat.core.logging import get_logger
from text2sql_chat.store.models import Message
from text2sql_chat.ui.results_table import build_results_table, render_results_table

logger = get_logger(__name__)


class MessageVariant(str, Enum):
    """Presentation bindings over the same run/limit operations."""

    # Run button plus the cycling "N results" button in the SQL header
    INTERACTIVE = "interactive"
    # Copy only; limit changes go through the table's selector
    TABLE_SELECTOR = "table-selector"


def format_sql(sql: str) -> str:
    """Pretty-print SQL for display, falling back to the raw text."""
    try:
        formatted = sqlparse.format(sql.rstrip("\n"), reindent=True, keyword_case="upper")
        return formatted.strip() or sql
    except Exception as e:
        logger.warning(f"SQL formatting failed, showing raw SQL: {e}")
        return sql


def _sql_block(message: Message, limit: int, running: bool, variant: MessageVariant) -> str:
    message_id = escape(message.id)
    controls = []
    if variant is MessageVariant.INTERACTIVE:
        plural = "" if limit == 1 else "s"
        controls.append(
            f"<button type='button' class='btn-ghost' data-action='cycle-limit'>{limit} result{plural}</button>"
        )
        disabled = " disabled" if running else ""
        label = "Running..." if running else "Run"
        controls.append(
            f"<button type='button' class='btn-ghost' data-action='run' "
            f"data-message-id='{message_id}'{disabled}>{label}</button>"
        )
    controls.append(
        f"<button type='button' class='btn-ghost' data-action='copy' "
        f"data-sql='{escape(message.sql or '')}'>Copy</button>"
    )
    dialect = escape(message.database_type or "postgresql")
    return (
        "<div class='sql-block'>"
        "<div class='sql-header'><span class='sql-title'>Generated SQL</span>"
        f"<span class='sql-controls'>{''.join(controls)}</span></div>"
        f"<pre class='sql' data-dialect='{dialect}'><code class='language-sql'>"
        f"{escape(format_sql(message.sql or ''))}</code></pre></div>"
    )


def _run_error_block(run_error: str) -> str:
    return (
        "<div class='query-error'><div class='query-error-title'>Query Error</div>"
        f"<pre>{escape(run_error)}</pre></div>"
    )


def render_message(
    message: Message,
    limit: int,
    running: bool = False,
    variant: MessageVariant = MessageVariant.INTERACTIVE,
) -> str:
    """HTML for one chat turn: text, SQL, result table and query error.

    ``limit`` is the conversation's current row limit; the truncation check
    prefers the limit the results were actually fetched with.
    """
    role_class = "user" if message.is_user else "assistant"
    parts = [
        f"<div class='message {role_class}' id='message-{escape(message.id)}'>",
        f"<div class='content'>{escape(message.content)}</div>",
    ]
    if message.sql:
        parts.append(_sql_block(message, limit, running, variant))
    if message.results is not None:
        table_limit: Optional[int] = message.results_limit or limit
        view = build_results_table(message.results, table_limit)
        parts.append(render_results_table(view, message.id))
    if message.run_error:
        parts.append(_run_error_block(message.run_error))
    parts.append("</div>")
    return "".join(parts)
