"""Generic result-set table: column inference, paging, CSV export and HTML."""

from dataclasses import dataclass, field
from html import escape
from typing import Any, Dict, List, Optional, Sequence
import json
import math

from text2sql_chat.store.models import RESULTS_LIMIT_OPTIONS

Row = Dict[str, Any]

DEFAULT_PAGE_SIZE = 50
CSV_FILENAME = "query-results.csv"


def infer_columns(rows: Sequence[Row]) -> List[str]:
    """Union of row keys in first-seen order.

    For the usual homogeneous result set this is just the first row's keys;
    a later row with extra keys adds columns instead of losing them.
    """
    columns: Dict[str, None] = {}
    for row in rows:
        for key in row:
            columns.setdefault(key, None)
    return list(columns)


def format_cell(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def _cell(row: Row, column: str) -> str:
    return format_cell(row[column]) if column in row else ""


def _csv_field(text: str) -> str:
    # Quote only when the field holds a comma, a quote or a line break.
    if any(ch in text for ch in (",", '"', "\n", "\r")):
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv(rows: Sequence[Row], columns: Sequence[str]) -> str:
    """Header plus one line per row joined by ``\\n``, no trailing newline."""
    lines = [",".join(_csv_field(str(column)) for column in columns)]
    for row in rows:
        lines.append(",".join(_csv_field(_cell(row, column)) for column in columns))
    return "\n".join(lines)


@dataclass
class ResultsTableView:
    columns: List[str]
    rows: List[Row]
    row_count: int
    limit: Optional[int]
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    limit_options: List[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0

    @property
    def is_limited(self) -> bool:
        return self.limit is not None and self.row_count == self.limit

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(self.row_count / self.page_size))

    @property
    def page_rows(self) -> List[Row]:
        start = (self.page - 1) * self.page_size
        return self.rows[start:start + self.page_size]


def build_results_table(
    rows: Sequence[Row],
    limit: Optional[int],
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> ResultsTableView:
    rows = list(rows)
    view = ResultsTableView(
        columns=infer_columns(rows),
        rows=rows,
        row_count=len(rows),
        limit=limit,
        page_size=max(1, page_size),
        limit_options=[option for option in RESULTS_LIMIT_OPTIONS if limit is None or option > limit],
    )
    view.page = min(max(1, page), view.page_count)
    return view


# ============================================================
# HTML
# ============================================================
def _table_html(view: ResultsTableView) -> str:
    head = "".join(f"<th>{escape(column)}</th>" for column in view.columns)
    body = "".join(
        "<tr>" + "".join(f"<td>{escape(_cell(row, column))}</td>" for column in view.columns) + "</tr>"
        for row in view.page_rows
    )
    return (
        "<table class='results-table' data-testid='query-results-table'>"
        f"<thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"
    )


def _pager_html(view: ResultsTableView, base_url: str) -> str:
    if view.page_count <= 1:
        return ""
    links = []
    if view.page > 1:
        links.append(f"<a href='{base_url}?page={view.page - 1}'>&laquo; Prev</a>")
    links.append(f"<span>Page {view.page} of {view.page_count}</span>")
    if view.page < view.page_count:
        links.append(f"<a href='{base_url}?page={view.page + 1}'>Next &raquo;</a>")
    return "<div class='results-pager'>" + " ".join(links) + "</div>"


def _limit_notice_html(view: ResultsTableView, message_id: str) -> str:
    options = "".join(
        f"<option value='{option}'>{option} rows</option>" for option in view.limit_options
    )
    selector = ""
    if options:
        selector = (
            "<label class='limit-select'>Limit results to: "
            f"<select data-action='change-limit' data-message-id='{escape(message_id)}' "
            "data-testid='query-results-limit-select'>"
            f"<option value='' selected disabled>{view.limit} rows</option>{options}</select></label>"
        )
    return (
        "<div class='results-limited' data-testid='results-limited'>"
        f"<span title='Results are limited to keep the page responsive. "
        f"Pick a larger limit to fetch more rows.'>(Limited to only {view.limit} rows)</span>"
        f"{selector}</div>"
    )


def render_results_table(view: ResultsTableView, message_id: str, full_screen: bool = False) -> str:
    if view.is_empty:
        return "<div class='no-results' data-testid='no-results-found'>Success. No results found.</div>"

    quoted_id = escape(message_id)
    noun = "row" if view.row_count == 1 else "rows"
    full_screen_url = f"/chat/messages/{quoted_id}/results"
    actions = (
        f"<a class='btn' href='/api/chat/messages/{quoted_id}/results.csv' "
        "data-testid='query-results-table-export-csv-button'>Export CSV</a>"
    )
    if not full_screen:
        actions = (
            f"<a class='btn' href='{full_screen_url}' "
            "data-testid='query-results-table-full-screen-button'>Full screen</a>" + actions
        )

    parts = [
        "<div class='results'>",
        f"<div class='results-header'><span>{view.row_count} {noun} found</span>"
        f"<span class='results-actions'>{actions}</span></div>",
        _table_html(view),
    ]
    if full_screen:
        parts.append(_pager_html(view, full_screen_url))
    elif view.page_count > 1:
        parts.append(
            f"<div class='results-pager'>Showing {len(view.page_rows)} of {view.row_count} rows. "
            f"<a href='{full_screen_url}?page=2'>See more</a></div>"
        )
    if view.is_limited:
        parts.append(_limit_notice_html(view, message_id))
    parts.append("</div>")
    return "".join(parts)
