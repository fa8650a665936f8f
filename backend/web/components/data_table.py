"""
Generic admin table with sortable headers and a pager.

Why:
    Every admin list page shows the same list envelope
    (`{data, total, page, pageSize}`) from the JSON API. One component renders
    them all so sorting, searching and paging behave identically everywhere.

Behavior:
    - Header links toggle `sortBy`/`order` while keeping `search`, `filters`
      and `pageSize`.
    - The pager links keep every list parameter and only change `page`.
    - `keep` names extra page parameters (e.g. a status filter) that
      survive sorting, searching and paging.
    - Cell values are escaped unless a column supplies its own formatter,
      which must return safe HTML.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlencode

from .base import Component


PRESERVED_PARAMS = ("search", "filters", "pageSize", "sortBy", "order")


@dataclass
class Column:
    key: str
    label: str
    sortable: bool = True
    # Receives the row and returns safe HTML
    render: Optional[Callable[[Dict[str, Any]], str]] = None


def _query(base: Mapping[str, Any], keep: Sequence[str] = (), **changes: Any) -> str:
    allowed = PRESERVED_PARAMS + tuple(keep)
    params = {k: v for k, v in base.items() if k in allowed and v not in (None, "")}
    for key, value in changes.items():
        if value in (None, ""):
            params.pop(key, None)
        else:
            params[key] = value
    return urlencode(params)


class Pagination(Component):
    """Previous/next pager with a "page x of y" summary."""

    def __init__(
        self, path: str, query: Mapping[str, Any], *, page: int, page_size: int, total: int, keep: Sequence[str] = ()
    ):
        self.path = path
        self.keep = tuple(keep)
        self.query = dict(query)
        self.page = max(1, int(page or 1))
        self.page_size = max(1, int(page_size or 10))
        self.total = max(0, int(total or 0))

    @property
    def page_count(self) -> int:
        return max(1, -(-self.total // self.page_size))

    def _href(self, page: int) -> str:
        return f"{self.path}?{_query(self.query, self.keep, page=page)}"

    def render(self) -> str:
        if self.total <= self.page_size and self.page == 1:
            return f'<p class="pager-summary">{self.total} result{"s" if self.total != 1 else ""}</p>'
        prev_html = (
            f'<a class="btn btn-secondary" rel="prev" href="{self.escape(self._href(self.page - 1))}" '
            f'hx-get="{self.escape(self._href(self.page - 1))}" hx-target="#main-content" hx-push-url="true">Previous</a>'
            if self.page > 1
            else '<span class="btn btn-secondary" aria-disabled="true">Previous</span>'
        )
        next_html = (
            f'<a class="btn btn-secondary" rel="next" href="{self.escape(self._href(self.page + 1))}" '
            f'hx-get="{self.escape(self._href(self.page + 1))}" hx-target="#main-content" hx-push-url="true">Next</a>'
            if self.page < self.page_count
            else '<span class="btn btn-secondary" aria-disabled="true">Next</span>'
        )
        return (
            '<nav class="pager" aria-label="Pagination">'
            f"{prev_html}"
            f'<span class="pager-summary">Page {self.page} of {self.page_count} ({self.total} total)</span>'
            f"{next_html}"
            "</nav>"
        )


class DataTable(Component):
    """Table over a list envelope returned by the admin API."""

    def __init__(
        self,
        columns: List[Column],
        listing: Mapping[str, Any],
        *,
        path: str,
        query: Mapping[str, Any],
        empty_text: str = "Nothing found.",
        search_placeholder: Optional[str] = "Search",
        row_href: Optional[Callable[[Dict[str, Any]], str]] = None,
        keep: Sequence[str] = (),
    ):
        self.columns = columns
        self.rows: List[Dict[str, Any]] = list(listing.get("data") or [])
        self.total = int(listing.get("total") or 0)
        self.page = int(listing.get("page") or 1)
        self.page_size = int(listing.get("pageSize") or 10)
        self.path = path
        self.query = dict(query)
        self.empty_text = empty_text
        self.search_placeholder = search_placeholder
        self.row_href = row_href
        self.keep = tuple(keep)

    def render(self) -> str:
        search_html = self._render_search() if self.search_placeholder else ""
        head = "".join(self._render_header(col) for col in self.columns)
        if self.rows:
            body = "".join(self._render_row(row) for row in self.rows)
        else:
            body = f'<tr><td colspan="{len(self.columns)}" class="empty-state">{self.escape(self.empty_text)}</td></tr>'
        pager = Pagination(self.path, self.query, page=self.page, page_size=self.page_size, total=self.total, keep=self.keep)
        return f"""
<section class="data-table">
    {search_html}
    <div class="table-scroll">
        <table class="table">
            <thead><tr>{head}</tr></thead>
            <tbody>{body}</tbody>
        </table>
    </div>
    {pager.render()}
</section>"""

    def _render_search(self) -> str:
        hidden = "".join(
            f'<input type="hidden" name="{key}" value="{self.escape(self.query[key])}">'
            for key in ("filters", "pageSize", "sortBy", "order") + self.keep
            if self.query.get(key)
        )
        return f"""
    <form class="table-search" method="get" action="{self.escape(self.path)}" role="search">
        {hidden}
        <input type="search" name="search" class="form-input" value="{self.escape(self.query.get('search', ''))}"
               placeholder="{self.escape(self.search_placeholder)}" aria-label="{self.escape(self.search_placeholder)}">
        <button type="submit" class="btn btn-secondary">Search</button>
    </form>"""

    def _render_header(self, col: Column) -> str:
        if not col.sortable:
            return f'<th scope="col">{self.escape(col.label)}</th>'
        current_sort = self.query.get("sortBy")
        current_order = (self.query.get("order") or "desc").lower()
        is_sorted = current_sort == col.key
        next_order = "asc" if is_sorted and current_order == "desc" else "desc"
        href = f"{self.path}?{_query(self.query, self.keep, sortBy=col.key, order=next_order, page=None)}"
        indicator = ""
        aria_sort = "none"
        if is_sorted:
            indicator = " ▲" if current_order == "asc" else " ▼"
            aria_sort = "ascending" if current_order == "asc" else "descending"
        return (
            f'<th scope="col" aria-sort="{aria_sort}">'
            f'<a href="{self.escape(href)}" class="sort-link">{self.escape(col.label)}{indicator}</a></th>'
        )

    def _render_row(self, row: Dict[str, Any]) -> str:
        cells = []
        for index, col in enumerate(self.columns):
            if col.render is not None:
                value = col.render(row)
            else:
                value = self.escape(format_cell(row.get(col.key)))
            if index == 0 and self.row_href is not None:
                value = f'<a href="{self.escape(self.row_href(row))}">{value}</a>'
            cells.append(f"<td>{value}</td>")
        return f"<tr>{''.join(cells)}</tr>"


def format_cell(value: Any) -> str:
    """Human-readable text for scalar cell values."""
    if value is None:
        return "—"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float):
        return f"{value:,.2f}"
    text = str(value)
    # ISO timestamps: show date and minutes only
    if len(text) >= 16 and text[4:5] == "-" and text[10:11] == "T":
        return text[:16].replace("T", " ")
    return text
