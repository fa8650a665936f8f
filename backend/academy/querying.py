"""
Pagination, filtering and sorting for list endpoints.

Why:
    Every admin and public table speaks the same query language
    (`page`, `pageSize`, `sortBy`, `order`, `filters`, `search`). Building the
    SQL from a per-entity *column map* keeps user input away from identifiers:
    only keys present in the map are ever turned into columns.

Filter semantics (per `(column, value)` pair):
    - string            → case-insensitive "contains"
    - list of 2 numbers → inclusive range `[min, max]` (either bound may be null)
    - other list        → `IN (...)` (empty lists are ignored)
    - number / bool     → equality
    - unknown column or empty value → ignored
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import json
import logging

from sqlalchemy import Select, String, and_, cast, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from backend.db.session import Base, to_jsonable


logger = logging.getLogger("hope.academy.querying")

ColumnMap = Mapping[str, ColumnElement[Any]]
Filter = Tuple[str, Any]

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _to_int(raw: Any, default: int) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def parse_filters(raw: Any) -> List[Filter]:
    """Parse the `filters` query parameter into `(column, value)` pairs.

    Accepts a JSON string or an already-decoded list. Each element is either a
    column filter `{"id": col, "value": v}` or a mapping of columns to values.
    Malformed input yields an empty list.
    """
    if raw is None or raw == "":
        return []
    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring malformed filters parameter")
            return []
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        return []
    out: List[Filter] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        if set(item.keys()) == {"id", "value"} and isinstance(item.get("id"), str):
            out.append((item["id"], item["value"]))
            continue
        for key, value in item.items():
            if isinstance(key, str):
                out.append((key, value))
    return out


@dataclass
class ListParams:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    sort_by: str = "created_at"
    order: str = "desc"
    filters: List[Filter] = field(default_factory=list)
    search: Optional[str] = None

    @classmethod
    def from_query(
        cls,
        query: Mapping[str, Any],
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        default_sort: str = "created_at",
        default_order: str = "desc",
    ) -> "ListParams":
        page = max(1, _to_int(query.get("page"), 1))
        page_size = _to_int(query.get("pageSize"), default_page_size)
        page_size = max(1, min(max_page_size, page_size))
        order = str(query.get("order") or default_order).lower()
        if order not in ("asc", "desc"):
            order = default_order
        search = (str(query.get("search") or "").strip()) or None
        return cls(
            page=page,
            page_size=page_size,
            sort_by=str(query.get("sortBy") or default_sort),
            order=order,
            filters=parse_filters(query.get("filters")),
            search=search,
        )

    @property
    def offset(self) -> int:
        return calculate_offset(self.page, self.page_size)

    def filter_value(self, column: str) -> Any:
        for key, value in self.filters:
            if key == column:
                return value
        return None

    def cache_key(self) -> Tuple[Any, ...]:
        return (
            self.page,
            self.page_size,
            self.sort_by,
            self.order,
            json.dumps(self.filters, sort_keys=True, default=str),
            self.search,
        )


def calculate_offset(page: int, page_size: int) -> int:
    return (max(1, page) - 1) * page_size


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def build_filter_conditions(filters: Iterable[Filter], column_map: ColumnMap) -> List[ColumnElement[bool]]:
    conditions: List[ColumnElement[bool]] = []
    for column, value in filters:
        col = column_map.get(column)
        if col is None:
            logger.debug("Ignoring filter on unknown column %s", column)
            continue
        if value is None or value == "":
            continue
        if isinstance(value, bool):
            conditions.append(col == value)
        elif _is_number(value):
            conditions.append(col == value)
        elif isinstance(value, str):
            conditions.append(cast(col, String).ilike(f"%{value}%"))
        elif isinstance(value, (list, tuple)):
            values = list(value)
            if not values:
                continue
            is_range = len(values) == 2 and all(v is None or _is_number(v) for v in values)
            if is_range:
                low, high = values
                if low is not None:
                    conditions.append(col >= low)
                if high is not None:
                    conditions.append(col <= high)
            else:
                conditions.append(col.in_(values))
    return conditions


def build_search_condition(search: Optional[str], columns: Sequence[ColumnElement[Any]]) -> Optional[ColumnElement[bool]]:
    if not search or not columns:
        return None
    pattern = f"%{search}%"
    return or_(*[cast(c, String).ilike(pattern) for c in columns])


def build_order_by(sort_by: str, order: str, column_map: ColumnMap, default: str = "created_at"):
    col = column_map.get(sort_by)
    if col is None:
        col = column_map.get(default)
        order = "desc"
    if col is None:
        return None
    return col.asc() if order == "asc" else col.desc()


def row_to_dict(row: Any) -> Dict[str, Any]:
    """Flatten a result row: ORM entities expand to their columns, labels stay as keys."""
    if isinstance(row, Base):
        return row.to_dict()
    data: Dict[str, Any] = {}
    for key, value in row._asdict().items():
        if isinstance(value, Base):
            data.update(value.to_dict())
        else:
            data[key] = to_jsonable(value)
    return data


def paginate(
    session: Session,
    stmt: Select,
    params: ListParams,
    column_map: ColumnMap,
    *,
    search_columns: Sequence[ColumnElement[Any]] = (),
    extra_conditions: Sequence[ColumnElement[bool]] = (),
    mapper: Callable[[Any], Dict[str, Any]] = row_to_dict,
    default_sort: str = "created_at",
) -> Dict[str, Any]:
    """Apply filters, search, sorting and paging to `stmt`.

    Returns:
        `{"data": [...], "total": n, "page": p, "pageSize": s}` where `total`
        counts the filtered rows before paging.
    """
    conditions = build_filter_conditions(params.filters, column_map)
    conditions.extend(extra_conditions)
    search_cond = build_search_condition(params.search, search_columns)
    if search_cond is not None:
        conditions.append(search_cond)
    if conditions:
        stmt = stmt.where(and_(*conditions))

    total = session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()

    order_clause = build_order_by(params.sort_by, params.order, column_map, default_sort)
    if order_clause is not None:
        stmt = stmt.order_by(order_clause)
    rows = session.execute(stmt.limit(params.page_size).offset(params.offset)).all()
    return {
        "data": [mapper(r) for r in rows],
        "total": int(total),
        "page": params.page,
        "pageSize": params.page_size,
    }
