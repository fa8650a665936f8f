"""
Breadcrumb trail for Hope Institute pages.

Labels come from the route registry in `navigation`. Pages with dynamic
segments (course slugs, record ids) pass `labels` to show titles instead of
ids, e.g. `{"/courses/web-design": "Web Design"}`.
"""

import re
from typing import Dict, List, Optional, Pattern, Tuple

from .base import Component
from .navigation import ROUTE_MAP

# Grouping prefixes that have no page of their own
_SKIPPED_PREFIXES = frozenset({"/users", "/admin", "/admin/courses/edit"})


def _compile(pattern: str) -> Pattern[str]:
    parts = [
        f"(?P<{part[1:]}>[^/]+)" if part.startswith(":") else re.escape(part)
        for part in pattern.strip("/").split("/")
        if part
    ]
    return re.compile("^/" + "/".join(parts) + "$")


# Placeholder routes only; literal paths are looked up in ROUTE_MAP directly
_DYNAMIC_ROUTES: List[Tuple[Pattern[str], Dict[str, str]]] = [
    (_compile(pattern), meta) for pattern, meta in ROUTE_MAP.items() if ":" in pattern
]


def humanize(segment: str) -> str:
    words = segment.replace("-", " ").replace("_", " ").split()
    return " ".join(word.capitalize() for word in words) or "Home"


class Breadcrumbs(Component):
    """Server-rendered breadcrumb trail; empty on top-level pages."""

    def __init__(self, current_path: str = "/", labels: Optional[Dict[str, str]] = None):
        self.current_path = (current_path or "/").split("?")[0].split("#")[0] or "/"
        self.labels = labels or {}

    def trail(self) -> List[Tuple[str, str]]:
        crumbs = [("/", self.label_for("/"))]
        prefix = ""
        for segment in filter(None, self.current_path.split("/")):
            prefix = f"{prefix}/{segment}"
            if prefix not in _SKIPPED_PREFIXES:
                crumbs.append((prefix, self.label_for(prefix)))
        return crumbs

    def label_for(self, path: str) -> str:
        if path in self.labels:
            return self.labels[path]
        meta = ROUTE_MAP.get(path)
        params: Dict[str, str] = {}
        if meta is None:
            for regex, candidate in _DYNAMIC_ROUTES:
                match = regex.match(path)
                if match:
                    meta, params = candidate, match.groupdict()
                    break
        if meta:
            if "label_template" in meta:
                return humanize(meta["label_template"].format(**params))
            return meta["label"]
        return humanize(path.rsplit("/", 1)[-1])

    def render(self) -> str:
        crumbs = self.trail()
        if len(crumbs) <= 1:
            return ""
        *parents, (_, current) = crumbs
        items = [
            f'<li class="breadcrumb-item"><a href="{self.escape(href)}" hx-get="{self.escape(href)}" '
            f'hx-target="#main-content" hx-push-url="true" class="breadcrumb-link">{self.escape(label)}</a></li>'
            for href, label in parents
        ]
        items.append(f'<li class="breadcrumb-item" aria-current="page">{self.escape(current)}</li>')
        return f'<nav class="breadcrumb" aria-label="Breadcrumb"><ol>{"".join(items)}</ol></nav>'
