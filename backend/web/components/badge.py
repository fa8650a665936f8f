"""
Status badge shared by learner and admin tables.
"""

from typing import Any

from .base import Component


_VARIANTS = {
    "enrolled": "success",
    "completed": "success",
    "replied": "success",
    "sent": "success",
    "open": "success",
    "requested": "",
    "pending": "",
    "new": "",
    "read": "muted",
    "closed": "muted",
    "cancelled": "muted",
    "refunded": "muted",
    "failed": "danger",
    "deleted": "danger",
}


class StatusBadge(Component):
    def __init__(self, status: Any):
        self.status = "" if status is None else str(status)

    def render(self) -> str:
        if not self.status:
            return '<span class="badge badge--muted">—</span>'
        variant = _VARIANTS.get(self.status.lower(), "")
        css = f"badge badge--{variant}" if variant else "badge"
        label = self.status.replace("_", " ").capitalize()
        return f'<span class="{css}">{self.escape(label)}</span>'


def status_cell(key: str = "status"):
    """Column renderer showing `row[key]` as a badge."""
    return lambda row: StatusBadge(row.get(key)).render()
