# Hope Institute component system
# Pure Python components for type-safe HTML generation

from .base import Component
from .layout import Layout
from .navigation import Navigation
from .breadcrumbs import Breadcrumbs
from .data_table import Column, DataTable, Pagination
from .markdown import markdown_to_text, render_markdown_safe
from .cards import CourseCard, CourseGrid, IntakeTable
from .badge import StatusBadge, status_cell

__all__ = [
    "Component",
    "Layout",
    "Navigation",
    "Breadcrumbs",
    "Column",
    "DataTable",
    "Pagination",
    "CourseCard",
    "CourseGrid",
    "IntakeTable",
    "StatusBadge",
    "status_cell",
    "render_markdown_safe",
    "markdown_to_text",
]
