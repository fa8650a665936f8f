"""
Card components for Hope Institute.

Course cards and intake tables shared by the home page, the catalog and the
course detail page.
"""

from .course import CourseCard, CourseGrid, IntakeTable, format_date, format_duration, format_price

__all__ = ["CourseCard", "CourseGrid", "IntakeTable", "format_date", "format_duration", "format_price"]
