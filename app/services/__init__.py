"""
Application services module.
"""

from app.services.tax_schedules import ResolvedSchedule, find_schedule, resolve_schedule

__all__ = ["ResolvedSchedule", "find_schedule", "resolve_schedule"]
