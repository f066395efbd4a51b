"""Presentation of orchestration outcomes and status."""

from reporting.report import format_outcome, format_status

__all__ = ['format_outcome', 'format_status']
