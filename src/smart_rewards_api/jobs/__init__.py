"""Recurring job entrypoints referenced from the schedule file."""

__all__ = ["mukando"]
