"""Exceptions that abort an analysis run.

Per-file problems (unreadable files, syntax errors, unresolved imports) are
never raised; they are returned as :class:`~typeorg.models.RecoveredError`.
"""


class TypeOrgError(Exception):
    """Root exception for all typeorg errors."""


class FatalConfigError(TypeOrgError):
    """The run cannot start: missing project root or malformed configuration."""


class AnalysisCancelled(TypeOrgError):
    """The run was cancelled cooperatively; partial results were discarded."""
