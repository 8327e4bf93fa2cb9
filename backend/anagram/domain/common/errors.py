"""Typed failures carried by Result.fail — none of them is fatal to the process."""
from __future__ import annotations
from typing import Optional


class DomainError(Exception):
    """Base for every failure the core reports to its callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ConfigurationError(DomainError):
    """A constraint spec or option set is internally inconsistent."""


class GenerationExhausted(DomainError):
    """Retries ran out before a solvable token set was found."""

    def __init__(self, category: str, attempts: int, detail: Optional[str] = None):
        message = f"Could not generate a solvable puzzle after {attempts} attempts; unsatisfiable category: '{category}'."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)
        self.category = category
        self.attempts = attempts


class OutOfSequenceAnswer(DomainError):
    pass


class InactiveAssignment(DomainError):
    pass


class OverdueSubmission(DomainError):
    pass


class PersistenceConflict(DomainError):
    """A concurrent writer won the race; re-fetch and decide."""


class PersistenceUnavailable(DomainError):
    """Storage kept failing after the bounded retries."""


class NotFound(DomainError):
    pass


class PermissionDenied(DomainError):
    pass
