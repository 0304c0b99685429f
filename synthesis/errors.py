"""
Failure taxonomy for the synthesis pipeline.

The dispatcher catches these per tool outcome; routers map NotFoundError to 404.
"""

from typing import List, Dict, Any


class FulfillmentError(Exception):
    """Base class for every failure the pipeline reports instead of crashing."""


class RubricValidationError(FulfillmentError):
    """Rubric content failed shape or cardinality checks."""

    def __init__(self, message: str, issues: List[Dict[str, Any]] = None):
        super().__init__(message)
        self.issues = issues or []


class CompileError(FulfillmentError):
    """Layout or PDF serialization failed; no artifact exists."""


class StoreError(FulfillmentError):
    """Writing the artifact failed; no ledger effect may follow."""


class InvalidFileNameError(StoreError):
    """File name is empty or tries to escape the artifact directory."""


class LedgerError(FulfillmentError):
    """The transactional {project, debit, usage} unit could not be applied."""


class InsufficientCreditsError(LedgerError):
    """Balance is below one credit."""


class NotFoundError(FulfillmentError):
    """Referenced entity does not exist (or is not visible to the caller)."""


class ArtifactNotFoundError(NotFoundError):
    pass


class ProjectNotFoundError(NotFoundError):
    pass


class InvalidArgumentsError(FulfillmentError):
    """Tool arguments are missing required fields or have the wrong types."""
