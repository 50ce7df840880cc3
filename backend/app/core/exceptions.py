"""
Error taxonomy for the import pipeline.

Job-level errors (SourceFetchError, CollectionUpsertError) finalize the report
as failed. ProviderCommitError is recorded per item in ``failed_items``.
BestEffortError is logged and discarded.
"""


class ImporterError(Exception):
    """Base class for all import pipeline errors."""

    @property
    def message(self) -> str:
        return str(self) or self.__class__.__name__


class ValidationError(ImporterError, ValueError):
    """
    Raised when an import submission is malformed.

    Nothing is enqueued when this is raised.
    """


class SourceFetchError(ImporterError):
    """Raised when a source adapter cannot reach or parse its provider."""


class CollectionUpsertError(ImporterError):
    """Raised when a collection cannot be created or updated."""


class ProviderCommitError(ImporterError):
    """Raised when a single item cannot be resolved or committed."""


class BestEffortError(ImporterError):
    """Wraps a failure in an optional step (summary recalculation, add-to-collection)."""
