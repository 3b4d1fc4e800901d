from typing import Optional


class GitFlairError(Exception):
    """Base class for every error the core raises on purpose.

    ``message`` is short and safe to show to the caller; ``hint`` is an
    optional remediation step for known structural problems.
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class ValidationError(GitFlairError):
    """Missing or malformed input. Raised before any side effect."""


class QuotaExceeded(GitFlairError):
    pass


class RepositoryQuotaExceeded(QuotaExceeded):
    def __init__(self, limit: int):
        super().__init__(
            f"Limit reached: you can only index up to {limit} repositories. "
            "Delete an old repository to index a new one."
        )
        self.limit = limit


class QuestionQuotaExceeded(QuotaExceeded):
    def __init__(self, limit: int):
        super().__init__(
            f"Limit reached: you can only ask up to {limit} questions per repository. "
            "Index another repository to keep asking."
        )
        self.limit = limit


class DependencyError(GitFlairError):
    """An external capability (content source, embedder, generator, store) failed."""


class ContentSourceError(DependencyError):
    pass


class EmbeddingError(DependencyError):
    pass


class EmptyEmbeddingError(EmbeddingError):
    """The provider answered but returned no vector."""


class EmbeddingQuotaError(EmbeddingError):
    """The embedding provider reported quota or rate exhaustion.

    Kept apart from other embedding failures so callers can decide on retry.
    """


class GenerationError(DependencyError):
    pass


class GenerationQuotaError(GenerationError):
    pass


class StorageError(DependencyError):
    pass


class DimensionMismatchError(StorageError):
    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Vector dimension mismatch: store expects {expected}, got {actual}",
            hint=(
                "The collection was created for a different embedding width. "
                "Drop the vector collection and re-index the repository."
            ),
        )
        self.expected = expected
        self.actual = actual


class IngestionError(DependencyError):
    def __init__(self, file_path: str, cause: Exception):
        hint = getattr(cause, "hint", None)
        super().__init__(f"Failed to store chunks for {file_path}: {cause}", hint=hint)
        self.file_path = file_path
        self.cause = cause


def is_quota_error(exc: BaseException) -> bool:
    """True for provider-side quota/rate exhaustion (not the per-user quotas)."""
    return isinstance(exc, (EmbeddingQuotaError, GenerationQuotaError))
