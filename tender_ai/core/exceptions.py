"""Custom exception hierarchy."""

class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class PersistenceError(DatabaseError):
    """Raised when durable state cannot be read or written.

    Fatal to a processing run: consolidation cannot proceed without it.
    """
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class DocumentNotFoundError(AppError):
    """Raised when a document is not found."""
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""

    def __init__(
        self,
        message: str,
        original_error: Exception = None,
        batch_number: int = None,
    ):
        super().__init__(message, original_error)
        self.batch_number = batch_number


class TextExtractionError(PipelineError):
    """Page text could not be obtained from the source. Fatal to the run."""
    pass


class StructureStageError(PipelineError):
    """Stage 1 (structure) failed. Logged and tolerated."""
    pass


class ExtractionStageError(PipelineError):
    """Stage 2 (entities/timeline/risks) failed. Fatal to the batch only."""
    pass


class RetrievalNotReadyError(AppError):
    """Raised when chat is requested before enough pages are embedded."""

    def __init__(self, message: str, embedded_pages: int = 0, total_pages: int = 0):
        super().__init__(message)
        self.embedded_pages = embedded_pages
        self.total_pages = total_pages
