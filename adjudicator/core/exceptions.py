"""Custom exception hierarchy."""

class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
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


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class InvalidClaimIdError(ValidationError):
    """Raised when a claim identifier is malformed."""
    pass


class ClaimNotFoundError(AppError):
    """Raised when a claim does not exist."""
    pass


class ClaimAccessDeniedError(AppError):
    """Raised when the caller may not process a claim."""
    pass


class PolicyDataMissingError(AppError):
    """Raised when the policy or member behind a claim cannot be loaded."""
    pass


class ExtractionError(AppError):
    """Raised when a document extraction reply cannot be used."""
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""
    pass


class StatusTransitionError(PipelineError):
    """Raised when a processing status would move backwards."""
    pass


class StageExecutionError(PipelineError):
    """Raised when a pipeline stage fails in a non-recoverable way."""
    pass
