"""Custom exception classes for stitchflow."""


class StitchflowError(Exception):
    """Base exception for stitchflow."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(StitchflowError):
    """Schema or request validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(StitchflowError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


# --- Pipeline errors ---


class SubmissionError(StitchflowError):
    """Render provider rejected or failed a task submission."""

    def __init__(self, message: str, details=None):
        super().__init__("SUBMISSION_ERROR", message, details, status_code=502)


class CorrelationMiss(StitchflowError):
    """Callback for a task id that is unknown, consumed or expired."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__("CORRELATION_MISS", f"No job mapping for task '{task_id}'", status_code=404)


class FetchError(StitchflowError):
    """Rendered artifact could not be downloaded."""

    def __init__(self, message: str, details=None):
        super().__init__("FETCH_ERROR", message, details, status_code=502)


class MergeError(StitchflowError):
    """Local merge of the rendered artifacts failed."""

    def __init__(self, message: str, details=None):
        super().__init__("MERGE_ERROR", message, details, status_code=500)


class PublishError(StitchflowError):
    """Merged artifact could not be published."""

    def __init__(self, message: str, details=None):
        super().__init__("PUBLISH_ERROR", message, details, status_code=502)


class StoreUnavailable(StitchflowError):
    """Job store backend cannot be reached."""

    def __init__(self, message: str = "Job store unavailable"):
        super().__init__("STORE_UNAVAILABLE", message, status_code=503)


# --- Collaborator errors ---


class RecordStoreError(StitchflowError):
    """External record store (Airtable) request failed."""

    def __init__(self, message: str, details=None):
        super().__init__("RECORD_STORE_ERROR", message, details, status_code=502)


class PromptGenerationError(StitchflowError):
    """Prompt generation from a master prompt failed."""

    def __init__(self, message: str, details=None):
        super().__init__("PROMPT_GENERATION_ERROR", message, details, status_code=502)
