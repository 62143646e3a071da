from typing import Any, Optional

from enrichment_monitor.models import StatusSnapshot


class EnrichmentError(Exception):
    """Base class for every error that ends an enrichment run"""


class MissingInputError(EnrichmentError):
    pass


class SubmissionError(EnrichmentError):
    def __init__(self, message: str, response_body: Any = None):
        super().__init__(f"{message}. Response: {response_body!r}")
        self.response_body = response_body


class EnrichmentTerminalError(EnrichmentError):
    """Raised when the service reports a terminal, unsuccessful status"""

    def __init__(self, message: str, snapshot: Optional[StatusSnapshot] = None):
        super().__init__(message)
        self.snapshot = snapshot


class EnrichmentFailedError(EnrichmentTerminalError):
    def __init__(self, error_message: str, snapshot: Optional[StatusSnapshot] = None):
        super().__init__(f"Enrichment failed: {error_message}", snapshot)
        self.error_message = error_message


class EnrichmentCancelledError(EnrichmentTerminalError):
    def __init__(self, reason: str, snapshot: Optional[StatusSnapshot] = None):
        super().__init__(f"Enrichment cancelled: {reason}", snapshot)
        self.reason = reason


class EnrichmentTimeoutError(EnrichmentError):
    def __init__(self, attempts: int, elapsed_minutes: int):
        super().__init__(
            f"Timeout: No completion status received after {attempts} attempts "
            f"({elapsed_minutes} minutes)"
        )
        self.attempts = attempts
        self.elapsed_minutes = elapsed_minutes
