from typing import Optional


class SubmissionError(Exception):
    """Base error for the submission pipeline; carries the HTTP status to return."""
    status_code = 500
    outcome = "error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InvalidSubmissionError(SubmissionError):
    status_code = 400
    outcome = "invalid"


class DuplicatePluginError(SubmissionError):
    status_code = 400
    outcome = "duplicate"


class ConfigurationError(SubmissionError):
    status_code = 500
    outcome = "misconfigured"


class UpstreamError(SubmissionError):
    """A non-success response from the GitHub contents API."""
    status_code = 500
    outcome = "upstream_error"

    def __init__(self, message: str, upstream_status: int, body: str = ""):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.body = body


class IndexConflictError(UpstreamError):
    """The index sha no longer matches; re-read and try again."""
    outcome = "index_conflict"
