"""
errors.py - Exception Types
============================
Every error raised on purpose by pdcsync derives from SyncError so the CLI
can catch "our" failures separately from programming errors.

Row-level errors (UnresolvableApplicant, UnresolvableProposal,
SubmissionFailed, MissingKeyColumn) are fatal for one CSV row only; the
upload driver logs them and moves on to the next row.
"""


class SyncError(Exception):
    """Base class for all pdcsync errors."""


class ConfigurationError(SyncError, RuntimeError):
    """A required setting is missing or invalid (raised before any network call)."""


# =============================================================================
# REMOTE / TRANSPORT ERRORS
# =============================================================================

class ApiError(SyncError):
    """
    A remote call failed.

    status is the HTTP status code, or 0 when no response was received
    (timeout, connection refused, DNS failure, ...).
    """

    def __init__(self, method: str, url: str, status: int, body: str = ""):
        self.method = method
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"{method} {url} failed with status {status}: {body[:300]}")


class ConflictError(ApiError):
    """HTTP 409: the record already exists."""


class MalformedResponse(SyncError):
    """A response body did not have the shape we expected."""


class TokenError(SyncError):
    """OIDC discovery or the client-credentials grant failed."""


# =============================================================================
# ROW-LEVEL RECONCILIATION ERRORS
# =============================================================================

class MissingKeyColumn(SyncError):
    """A row has no value for the applicant or proposal key column."""


class UnresolvableApplicant(SyncError):
    """No applicant could be found or created for an external id."""


class UnresolvableProposal(SyncError):
    """No proposal could be found or created for a row."""


class SubmissionFailed(SyncError):
    """Posting a proposal version failed."""
