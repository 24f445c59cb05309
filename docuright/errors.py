"""Error taxonomy for the DocuRight client core.

Three families map onto how the presentation layer reacts:

- AuthError: credential problems. Terminal ones (expired session, failed
  refresh) have already cleared the session when they surface.
- StorageError: raised by storage backends, always recovered inside
  PersistentStore and never seen by callers.
- NetworkError: transport and server failures, carrying a user-presentable
  message extracted from the response body where possible.
"""

from __future__ import annotations


class DocuRightError(Exception):
    """Base exception for the DocuRight client core."""

    terminal = False


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthError(DocuRightError):
    """Base exception for authentication failures."""


class InvalidCredentials(AuthError):
    """Login rejected by the backend. Shown to the user."""


class RegistrationRejected(AuthError):
    """Registration rejected by the backend (duplicate email, weak password)."""


class ExpiredSession(AuthError):
    """No usable session remains; the user must sign in again."""

    terminal = True


class RefreshFailed(AuthError):
    """The refresh token was refused. The session has been cleared."""

    terminal = True


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(DocuRightError):
    """Base exception for storage backend failures."""


class CorruptEntry(StorageError):
    """A persisted value could not be decoded."""


class QuotaExceeded(StorageError):
    """The backend refused a write for lack of space."""


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------


class NetworkError(DocuRightError):
    """Base exception for failed remote calls."""


class RequestTimeout(NetworkError):
    """The backend did not answer in time."""


class TransportFailure(NetworkError):
    """Connection-level failure (DNS, refused, reset)."""


class ServerError(NetworkError):
    """The backend answered with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Usage gating
# ---------------------------------------------------------------------------


class UsageLimitReached(DocuRightError):
    """Anonymous generation refused: the free allowance is used up."""

    def __init__(self, message: str = "Free generation limit reached", limit: int = 0):
        self.limit = limit
        super().__init__(message)
