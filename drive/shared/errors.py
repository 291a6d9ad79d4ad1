"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``drive.shared.http`` turns them into ``{"error": ...}``
responses with the matching status code.
"""

class DriveError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class Unauthenticated(DriveError):
    status_code = 401
    message = "Authentication required"


class Forbidden(DriveError):
    status_code = 403
    message = "Unauthorized access to file"


class NotFound(DriveError):
    status_code = 404
    message = "File not found"


class BadRequest(DriveError):
    status_code = 400
    message = "Bad request"


class PayloadTooLarge(DriveError):
    status_code = 413
    message = "File too large"


class StoreError(DriveError):
    """Metadata or session store unreachable, or a constraint it rejected."""
    status_code = 500
    message = "Storage backend error"


class BlobIOError(DriveError):
    status_code = 500
    message = "Failed to read or write file content"


class ProviderError(DriveError):
    """Identity provider failure. Carries a coarse reason code for the redirect."""
    status_code = 502
    message = "Identity provider error"

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message)
        self.reason = reason
