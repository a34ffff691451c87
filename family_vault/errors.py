"""
Error taxonomy for the vault.

Services raise these; the handlers registered in ``main`` render every one of
them as ``{"success": false, "error": <message>}`` with the class status code.
Low-level driver, hashing or signing failures are wrapped into one of these
before they leave a service.
"""


class VaultError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(VaultError):
    """Malformed or missing input."""

    status_code = 400


class AuthenticationError(VaultError):
    """Missing, invalid or expired credentials."""

    status_code = 401


class AuthorizationError(VaultError):
    """Authenticated, but not allowed to do this."""

    status_code = 403


class NotFoundError(VaultError):
    status_code = 404


class ConflictError(VaultError):
    """A unique field (email, national ID, family link) already taken."""

    status_code = 400


class IntegrityFault(VaultError):
    """Stored metadata points at file bytes that are gone."""

    status_code = 500
