"""
Domain error taxonomy.

Services raise these; API routers translate them into HTTP responses.
"""


class CivicPulseError(Exception):
    """Base class for every domain error."""
    status_code = 500


class AuthError(CivicPulseError):
    """No active session, or the session could not be verified."""
    status_code = 401


class PermissionDeniedError(CivicPulseError):
    """The caller's role does not allow the mutation (or the caller is banned)."""
    status_code = 403


class ValidationError(CivicPulseError):
    """A required field is empty or a value is outside its enum."""
    status_code = 422


class NotFoundError(CivicPulseError):
    status_code = 404


class RemoteError(CivicPulseError):
    """A collaborator call (database, object storage, identity provider) failed."""
    status_code = 500
