"""Error taxonomy shared by the registry, record store and aggregation layers."""


class HealthLogError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HealthLogError):
    """Missing or malformed required input."""

    status_code = 400


class AuthenticationError(HealthLogError):
    status_code = 401


class ForbiddenError(HealthLogError):
    """Ownership or default-immutability violation."""

    status_code = 403


class NotFoundError(HealthLogError):
    status_code = 404


class UpstreamError(HealthLogError):
    """The datastore itself failed."""

    status_code = 500
