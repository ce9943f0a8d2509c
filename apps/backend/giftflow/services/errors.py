from __future__ import annotations


class ServiceError(RuntimeError):
    """Base error for service-layer failures that map to HTTP responses."""

    status_code: int = 400
    needs_refresh: bool = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class InvalidInputError(ServiceError):
    status_code = 400


class ContentValidationError(InvalidInputError):
    status_code = 422

    def __init__(self, errors: list[str], message: str | None = None) -> None:
        self.errors = list(errors)
        super().__init__(message or "Invalid content: " + "; ".join(self.errors))


class GenerationFailedError(ServiceError):
    status_code = 502

    def __init__(self, message: str, *, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Failed to generate flow after {attempts} attempt(s): {message}")


class AuthenticationError(ServiceError):
    status_code = 401


class ProjectNotFoundError(ServiceError):
    status_code = 404


class NodeNotFoundError(ServiceError):
    status_code = 404


class SessionNotFoundError(ServiceError):
    status_code = 404


class AssetNotFoundError(ServiceError):
    status_code = 404


class AssetRejectedError(ServiceError):
    status_code = 400


class StaleStateError(ServiceError):
    status_code = 409
    needs_refresh = True


class ConcurrentEditError(ServiceError):
    status_code = 409


class StoreFailureError(ServiceError):
    status_code = 500

    def __init__(self, message: str | None = None, *, needs_refresh: bool = False) -> None:
        self.needs_refresh = needs_refresh
        super().__init__(message)


def error_payload(exc: ServiceError) -> dict:
    body: dict = {"error": exc.message}
    if exc.needs_refresh:
        body["needsRefresh"] = True
    return body
