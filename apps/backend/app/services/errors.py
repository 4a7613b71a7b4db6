from __future__ import annotations


class ServiceError(RuntimeError):
    """Base error for service-layer failures that map to HTTP responses."""

    status_code: int = 400

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class InvalidQueryError(ServiceError):
    status_code = 400


class RunNotFoundError(ServiceError):
    status_code = 404


class OrchestratorUnavailableError(ServiceError):
    status_code = 503
