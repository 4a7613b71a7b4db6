from __future__ import annotations


class OrchestrationError(RuntimeError):
    """Base error for failures inside the orchestration engine."""

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class RegistryEmptyError(OrchestrationError):
    pass


class UnknownIntentError(OrchestrationError):
    def __init__(self, intent: str) -> None:
        self.intent = intent
        super().__init__(f"no completion predicate registered for intent '{intent}'")


class OverrideValidationError(OrchestrationError):
    def __init__(self, worker: str, detail: str) -> None:
        self.worker = worker
        super().__init__(f"invalid overrides for '{worker}': {detail}")


class WorkerUnavailableError(OrchestrationError):
    pass


class InvalidWorkerOutputError(OrchestrationError):
    pass
