from __future__ import annotations


class NewsletterError(Exception):
    """Base class for failures the pipeline knows how to report."""


class ConfigurationError(NewsletterError):
    def __init__(self, missing: list[str] | str) -> None:
        if isinstance(missing, str):
            missing = [missing]
        self.missing = list(missing)
        super().__init__(f"Missing required configuration: {', '.join(self.missing)}")


class SchemaViolation(NewsletterError):
    """A stage produced (or was handed) a payload that breaks its contract."""

    def __init__(self, stage: str, detail: str, side: str = "output") -> None:
        self.stage = stage
        self.detail = detail
        self.side = side
        super().__init__(f"{stage} {side} violated its contract: {detail}")


class ProviderError(NewsletterError):
    def __init__(self, status: int | None, message: str, resource_id: str | None = None) -> None:
        self.status = status
        self.message = message
        # id of a provider resource left behind by a half-finished operation
        self.resource_id = resource_id
        prefix = f"Provider error ({status})" if status is not None else "Provider error"
        super().__init__(f"{prefix}: {message}")


class NetworkError(NewsletterError):
    def __init__(self, target: str, message: str) -> None:
        self.target = target
        self.message = message
        super().__init__(f"Network error talking to {target}: {message}")
