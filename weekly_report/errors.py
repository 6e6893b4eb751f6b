from __future__ import annotations

from typing import Optional


class ReportError(RuntimeError):
    """Base class for failures raised inside the summarization pipeline."""


class ChainFailure(ReportError):
    def __init__(self, message: str, correlation_id: str) -> None:
        super().__init__(f"{correlation_id}: {message}" if correlation_id else message)
        self.message = message
        self.correlation_id = correlation_id


class ProviderError(ChainFailure):
    """The completion provider failed (transport, auth or provider side)."""

    def __init__(self, message: str, correlation_id: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message, correlation_id)
        self.cause = cause


class DegenerateOutputError(ChainFailure):
    """The second call of a chain produced a reply too short to be a summary."""

    def __init__(self, reply: str, correlation_id: str) -> None:
        super().__init__(f"generation went sideways: {reply!r}", correlation_id)
        self.reply = reply


class NoDataError(ReportError):
    def __init__(self, category: str) -> None:
        super().__init__(f"no {category} data available")
        self.category = category
