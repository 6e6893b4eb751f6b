from __future__ import annotations

import re
from datetime import date
from typing import List, Optional, Sequence

from weekly_report.errors import ProviderError
from weekly_report.models import ActivityKind, ActivityRecord, CompletionRequest, CompletionResult

_MARKER = re.compile(r"<<([\w-]+)>>")


class FakeEncoding:
    """Whitespace tokenizer standing in for a tiktoken encoding."""

    def encode_ordinary(self, text: str) -> List[str]:
        return text.split()

    def decode(self, tokens: Sequence[str]) -> str:
        return " ".join(tokens)


class ScriptedProvider:
    def __init__(self, replies: Sequence[object]) -> None:
        self.replies = list(replies)
        self.requests: List[CompletionRequest] = []

    def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else "a perfectly reasonable summary"
        if isinstance(reply, BaseException):
            raise reply
        return CompletionResult(text=str(reply))


class EchoProvider:
    """Second replies list the <<markers>> found in the first user prompt."""

    def __init__(self, fail_on: Optional[str] = None, degenerate_report: bool = False) -> None:
        self.fail_on = fail_on
        self.degenerate_report = degenerate_report
        self.requests: List[CompletionRequest] = []

    def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        if request.restart:
            if self.fail_on and f"<<{self.fail_on}>>" in request.user_prompt:
                raise ProviderError("boom")
            return CompletionResult(text="analysis done")
        assert request.history is not None
        if self.degenerate_report and "activity data over the week" in request.history.system_prompt:
            return CompletionResult(text="ok")
        markers = _MARKER.findall(request.history.user_prompt)
        return CompletionResult(text="covered items: " + ", ".join(f"<<{marker}>>" for marker in markers))


def make_record(kind: ActivityKind, ref: str, body: str = "body text", day: int = 10, actor: str = "alice") -> ActivityRecord:
    return ActivityRecord(
        kind=kind,
        actor=actor,
        label=f"label {ref}",
        source_ref=ref,
        occurred_on=date(2024, 3, day),
        body=body,
    )
