from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional


class ActivityKind(str, Enum):
    COMMIT = "commit"
    ISSUE = "issue"
    DISCUSSION = "discussion"
    META = "meta"


@dataclass(slots=True)
class ActivityRecord:
    kind: ActivityKind
    actor: str
    label: str
    source_ref: str
    occurred_on: date
    body: str = ""
    summary: str = ""

    def attach_summary(self, summary: str, actor: Optional[str] = None) -> None:
        if self.summary:
            raise ValueError(f"summary already set for {self.source_ref}")
        self.summary = summary
        if actor:
            self.actor = actor

    @property
    def short_ref(self) -> str:
        tail = self.source_ref.rstrip("/").rsplit("/", 1)[-1]
        if self.kind is ActivityKind.COMMIT:
            return tail[:7] or "1234567"
        return tail or "1234"


@dataclass(slots=True)
class BudgetedSource:
    name: str
    label: str
    weight: int
    text: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.text is not None


@dataclass(frozen=True, slots=True)
class ConversationState:
    system_prompt: str
    user_prompt: str
    assistant_reply: str

    def messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
            {"role": "assistant", "content": self.assistant_reply},
        ]


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    model: str
    system_prompt: str
    user_prompt: str
    max_output_tokens: int
    temperature: float
    restart: bool = True
    history: Optional[ConversationState] = None


@dataclass(slots=True)
class CompletionResult:
    text: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


@dataclass(slots=True)
class CategoryDigest:
    category: str
    text: Optional[str] = None
    records: List[ActivityRecord] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


@dataclass(slots=True)
class ReportSources:
    profile: Optional[str] = None
    commits: Optional[str] = None
    issues: Optional[str] = None
    discussions: Optional[str] = None

    @property
    def present(self) -> List[str]:
        return [
            name
            for name in ("profile", "commits", "issues", "discussions")
            if getattr(self, name) is not None
        ]


@dataclass(slots=True)
class ReportRequest:
    owner: str
    repo: str
    target_person: Optional[str] = None
    days: int = 7

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def addressee(self) -> str:
        if self.target_person:
            return f"{self.target_person}'s"
        return "key participants'"
