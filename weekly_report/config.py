from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = Path("config/settings.yaml")
FALLBACK_REPORT = "Failed to generate report."

# Relative shares of the correlator prompt. Commits and issues carry most of
# the signal in a weekly report; the profile is context only.
DEFAULT_WEIGHTS: Dict[str, int] = {
    "profile": 1,
    "commits": 4,
    "issues": 4,
    "discussions": 2,
}


@dataclass(slots=True)
class LLMConfig:
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    api_key_env: str = "OPENAI_API_KEY"
    organization: Optional[str] = None
    item_analysis_tokens: int = 256
    item_summary_tokens: int = 128
    report_analysis_tokens: int = 512
    report_summary_tokens: int = 256
    min_reply_chars: int = 10


@dataclass(slots=True)
class BudgetConfig:
    quote_marker: str = "```"
    long_token_limit: int = 150
    head_ratio: float = 0.6
    issue_body_words: int = 500
    comment_words: int = 300
    discussion_words: int = 9000
    discussion_head_ratio: float = 0.4
    commit_patch_tokens: int = 6000
    thread_char_cap: int = 45_000
    category_char_cap: int = 45_000
    pair_combined_max: int = 44_000
    pair_split: float = 0.6
    # 16k allocation units at ~3 characters each keeps the correlator prompt
    # inside the model window and bounds the cost of one report.
    total_units: int = 16_000
    chars_per_unit: int = 3
    weights: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))


@dataclass(slots=True)
class ReportConfig:
    days: int = 7
    workers: int = 1
    fallback: str = FALLBACK_REPORT


@dataclass(slots=True)
class GitHubConfig:
    token_env: str = "GITHUB_TOKEN"


@dataclass(slots=True)
class OutputConfig:
    directory: Path = Path("reports")
    write_markdown: bool = False


@dataclass(slots=True)
class AppConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(path: Optional[Path] = None) -> AppConfig:
    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return AppConfig()

    with config_path.open("r", encoding="utf-8") as handle:
        raw: Dict[str, Any] = yaml.safe_load(handle) or {}

    llm_raw = raw.get("llm", {})
    budget_raw = raw.get("budget", {})
    report_raw = raw.get("report", {})
    github_raw = raw.get("github", {})
    output_raw = raw.get("output", {})

    llm_defaults = LLMConfig()
    budget_defaults = BudgetConfig()

    weights = dict(DEFAULT_WEIGHTS)
    weights.update({str(name): int(value) for name, value in (budget_raw.get("weights") or {}).items()})

    config = AppConfig(
        llm=LLMConfig(
            provider=str(llm_raw.get("provider", llm_defaults.provider)),
            model=str(llm_raw.get("model", llm_defaults.model)),
            temperature=float(llm_raw.get("temperature", llm_defaults.temperature)),
            api_key_env=str(llm_raw.get("api_key_env", llm_defaults.api_key_env)),
            organization=llm_raw.get("organization"),
            item_analysis_tokens=int(llm_raw.get("item_analysis_tokens", llm_defaults.item_analysis_tokens)),
            item_summary_tokens=int(llm_raw.get("item_summary_tokens", llm_defaults.item_summary_tokens)),
            report_analysis_tokens=int(llm_raw.get("report_analysis_tokens", llm_defaults.report_analysis_tokens)),
            report_summary_tokens=int(llm_raw.get("report_summary_tokens", llm_defaults.report_summary_tokens)),
            min_reply_chars=int(llm_raw.get("min_reply_chars", llm_defaults.min_reply_chars)),
        ),
        budget=BudgetConfig(
            quote_marker=str(budget_raw.get("quote_marker", budget_defaults.quote_marker)),
            long_token_limit=int(budget_raw.get("long_token_limit", budget_defaults.long_token_limit)),
            head_ratio=float(budget_raw.get("head_ratio", budget_defaults.head_ratio)),
            issue_body_words=int(budget_raw.get("issue_body_words", budget_defaults.issue_body_words)),
            comment_words=int(budget_raw.get("comment_words", budget_defaults.comment_words)),
            discussion_words=int(budget_raw.get("discussion_words", budget_defaults.discussion_words)),
            discussion_head_ratio=float(budget_raw.get("discussion_head_ratio", budget_defaults.discussion_head_ratio)),
            commit_patch_tokens=int(budget_raw.get("commit_patch_tokens", budget_defaults.commit_patch_tokens)),
            thread_char_cap=int(budget_raw.get("thread_char_cap", budget_defaults.thread_char_cap)),
            category_char_cap=int(budget_raw.get("category_char_cap", budget_defaults.category_char_cap)),
            pair_combined_max=int(budget_raw.get("pair_combined_max", budget_defaults.pair_combined_max)),
            pair_split=float(budget_raw.get("pair_split", budget_defaults.pair_split)),
            total_units=int(budget_raw.get("total_units", budget_defaults.total_units)),
            chars_per_unit=int(budget_raw.get("chars_per_unit", budget_defaults.chars_per_unit)),
            weights=weights,
        ),
        report=ReportConfig(
            days=int(report_raw.get("days", 7)),
            workers=max(1, int(report_raw.get("workers", 1))),
            fallback=str(report_raw.get("fallback", FALLBACK_REPORT)),
        ),
        github=GitHubConfig(
            token_env=str(github_raw.get("token_env", "GITHUB_TOKEN")),
        ),
        output=OutputConfig(
            directory=Path(output_raw.get("directory", "reports")),
            write_markdown=bool(output_raw.get("write_markdown", False)),
        ),
    )

    return config
