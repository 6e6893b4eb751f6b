from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from .allocator import allocate, build_sources
from .analyzers import analyzer_for, process_category, progress_message
from .budget import fit_pair_by_words
from .config import AppConfig
from .errors import NoDataError, ReportError
from .llm import CompletionProvider, chain_of_chat
from .models import ActivityKind, ActivityRecord, CategoryDigest, ReportRequest, ReportSources

ProgressCallback = Callable[[str], None]

_ACTIVITY_CATEGORIES = ("commits", "issues", "discussions")
_HOME_PROJECT_CAPS = {
    "home": 6000,
    "profile": 4000,
    "issues": 9000,
    "repos": 6000,
    "discussions": 4000,
}


@dataclass(slots=True)
class WeeklyReport:
    request: ReportRequest
    text: str
    digests: Dict[str, CategoryDigest] = field(default_factory=dict)
    succeeded: bool = False
    generated_on: date = field(default_factory=date.today)


def correlate_activity(
    provider: CompletionProvider,
    config: AppConfig,
    sources: ReportSources,
    target_person: Optional[str] = None,
) -> str:
    if not any(getattr(sources, name) is not None for name in _ACTIVITY_CATEGORIES):
        raise NoDataError("activity")

    budget = config.budget
    allocation = allocate(build_sources(sources, budget.weights), budget.total_units, budget.chars_per_unit)
    logger.debug("correlator allocation", present=sources.present, units=allocation.units)
    target_str = f"{target_person}'s" if target_person else "key participants'"
    limit = config.llm.report_summary_tokens

    sys_prompt_1 = (
        "Analyze the GitHub activity data over the week to detect both key impactful contributions and connections "
        "between commits, issues, and discussions. Highlight specific code changes, resolutions, and improvements. "
        "Furthermore, trace evidence of commits addressing specific issues, discussions leading to commits, or issues "
        "spurred by discussions. The aim is to map out both the impactful technical advancements and the developmental "
        "narrative of the project."
    )
    usr_prompt_1 = (
        f"From the following data:\n\n{allocation.prompt}\n\nDetail {target_str} significant technical contributions. "
        "Enumerate individual tasks, code enhancements, and bug resolutions per contributor, emphasizing impactful "
        "contributions. Concurrently, identify connections: commits that appear to resolve specific issues, "
        "discussions that may have catalyzed certain commits, or issues influenced by preceding discussions. Extract "
        "tangible instances showcasing both impact and interconnections within the week."
    )
    usr_prompt_2 = (
        f"Merge the identified impactful technical contributions and their interconnections into a coherent summary "
        f"for {target_str} work over the week. Describe how these contributions align with the project's technical "
        "objectives. Pinpoint recurring technical patterns or trends and shed light on the synergy between individual "
        "efforts and their collective progression. Detail both the weight of each contribution and their "
        f"interconnectedness in shaping the project. Limit to {limit} tokens."
    )
    return chain_of_chat(
        provider,
        config.llm,
        sys_prompt_1,
        usr_prompt_1,
        config.llm.report_analysis_tokens,
        usr_prompt_2,
        limit,
        "correlate-activity",
    )


def correlate_commits_issues(
    provider: CompletionProvider,
    config: AppConfig,
    commits_summary: str,
    issues_summary: str,
) -> str:
    commits, issues = fit_pair_by_words(
        commits_summary,
        issues_summary,
        config.budget.pair_combined_max,
        config.budget.pair_split,
    )
    limit = config.llm.report_summary_tokens
    sys_prompt_1 = (
        "Your task is to identify the 1-3 most impactful contributions by a specific user, based on the given commit "
        "logs and issue records. Pay close attention to any sequential relationships between issues and commits, and "
        "consider how they reflect the user's growth and evolution within the project. Use this data to evaluate the "
        "user's overall influence on the project's development. Provide a concise summary in bullet-point format."
    )
    usr_prompt_1 = (
        f"Given the commit logs: {commits} and issue records: {issues}, identify the most significant contributions "
        "made by the user. Look for patterns and sequences of events that indicate the user's growth and how they "
        "approached problem-solving. Consider major code changes, and initiatives that had substantial impact on the "
        "project. Additionally, note any instances where the resolution of an issue led to a specific commit."
    )
    usr_prompt_2 = (
        "Based on the contributions identified, create a concise bullet-point summary. Highlight the user's key "
        "contributions and their influence on the project. Pay attention to their growth over time, and how their "
        "responses to issues evolved. Make sure to reference any interconnected events between issues and commits. "
        "Avoid replicating phrases from the source data and focus on providing a unique and insightful narrative. "
        f"Please ensure your answer stays below {limit} tokens."
    )
    return chain_of_chat(
        provider,
        config.llm,
        sys_prompt_1,
        usr_prompt_1,
        config.llm.report_analysis_tokens,
        usr_prompt_2,
        limit,
        "correlate-commits-issues",
    )


def correlate_user_and_home_project(
    provider: CompletionProvider,
    config: AppConfig,
    home_repo_data: str,
    user_profile: str,
    issues_data: str,
    repos_data: str,
    discussion_data: str,
) -> str:
    home_repo_data = home_repo_data[: _HOME_PROJECT_CAPS["home"]]
    user_profile = user_profile[: _HOME_PROJECT_CAPS["profile"]]
    issues_data = issues_data[: _HOME_PROJECT_CAPS["issues"]]
    repos_data = repos_data[: _HOME_PROJECT_CAPS["repos"]]
    discussion_data = discussion_data[: _HOME_PROJECT_CAPS["discussions"]]
    limit = config.llm.report_summary_tokens

    sys_prompt_1 = (
        "First, let's analyze and understand the provided Github data in a step-by-step manner. Begin by evaluating "
        "the user's activity based on their most active repositories, languages used, issues they're involved in, and "
        "discussions they've participated in. Concurrently, grasp the characteristics and requirements of the home "
        "project. Your aim is to identify overlaps or connections between the user's skills or activities and the "
        "home project's needs."
    )
    usr_prompt_1 = (
        f"Using a structured approach, analyze the given data: User Profile: {user_profile} Active Repositories: "
        f"{repos_data} Issues Involved: {issues_data} Discussions Participated: {discussion_data} Home project's "
        f"characteristics: {home_repo_data} Identify patterns in the user's activity and spot potential synergies with "
        "the home project. Pay special attention to the programming languages they use, especially if they align with "
        "the home project's requirements. Derive insights from their interactions and the data provided."
    )
    usr_prompt_2 = (
        "Now, using the insights from your step-by-step analysis, craft a concise bullet-point summary that "
        "underscores: - The user's main areas of expertise and interest. - The relevance of their preferred languages "
        "or technologies to the home project. - Their potential contributions to the home project, based on their "
        f"skills and interactions. Ensure the summary is clear, insightful, and remains under {limit} tokens. "
        "Emphasize any evident alignments between the user's skills and the project's needs."
    )
    return chain_of_chat(
        provider,
        config.llm,
        sys_prompt_1,
        usr_prompt_1,
        config.llm.report_analysis_tokens,
        usr_prompt_2,
        limit,
        "correlate-user-home",
    )


def build_weekly_report(
    provider: CompletionProvider,
    config: AppConfig,
    request: ReportRequest,
    profile: Optional[ActivityRecord] = None,
    commits: Sequence[ActivityRecord] = (),
    issues: Sequence[ActivityRecord] = (),
    discussions: Sequence[ActivityRecord] = (),
    progress: Optional[ProgressCallback] = None,
) -> WeeklyReport:
    """Run the whole pipeline for one request.

    Never raises for pipeline failures: a failed correlation leaves the
    configured fallback text in the returned report.
    """
    notify = progress or (lambda message: None)
    inputs = {
        "commits": (ActivityKind.COMMIT, commits),
        "issues": (ActivityKind.ISSUE, issues),
        "discussions": (ActivityKind.DISCUSSION, discussions),
    }

    digests: Dict[str, CategoryDigest] = {}
    for category, (kind, records) in inputs.items():
        if records:
            notify(progress_message(category, records))
        analyzer = analyzer_for(kind, provider, config, request.target_person)
        digests[category] = process_category(category, records, analyzer, config, request.target_person)

    sources = ReportSources(
        profile=profile.body if profile is not None and profile.body else None,
        commits=digests["commits"].text,
        issues=digests["issues"].text,
        discussions=digests["discussions"].text,
    )
    report = WeeklyReport(request=request, text=config.report.fallback, digests=digests)
    try:
        report.text = correlate_activity(provider, config, sources, request.target_person)
        report.succeeded = True
    except NoDataError as exc:
        logger.warning("nothing to correlate for {repo}: {error}", repo=request.full_name, error=str(exc))
    except ReportError as exc:
        logger.error("weekly report for {repo} failed: {error}", repo=request.full_name, error=str(exc))
    except Exception as exc:
        logger.opt(exception=exc).error("weekly report for {repo} crashed: {error}", repo=request.full_name, error=str(exc))
    return report


def weekly_report(
    provider: CompletionProvider,
    config: AppConfig,
    request: ReportRequest,
    profile: Optional[ActivityRecord] = None,
    commits: Sequence[ActivityRecord] = (),
    issues: Sequence[ActivityRecord] = (),
    discussions: Sequence[ActivityRecord] = (),
    progress: Optional[ProgressCallback] = None,
) -> str:
    return build_weekly_report(provider, config, request, profile, commits, issues, discussions, progress).text


def write_report(report: WeeklyReport, config: AppConfig) -> Path:
    output_dir = config.output.directory
    output_dir.mkdir(parents=True, exist_ok=True)
    request = report.request
    suffix = f"-{request.target_person}" if request.target_person else ""
    filename = f"{request.owner}-{request.repo}{suffix}-{report.generated_on.isoformat()}.md"
    report_path = output_dir / filename
    report_path.write_text(render_markdown(report), encoding="utf-8")
    return report_path


def render_markdown(report: WeeklyReport) -> str:
    request = report.request
    lines: List[str] = []
    lines.append(f"# Weekly Report: {request.full_name}")
    lines.append("")
    lines.append(f"Generated on: {report.generated_on.isoformat()}")
    if request.target_person:
        lines.append(f"Contributor: {request.target_person}")
    lines.append(f"Window: last {request.days} days")
    lines.append("")
    lines.append("## Summary")
    lines.append(report.text.strip())
    lines.append("")
    for category in _ACTIVITY_CATEGORIES:
        digest = report.digests.get(category)
        if digest is None:
            continue
        lines.extend(_render_digest(digest))
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def _render_digest(digest: CategoryDigest) -> List[str]:
    lines = [f"## {digest.category.capitalize()} ({digest.count})"]
    if not digest.records:
        lines.append(f"No {digest.category} summarized in this window.")
    for record in digest.records:
        lines.append(f"- [{record.short_ref}]({record.source_ref}) {record.occurred_on.isoformat()}: {_one_line(record.summary)}")
    if digest.failed:
        lines.append(f"- {len(digest.failed)} item(s) could not be summarized.")
    return lines


def _one_line(text: str) -> str:
    return " ".join(text.split())
