from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

import requests
from loguru import logger

from .config import AppConfig, load_config
from .errors import ReportError
from .github_api import (
    GitHubSession,
    discussion_query,
    get_community_profile,
    get_readme,
    get_user_profile,
    is_code_contributor,
    list_commits_in_range,
    list_issues_in_range,
    list_user_repos,
    search_discussions,
    search_issue_titles,
)
from .llm import CompletionProvider, create_provider
from .models import ActivityRecord, ReportRequest
from .report import (
    WeeklyReport,
    build_weekly_report,
    correlate_commits_issues,
    correlate_user_and_home_project,
    write_report,
)

T = TypeVar("T")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="weekly-report",
        description="Summarize a week of GitHub activity for a repository or one of its contributors.",
    )
    parser.add_argument("owner", help="Repository owner, e.g. octocat")
    parser.add_argument("repo", help="Repository name, e.g. hello-world")
    parser.add_argument("--user", dest="user_name", help="Contributor to report on; defaults to the whole project")
    parser.add_argument("--days", type=int, help="Size of the activity window in days")
    parser.add_argument("--workers", type=int, help="Number of items summarized concurrently")
    parser.add_argument("--onboarding", action="store_true", help="Match the contributor's profile against the project instead")
    parser.add_argument("--highlights", action="store_true", help="Also list the most impactful commit and issue work")
    parser.add_argument("--config", type=Path, help="Path to settings YAML file", default=None)
    parser.add_argument("--output-dir", dest="output_dir", type=Path, help="Write the report as Markdown into this directory")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def app(argv: List[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    config = load_config(args.config)
    if args.days is not None:
        config.report.days = args.days
    if args.workers is not None:
        config.report.workers = max(1, args.workers)
    if args.output_dir:
        config.output.directory = args.output_dir
        config.output.write_markdown = True
    if args.onboarding and not args.user_name:
        parser.error("--onboarding requires --user")

    try:
        provider = create_provider(config)
    except ReportError as exc:
        logger.error("cannot create completion provider: {error}", error=str(exc))
        print(config.report.fallback)
        return

    request = ReportRequest(owner=args.owner, repo=args.repo, target_person=args.user_name, days=config.report.days)
    session = GitHubSession.create(config.github.token_env)
    try:
        if args.onboarding:
            print(_run_onboarding(session, provider, config, request))
        else:
            _run_weekly(session, provider, config, request, args.highlights)
    except Exception as exc:
        logger.opt(exception=exc).error("report run failed: {error}", error=str(exc))
        print(config.report.fallback)
    finally:
        session.close()


def _run_weekly(
    session: GitHubSession,
    provider: CompletionProvider,
    config: AppConfig,
    request: ReportRequest,
    highlights: bool = False,
) -> None:
    profile = get_community_profile(session, request.owner, request.repo)
    if profile is None:
        print("You've entered invalid owner/repo, or the target is private. Please try again.")
        return

    user_name = request.target_person
    if user_name:
        contributed = _fetch(lambda: is_code_contributor(session, request.owner, request.repo, user_name), False, "contributors")
        if not contributed:
            print(f"{user_name} hasn't contributed code to {request.full_name}. Bot will try to find out {user_name}'s other contributions.")
    else:
        print(f"You didn't input a user's name. Bot will then create a report on the weekly progress of {request.full_name}.")
    print(f"exploring {request.addressee} GitHub contributions to `{request.full_name}` project")

    commits: List[ActivityRecord] = _fetch(
        lambda: list_commits_in_range(session, request.owner, request.repo, user_name, request.days), [], "commits"
    )
    issues: List[ActivityRecord] = _fetch(
        lambda: list_issues_in_range(session, request.owner, request.repo, user_name, request.days, config), [], "issues"
    )
    discussions: List[ActivityRecord] = _fetch(
        lambda: search_discussions(session, discussion_query(request.owner, request.repo, user_name, request.days), config),
        [],
        "discussions",
    )

    report = build_weekly_report(provider, config, request, profile, commits, issues, discussions, progress=print)
    print(report.text)
    if config.output.write_markdown:
        print(f"Report written: {write_report(report, config)}")
    if highlights:
        print(_highlights(provider, config, report))


def _run_onboarding(session: GitHubSession, provider: CompletionProvider, config: AppConfig, request: ReportRequest) -> str:
    user_name = request.target_person or ""
    profile = get_community_profile(session, request.owner, request.repo)
    if profile is None:
        return "You've entered invalid owner/repo, or the target is private. Please try again."

    home_repo_data = _fetch(lambda: get_readme(session, request.owner, request.repo), "", "readme")
    home_repo_data = "\n".join(part for part in (home_repo_data, profile.label) if part)
    user_profile = _fetch(lambda: get_user_profile(session, user_name), "", "user profile")
    issues_data = _fetch(lambda: search_issue_titles(session, user_name, request.days), "", "issues")
    repos_data = _fetch(lambda: list_user_repos(session, user_name), "", "repositories")
    discussions = _fetch(
        lambda: search_discussions(session, discussion_query(request.owner, request.repo, user_name, request.days), config),
        [],
        "discussions",
    )
    discussion_data = "\n".join(record.body for record in discussions)

    try:
        return correlate_user_and_home_project(
            provider, config, home_repo_data, user_profile, issues_data, repos_data, discussion_data
        )
    except ReportError as exc:
        logger.error("onboarding report for {user} failed: {error}", user=user_name, error=str(exc))
        return config.report.fallback


def _highlights(provider: CompletionProvider, config: AppConfig, report: WeeklyReport) -> str:
    commits = report.digests["commits"].text
    issues = report.digests["issues"].text
    if commits is None or issues is None:
        return "No highlights: both commits and issues are needed."
    try:
        return correlate_commits_issues(provider, config, commits, issues)
    except ReportError as exc:
        logger.error("highlights for {repo} failed: {error}", repo=report.request.full_name, error=str(exc))
        return config.report.fallback


def _fetch(loader: Callable[[], T], default: T, what: str) -> T:
    try:
        return loader()
    except requests.RequestException as exc:
        logger.error("error fetching {what}: {error}", what=what, error=str(exc))
        return default


if __name__ == "__main__":  # pragma: no cover
    app(sys.argv[1:])
