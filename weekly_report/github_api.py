from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional

import requests
from bs4 import BeautifulSoup
from loguru import logger
from requests import Response
from tenacity import retry, stop_after_attempt, wait_exponential

from .analyzers import compose_discussion_thread, compose_issue_thread
from .config import AppConfig
from .models import ActivityKind, ActivityRecord

API_ROOT = "https://api.github.com"
GRAPHQL_URL = f"{API_ROOT}/graphql"
_USER_AGENT = "weekly-report/0.1"
_MAX_PAGES = 10
_DISCUSSION_QUERY = """
query($search: String!) {
  search(query: $search, type: DISCUSSION, first: 100) {
    edges {
      node {
        ... on Discussion {
          title
          url
          body
          createdAt
          upvoteCount
          author { login }
          comments(first: 100) {
            edges { node { author { login } body } }
          }
        }
      }
    }
  }
}
"""


@dataclass(slots=True)
class GitHubSession:
    http: requests.Session
    rate_limited: bool = False

    @classmethod
    def create(cls, token_env: str = "GITHUB_TOKEN") -> "GitHubSession":
        session = requests.Session()
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": _USER_AGENT,
        }
        token = os.getenv(token_env)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        session.headers.update(headers)
        return cls(http=session)

    def close(self) -> None:
        self.http.close()


def _raise_for_status(response: Response) -> None:
    try:
        response.raise_for_status()
    except requests.HTTPError as error:
        message = response.json().get("message") if response.headers.get("Content-Type", "").startswith("application/json") else response.text
        raise requests.HTTPError(f"GitHub API request failed: {response.status_code} {message}", response=response) from error


@retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8), reraise=True)
def _get(session: GitHubSession, url: str, params: Optional[Dict[str, str]] = None, accept: Optional[str] = None) -> Response:
    if not url.startswith("http"):
        url = f"{API_ROOT}{url}"
    headers = {"Accept": accept} if accept else None
    response = session.http.get(url, params=params, headers=headers, timeout=30)
    if response.status_code == 403 and "rate limit" in response.text.lower():
        session.rate_limited = True
        raise requests.HTTPError("GitHub API rate limit exceeded", response=response)
    _raise_for_status(response)
    return response


@retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=8), reraise=True)
def _graphql(session: GitHubSession, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
    response = session.http.post(GRAPHQL_URL, json={"query": query, "variables": variables}, timeout=60)
    _raise_for_status(response)
    payload = response.json()
    if payload.get("errors"):
        raise requests.HTTPError(f"GitHub GraphQL errors: {payload['errors']}")
    return payload.get("data") or {}


def _paginate(session: GitHubSession, path: str, params: Dict[str, str]) -> Iterator[Any]:
    for page in range(1, _MAX_PAGES + 1):
        response = _get(session, path, params={**params, "page": str(page)})
        body = response.json()
        items = body.get("items", []) if isinstance(body, dict) else body
        if not items:
            return
        yield from items
        if isinstance(body, dict) and len(items) < int(params.get("per_page", "30")):
            return


def get_community_profile(session: GitHubSession, owner: str, repo: str) -> Optional[ActivityRecord]:
    url = f"{API_ROOT}/repos/{owner}/{repo}/community/profile"
    try:
        profile = _get(session, url).json()
    except requests.RequestException as error:
        logger.error("error fetching community profile {url}: {error}", url=url, error=str(error))
        return None

    description = profile.get("description") or ""
    readme = get_readme(session, owner, repo) if (profile.get("files") or {}).get("readme") else ""
    updated_at = _parse_timestamp(profile.get("updated_at"))
    return ActivityRecord(
        kind=ActivityKind.META,
        actor=f"{owner}/{repo}",
        label=description,
        source_ref=url,
        occurred_on=updated_at or date.today(),
        body=readme or description,
    )


def get_readme(session: GitHubSession, owner: str, repo: str) -> str:
    try:
        response = _get(session, f"/repos/{owner}/{repo}/readme", accept="application/vnd.github.raw")
    except requests.RequestException as error:
        logger.warning("no readme for {owner}/{repo}: {error}", owner=owner, repo=repo, error=str(error))
        return ""
    return html_to_text(response.text)


def html_to_text(text: str) -> str:
    if "<" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text()


def is_code_contributor(session: GitHubSession, owner: str, repo: str, user_name: str) -> bool:
    wanted = user_name.lower()
    for contributor in _paginate(session, f"/repos/{owner}/{repo}/contributors", {"per_page": "100"}):
        if str(contributor.get("login", "")).lower() == wanted:
            return True
    return False


def list_commits_in_range(
    session: GitHubSession,
    owner: str,
    repo: str,
    user_name: Optional[str],
    days: int,
) -> List[ActivityRecord]:
    since = _window_start(days)
    params = {"per_page": "100", "since": since.isoformat().replace("+00:00", "Z")}
    if user_name:
        params["author"] = user_name

    records: List[ActivityRecord] = []
    for commit in _paginate(session, f"/repos/{owner}/{repo}/commits", params):
        committed_at = _parse_timestamp(((commit.get("commit") or {}).get("author") or {}).get("date"))
        author = commit.get("author") or {}
        if committed_at is None or not author.get("login"):
            continue
        html_url = commit.get("html_url", "")
        try:
            patch = _get(session, f"{html_url}.patch", accept="text/plain").text
        except requests.RequestException as error:
            logger.error("error fetching patch {url}: {error}", url=html_url, error=str(error))
            continue
        records.append(
            ActivityRecord(
                kind=ActivityKind.COMMIT,
                actor=author["login"],
                label=commit["commit"].get("message", ""),
                source_ref=html_url,
                occurred_on=committed_at,
                body=patch,
            )
        )
    return records


def list_issues_in_range(
    session: GitHubSession,
    owner: str,
    repo: str,
    user_name: Optional[str],
    days: int,
    config: AppConfig,
) -> List[ActivityRecord]:
    since = _window_start(days).strftime("%Y-%m-%dT%H:%M:%SZ")
    user_str = f" involves:{user_name}" if user_name else ""
    query = f"repo:{owner}/{repo} is:issue{user_str} updated:>{since}"
    params = {"q": query, "sort": "updated", "order": "desc", "per_page": "100"}

    records: List[ActivityRecord] = []
    for issue in _paginate(session, "/search/issues", params):
        comments = [
            ((comment.get("user") or {}).get("login", ""), comment.get("body"))
            for comment in _paginate(session, issue["comments_url"], {"per_page": "100"})
        ] if issue.get("comments") else []
        author = (issue.get("user") or {}).get("login", "")
        body = compose_issue_thread(
            author,
            issue.get("title", ""),
            [label.get("name", "") for label in issue.get("labels", [])],
            issue.get("body"),
            comments,
            config,
        )
        records.append(
            ActivityRecord(
                kind=ActivityKind.ISSUE,
                actor=author,
                label=issue.get("title", ""),
                source_ref=issue.get("html_url", ""),
                occurred_on=_parse_timestamp(issue.get("created_at")) or date.today(),
                body=body,
            )
        )
    return records


def search_discussions(session: GitHubSession, search_query: str, config: AppConfig) -> List[ActivityRecord]:
    data = _graphql(session, _DISCUSSION_QUERY, {"search": search_query})
    edges = ((data.get("search") or {}).get("edges")) or []

    records: List[ActivityRecord] = []
    for edge in edges:
        discussion = (edge or {}).get("node") or {}
        if not discussion.get("url"):
            continue
        created_on = _parse_timestamp(discussion.get("createdAt")) or date.today()
        author = ((discussion.get("author") or {}).get("login")) or ""
        comments = [
            (((node.get("author") or {}).get("login")) or "", node.get("body"))
            for node in (((comment or {}).get("node")) for comment in ((discussion.get("comments") or {}).get("edges") or []))
            if node
        ]
        body = compose_discussion_thread(
            author,
            discussion.get("title") or "",
            discussion["url"],
            discussion.get("body"),
            created_on.isoformat(),
            int(discussion.get("upvoteCount") or 0),
            comments,
            config,
        )
        records.append(
            ActivityRecord(
                kind=ActivityKind.DISCUSSION,
                actor=author,
                label=discussion.get("title") or "",
                source_ref=discussion["url"],
                occurred_on=created_on,
                body=body,
            )
        )
    return records


def discussion_query(owner: str, repo: str, user_name: Optional[str], days: int) -> str:
    since = _window_start(days).strftime("%Y-%m-%dT%H:%M:%SZ")
    scope = f"involves:{user_name}" if user_name else f"repo:{owner}/{repo}"
    return f"{scope} updated:>{since}"


def get_user_profile(session: GitHubSession, user_name: str) -> str:
    user = _get(session, f"/users/{user_name}").json()
    fields = [
        ("Login", user.get("login")),
        ("Name", user.get("name")),
        ("Company", user.get("company")),
        ("Blog", user.get("blog")),
        ("Location", user.get("location")),
        ("Bio", user.get("bio")),
        ("Public repos", user.get("public_repos")),
        ("Followers", user.get("followers")),
        ("Created at", user.get("created_at")),
    ]
    return "\n".join(f"{label}: {value}" for label, value in fields if value not in (None, ""))


def list_user_repos(session: GitHubSession, user_name: str, max_repos: int = 30) -> str:
    lines: List[str] = []
    params = {"per_page": "100", "type": "owner", "sort": "pushed"}
    for repo in _paginate(session, f"/users/{user_name}/repos", params):
        description = repo.get("description") or "no description"
        language = repo.get("language") or "unknown"
        lines.append(f"{repo.get('full_name')}: {description} ({language}, {repo.get('stargazers_count', 0)} stars)")
        if len(lines) >= max_repos:
            break
    return "\n".join(lines)


def search_issue_titles(session: GitHubSession, user_name: str, days: int, max_issues: int = 50) -> str:
    since = _window_start(days).strftime("%Y-%m-%dT%H:%M:%SZ")
    params = {"q": f"involves:{user_name} updated:>{since}", "sort": "updated", "order": "desc", "per_page": "100"}
    lines: List[str] = []
    for issue in _paginate(session, "/search/issues", params):
        lines.append(f"{issue.get('html_url')} {issue.get('title')} ({issue.get('state')})")
        if len(lines) >= max_issues:
            break
    return "\n".join(lines)


def _window_start(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def _parse_timestamp(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None
