from __future__ import annotations

import concurrent.futures
import time
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from .budget import fit_by_tokens, strip_and_fit
from .config import AppConfig
from .errors import ChainFailure
from .llm import CompletionProvider, chain_of_chat
from .models import ActivityKind, ActivityRecord, CategoryDigest

Analyzer = Callable[[ActivityRecord], str]


def compose_issue_thread(
    author: str,
    title: str,
    labels: Sequence[str],
    body: Optional[str],
    comments: Iterable[Tuple[str, Optional[str]]],
    config: AppConfig,
) -> str:
    budget = config.budget
    post = _squeeze(body, budget.issue_body_words, budget.head_ratio, config)
    text = f"User '{author}', opened an issue titled '{title}', labeled '{', '.join(labels)}', with the following post: '{post}'."
    for commenter, comment_body in comments:
        if len(text) > budget.thread_char_cap:
            break
        comment = _squeeze(comment_body, budget.issue_body_words, budget.head_ratio, config)
        text += f" {commenter} commented: {comment}"
    return text


def compose_discussion_thread(
    author: str,
    title: str,
    url: str,
    body: Optional[str],
    created_on: str,
    upvotes: int,
    comments: Iterable[Tuple[str, Optional[str]]],
    config: AppConfig,
) -> str:
    budget = config.budget
    post = _squeeze(body, budget.issue_body_words, budget.head_ratio, config)
    upvotes_str = f" Upvotes: {upvotes}" if upvotes > 0 else ""
    lines = [f"Title: '{title}' Url: '{url}' Body: '{post}' Created At: {created_on}{upvotes_str} Author: {author}"]
    for commenter, comment_body in comments:
        comment = _squeeze(comment_body, budget.comment_words, budget.head_ratio, config)
        lines.append(f"{commenter} comments: '{comment}'")
    return strip_and_fit(
        "\n".join(lines),
        budget.quote_marker,
        budget.discussion_words,
        budget.discussion_head_ratio,
        budget.long_token_limit,
    )


def _squeeze(text: Optional[str], max_words: int, head_ratio: float, config: AppConfig) -> str:
    if not text:
        return ""
    return strip_and_fit(text, config.budget.quote_marker, max_words, head_ratio, config.budget.long_token_limit)


def analyze_commit(provider: CompletionProvider, config: AppConfig, record: ActivityRecord) -> str:
    patch = fit_by_tokens(record.body, config.budget.commit_patch_tokens, config.budget.head_ratio, config.llm.model)
    user_name = record.actor
    sys_prompt_1 = (
        f"You are provided with a commit patch by the user {user_name}. Your task is to parse this data, focusing on the "
        "following sections: the Date Line, Subject Line, Diff Files, Diff Changes, Sign-off Line, and the File Changes "
        "Summary. Extract key elements of the commit, and the types of files affected, prioritizing code files, scripts, "
        "then documentation. Be particularly careful to distinguish between changes made to core code files and "
        "modifications made to documentation files, even if they contain technical content. Compile a list of the "
        "extracted key elements."
    )
    usr_prompt_1 = (
        f"Based on the provided commit patch: {patch}, and description: {record.label}, extract and present the "
        "following key elements: a high-level summary of the changes made, and the types of files affected. Prioritize "
        "data on changes to code files first, then scripts, and lastly documentation. Pay attention to the file types "
        "and ensure the distinction between documentation changes and core code changes, even when the documentation "
        "contains highly technical language. Please compile your findings into a list, with each key element "
        "represented as a separate item."
    )
    usr_prompt_2 = (
        "Using the key elements you extracted from the commit patch, provide a summary of the user's contributions to "
        "the project. Include the types of files affected, and the overall changes made. When describing the affected "
        "files, make sure to differentiate between changes to core code files, scripts, and documentation files. "
        "Present your summary in this format: '(summary of changes). (overall impact of changes).' Please ensure your "
        f"answer stays below {config.llm.item_summary_tokens} tokens."
    )
    return chain_of_chat(
        provider,
        config.llm,
        sys_prompt_1,
        usr_prompt_1,
        config.llm.item_analysis_tokens,
        usr_prompt_2,
        config.llm.item_summary_tokens,
        f"commit-{record.short_ref[:5]}",
    )


def analyze_issue(
    provider: CompletionProvider,
    config: AppConfig,
    record: ActivityRecord,
    target_person: Optional[str] = None,
) -> str:
    target_str = target_person or "key participants"
    sys_prompt_1 = (
        f"Given the information that user '{record.actor}' opened an issue titled '{record.label}', your task is to "
        "analyze the content of the issue posts. Extract key details including the main problem or question raised, "
        "the environment in which the issue occurred, any steps taken by the user and commenters to address the "
        "problem, relevant discussions, and any identified solutions, consensus reached, or pending tasks."
    )
    usr_prompt_1 = (
        f"Based on the GitHub issue posts: {record.body}, please list the following key details: The main problem or "
        "question raised in the issue. The environment or conditions in which the issue occurred (e.g., hardware, OS). "
        "Any steps or actions taken by the user or commenters to address the issue. Key discussions or points of view "
        "shared by participants in the issue thread. Any solutions identified, consensus reached, or pending tasks if "
        "the issue hasn't been resolved. The role and contribution of the user or commenters in the issue."
    )
    usr_prompt_2 = (
        "Provide a brief summary highlighting the core problem and emphasize the overarching contribution made by "
        f"'{target_str}' to the resolution of this issue, ensuring your response stays under "
        f"{config.llm.item_summary_tokens} tokens."
    )
    return chain_of_chat(
        provider,
        config.llm,
        sys_prompt_1,
        usr_prompt_1,
        config.llm.item_analysis_tokens,
        usr_prompt_2,
        config.llm.item_summary_tokens,
        f"issue-{record.short_ref}",
    )


def analyze_discussion(
    provider: CompletionProvider,
    config: AppConfig,
    record: ActivityRecord,
    target_person: Optional[str] = None,
) -> str:
    target_str = target_person or "key participants"
    sys_prompt_1 = (
        "Given the information on a GitHub discussion, your task is to analyze the content of the discussion posts. "
        "Extract key details including the main topic or question raised, any steps taken by the original author and "
        "commenters to address the problem, relevant discussions, and any identified solutions, consensus reached, or "
        "pending tasks."
    )
    usr_prompt_1 = (
        f"Based on the GitHub discussion post: {record.body}, please list the following key details: The main topic or "
        "question raised in the discussion. Any steps or actions taken by the original author or commenters to address "
        "the discussion. Key discussions or points of view shared by participants in the discussion thread. Any "
        "solutions identified, consensus reached, or pending tasks if the discussion hasn't been resolved. The role and "
        "contribution of the user or commenters in the discussion."
    )
    usr_prompt_2 = (
        "Provide a brief summary highlighting the core topic and emphasize the overarching contribution made by "
        f"'{target_str}' to the resolution of this discussion, ensuring your response stays under "
        f"{config.llm.item_summary_tokens} tokens."
    )
    return chain_of_chat(
        provider,
        config.llm,
        sys_prompt_1,
        usr_prompt_1,
        config.llm.item_analysis_tokens,
        usr_prompt_2,
        config.llm.item_summary_tokens,
        f"discussion-{record.short_ref}",
    )


def analyzer_for(
    kind: ActivityKind,
    provider: CompletionProvider,
    config: AppConfig,
    target_person: Optional[str] = None,
) -> Analyzer:
    if kind is ActivityKind.COMMIT:
        return lambda record: analyze_commit(provider, config, record)
    if kind is ActivityKind.ISSUE:
        return lambda record: analyze_issue(provider, config, record, target_person)
    if kind is ActivityKind.DISCUSSION:
        return lambda record: analyze_discussion(provider, config, record, target_person)
    raise ValueError(f"no analyzer for {kind.value} records")


def dedupe_records(records: Iterable[ActivityRecord]) -> List[ActivityRecord]:
    seen = set()
    unique: List[ActivityRecord] = []
    for record in records:
        if record.source_ref in seen:
            continue
        seen.add(record.source_ref)
        unique.append(record)
    return unique


def process_category(
    category: str,
    records: Sequence[ActivityRecord],
    analyzer: Analyzer,
    config: AppConfig,
    target_person: Optional[str] = None,
) -> CategoryDigest:
    """Summarize each record and join the summaries into one text block.

    Failed items are logged and left out. Lines follow input order whatever
    order the workers finish in. ``text`` stays ``None`` when nothing was
    summarized, so the category drops out of the correlator prompt.
    """
    digest = CategoryDigest(category=category)
    unique = dedupe_records(records)
    if not unique:
        logger.info("no {category} to summarize", category=category)
        return digest

    started = time.perf_counter()
    summaries = _summarize_all(unique, analyzer, max(1, config.report.workers))

    lines: List[str] = []
    total_chars = 0
    for record, summary in zip(unique, summaries):
        if summary is None:
            digest.failed.append(record.source_ref)
            continue
        record.attach_summary(summary, actor=target_person)
        digest.records.append(record)
        if total_chars > config.budget.category_char_cap:
            continue
        line = _format_line(record)
        lines.append(line)
        total_chars += len(line) + 1

    if lines:
        digest.text = "\n".join(lines)
    logger.info(
        "{category} summarized",
        category=category,
        summarized=digest.count,
        failed=len(digest.failed),
        elapsed=f"{time.perf_counter() - started:.2f}s",
    )
    return digest


def _summarize_all(records: Sequence[ActivityRecord], analyzer: Analyzer, workers: int) -> List[Optional[str]]:
    if workers <= 1 or len(records) <= 1:
        return [_summarize_one(record, analyzer) for record in records]

    results: List[Optional[str]] = [None] * len(records)
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(_summarize_one, record, analyzer): index for index, record in enumerate(records)}
        for future in concurrent.futures.as_completed(futures):
            results[futures[future]] = future.result()
    return results


def _summarize_one(record: ActivityRecord, analyzer: Analyzer) -> Optional[str]:
    try:
        return analyzer(record)
    except ChainFailure as exc:
        logger.error(
            "error analyzing {kind} {url}: {error}",
            kind=record.kind.value,
            url=record.source_ref,
            error=exc.message,
            correlation_id=exc.correlation_id,
        )
        return None
    except Exception as exc:
        logger.opt(exception=exc).error(
            "unexpected error analyzing {kind} {url}: {error}",
            kind=record.kind.value,
            url=record.source_ref,
            error=str(exc),
        )
        return None


def _format_line(record: ActivityRecord) -> str:
    if record.kind is ActivityKind.COMMIT:
        return f"{record.occurred_on.isoformat()} {record.summary}"
    return f"{record.source_ref} {record.summary}"


def progress_message(category: str, records: Sequence[ActivityRecord]) -> str:
    refs = ", ".join(record.short_ref for record in records)
    return f"found {len(records)} {category}: {refs}"
