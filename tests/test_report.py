from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

from weekly_report.config import FALLBACK_REPORT, AppConfig
from weekly_report.errors import NoDataError
from weekly_report.llm import OpenAIProvider
from weekly_report.models import ActivityKind, ReportRequest, ReportSources
from weekly_report.report import (
    build_weekly_report,
    correlate_activity,
    correlate_commits_issues,
    correlate_user_and_home_project,
    render_markdown,
    weekly_report,
    write_report,
)

from tests.helpers import EchoProvider, FakeEncoding, ScriptedProvider, make_record


def _commit(index: int):
    return make_record(ActivityKind.COMMIT, f"https://github.com/octo/demo/commit/c{index}aaaaaaa", body=f"<<c{index}>>")


def _issue(index: int):
    return make_record(ActivityKind.ISSUE, f"https://github.com/octo/demo/issues/{index}", body=f"<<i{index}>>")


def _discussion(index: int):
    return make_record(ActivityKind.DISCUSSION, f"https://github.com/octo/demo/discussions/{index}", body=f"<<d{index}>>")


class WeeklyReportTests(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch("weekly_report.budget._encoding_for", return_value=FakeEncoding())
        patcher.start()
        self.addCleanup(patcher.stop)
        self.request = ReportRequest(owner="octo", repo="demo")

    def test_report_merges_every_category(self) -> None:
        provider = EchoProvider()
        messages: list[str] = []

        report = build_weekly_report(
            provider,
            AppConfig(),
            self.request,
            commits=[_commit(1), _commit(2)],
            issues=[_issue(1)],
            discussions=[_discussion(1)],
            progress=messages.append,
        )

        self.assertTrue(report.succeeded)
        for marker in ("<<c1>>", "<<c2>>", "<<i1>>", "<<d1>>"):
            self.assertIn(marker, report.text)
        self.assertEqual(
            messages,
            ["found 2 commits: c1aaaaa, c2aaaaa", "found 1 issues: 1", "found 1 discussions: 1"],
        )
        final_request = provider.requests[-1]
        self.assertEqual(final_request.max_output_tokens, 256)
        self.assertEqual(provider.requests[-2].max_output_tokens, 512)

    def test_missing_category_is_left_out_of_the_prompt(self) -> None:
        provider = EchoProvider()
        report = build_weekly_report(provider, AppConfig(), self.request, commits=[_commit(1)], issues=[_issue(2)])

        correlator_prompt = provider.requests[-2].user_prompt
        self.assertIn("commit logs: ", correlator_prompt)
        self.assertIn("issue posts: ", correlator_prompt)
        self.assertNotIn("discussion posts", correlator_prompt)
        self.assertNotIn("project profile", correlator_prompt)
        self.assertIsNone(report.digests["discussions"].text)

    def test_profile_is_included_when_present(self) -> None:
        provider = EchoProvider()
        profile = make_record(ActivityKind.META, "https://api.github.com/repos/octo/demo/community/profile", body="A demo project")
        build_weekly_report(provider, AppConfig(), self.request, profile=profile, issues=[_issue(1)])
        self.assertIn("project profile: A demo project", provider.requests[-2].user_prompt)

    def test_failed_item_is_omitted_from_report(self) -> None:
        provider = EchoProvider(fail_on="i2")
        report = build_weekly_report(provider, AppConfig(), self.request, issues=[_issue(1), _issue(2), _issue(3)])
        self.assertTrue(report.succeeded)
        self.assertIn("<<i1>>", report.text)
        self.assertIn("<<i3>>", report.text)
        self.assertNotIn("<<i2>>", report.text)
        self.assertEqual(report.digests["issues"].failed, ["https://github.com/octo/demo/issues/2"])

    def test_no_activity_returns_fallback(self) -> None:
        provider = EchoProvider()
        profile = make_record(ActivityKind.META, "profile-url", body="A demo project")
        text = weekly_report(provider, AppConfig(), self.request, profile=profile)
        self.assertEqual(text, FALLBACK_REPORT)
        self.assertEqual(provider.requests, [])

    def test_degenerate_correlation_returns_fallback(self) -> None:
        provider = EchoProvider(degenerate_report=True)
        report = build_weekly_report(provider, AppConfig(), self.request, commits=[_commit(1)])
        self.assertFalse(report.succeeded)
        self.assertEqual(report.text, FALLBACK_REPORT)
        self.assertEqual(report.digests["commits"].count, 1)

    def test_every_item_failing_returns_fallback(self) -> None:
        provider = ScriptedProvider(["analysis", "no"] * 4)
        text = weekly_report(provider, AppConfig(), self.request, issues=[_issue(1), _issue(2)])
        self.assertEqual(text, FALLBACK_REPORT)
        self.assertEqual(len(provider.requests), 4)

    def test_refused_completion_returns_fallback(self) -> None:
        client = mock.MagicMock()
        refusal = SimpleNamespace(type="refusal", refusal="I can't help with that.")
        client.responses.create.return_value = SimpleNamespace(output=[SimpleNamespace(content=[refusal])], usage=None)

        text = weekly_report(OpenAIProvider(client), AppConfig(), self.request, issues=[_issue(1)])

        self.assertEqual(text, FALLBACK_REPORT)

    def test_unexpected_correlator_error_returns_fallback(self) -> None:
        provider = ScriptedProvider(["analysis", "a usable item summary", "analysis", AttributeError("broken reply")])
        report = build_weekly_report(provider, AppConfig(), self.request, issues=[_issue(1)])
        self.assertFalse(report.succeeded)
        self.assertEqual(report.text, FALLBACK_REPORT)
        self.assertEqual(report.digests["issues"].count, 1)

    def test_target_person_reaches_prompts_and_records(self) -> None:
        provider = EchoProvider()
        request = ReportRequest(owner="octo", repo="demo", target_person="zoe")
        issue = _issue(1)
        build_weekly_report(provider, AppConfig(), request, issues=[issue])
        self.assertEqual(issue.actor, "zoe")
        self.assertIn("zoe's", provider.requests[-2].user_prompt)


class CorrelatorTests(unittest.TestCase):
    def test_correlate_activity_requires_activity(self) -> None:
        with self.assertRaises(NoDataError):
            correlate_activity(ScriptedProvider([]), AppConfig(), ReportSources(profile="only a profile"))

    def test_correlate_activity_allocates_budget(self) -> None:
        config = AppConfig()
        config.budget.total_units = 100
        config.budget.chars_per_unit = 1
        provider = ScriptedProvider(["analysis", "a weekly narrative"])
        sources = ReportSources(commits="C" * 500, discussions="D" * 500)

        result = correlate_activity(provider, config, sources)

        self.assertEqual(result, "a weekly narrative")
        prompt = provider.requests[0].user_prompt
        self.assertIn("commit logs: " + "C" * 66 + "\n", prompt)
        self.assertIn("discussion posts: " + "D" * 33 + "\n", prompt)
        self.assertNotIn("C" * 67, prompt)

    def test_commits_and_issues_share_word_budget(self) -> None:
        config = AppConfig()
        config.budget.pair_combined_max = 100
        provider = ScriptedProvider(["analysis", "bullet point summary"])

        correlate_commits_issues(provider, config, "commitword " * 300, "issueword " * 10)

        prompt = provider.requests[0].user_prompt
        self.assertEqual(prompt.count("commitword"), 60)
        self.assertEqual(prompt.count("issueword"), 10)

    def test_home_project_inputs_are_capped(self) -> None:
        provider = ScriptedProvider(["analysis", "onboarding summary"])
        correlate_user_and_home_project(
            provider,
            AppConfig(),
            "☃" * 7000,
            "☂" * 5000,
            "☁" * 10000,
            "☀" * 7000,
            "☄" * 5000,
        )
        prompt = provider.requests[0].user_prompt
        self.assertEqual(prompt.count("☃"), 6000)
        self.assertEqual(prompt.count("☂"), 4000)
        self.assertEqual(prompt.count("☁"), 9000)
        self.assertEqual(prompt.count("☀"), 6000)
        self.assertEqual(prompt.count("☄"), 4000)


class RenderTests(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch("weekly_report.budget._encoding_for", return_value=FakeEncoding())
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_render_and_write(self) -> None:
        request = ReportRequest(owner="octo", repo="demo", target_person="zoe", days=7)
        report = build_weekly_report(EchoProvider(), AppConfig(), request, commits=[_commit(1)])

        markdown = render_markdown(report)

        self.assertTrue(markdown.startswith("# Weekly Report: octo/demo\n"))
        self.assertIn("Contributor: zoe", markdown)
        self.assertIn("## Commits (1)", markdown)
        self.assertIn("[c1aaaaa](https://github.com/octo/demo/commit/c1aaaaaaa)", markdown)
        self.assertIn("No issues summarized in this window.", markdown)

        config = AppConfig()
        with tempfile.TemporaryDirectory() as tmp:
            config.output.directory = Path(tmp) / "out"
            path = write_report(report, config)
            self.assertTrue(path.name.startswith("octo-demo-zoe-"))
            self.assertEqual(path.read_text(encoding="utf-8"), markdown)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
