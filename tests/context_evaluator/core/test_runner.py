"""Tests for EvaluatorRunner."""
import json

import pytest

from context_evaluator.core.domain.evaluators import get_evaluator, select_evaluators
from context_evaluator.core.domain.exceptions import ProviderInvocationError, ProviderTimeoutError
from context_evaluator.core.domain.issues import IssueIdSequence
from context_evaluator.core.domain.models import ContextFile, EvaluatorResult, Usage
from context_evaluator.core.domain.prompt import NO_FILE_MESSAGE
from context_evaluator.core.services import EvaluatorRunner, JsonExtractor
from context_evaluator.core.services.progress import ProgressEmitter
from context_evaluator.core.services.runner import NO_FILE_SKIP_REASON, aggregate_file_results

from helpers import FakeProvider, error_issue, evaluator_of


ROOT = ContextFile("AGENTS.md", "# Project\n\nRun `make test`.\nUse tabs.\n")
NESTED = ContextFile("api/AGENTS.md", "# API\n\nUse spaces.\n")


def _issue(severity=7, **extra):
    return {"category": "Content", "severity": severity, "problem": "Vague", "location": {"start": 3, "end": 3}, **extra}


class RecordingSink:
    def __init__(self):
        self.writes = []

    def write(self, name, text):
        self.writes.append((name, text))


def _runner(provider, logger, prompts, **kwargs):
    return EvaluatorRunner(provider=provider, prompts=prompts, logger=logger, json_extractor=JsonExtractor(), **kwargs)


def _specs(*ids):
    return [get_evaluator(i) for i in ids]


class TestRunAllEvaluators:
    """Tests for independent mode."""

    @pytest.mark.asyncio
    async def test_results_keep_evaluator_order_and_absorb_failures(self, logger, prompts):
        def respond(prompt):
            evaluator = evaluator_of(prompt)
            if evaluator == "security":
                return json.dumps([_issue(9)])
            if evaluator == "content-quality":
                return "not valid json"
            return ProviderInvocationError("quota exceeded", retryable=False)

        runner = _runner(FakeProvider(respond), logger, prompts)
        results = await runner.run_all_evaluators(
            ROOT, evaluators=_specs("content-quality", "security", "code-style"), ids=IssueIdSequence()
        )

        assert [r.evaluator for r in results] == ["content-quality", "security", "code-style"]

        parse_failure, ok, provider_failure = results
        assert ok.issues[0].severity == 9
        assert ok.issues[0].snippet is not None
        assert ok.file == "AGENTS.md"
        assert parse_failure.issues == []
        assert parse_failure.structured_errors[0].category == "parsing"
        assert parse_failure.structured_errors[0].severity == "partial"
        assert provider_failure.structured_errors[0].category == "provider"
        assert provider_failure.structured_errors[0].severity == "partial"
        assert provider_failure.error == "quota exceeded"

    @pytest.mark.asyncio
    async def test_timeout_is_categorized(self, logger, prompts):
        runner = _runner(FakeProvider(lambda p: ProviderTimeoutError("fake:test", 1000)), logger, prompts)
        results = await runner.run_all_evaluators(ROOT, evaluators=_specs("security"), ids=IssueIdSequence())

        error = results[0].structured_errors[0]
        assert error.category == "timeout"
        assert error.retryable is True

    @pytest.mark.asyncio
    async def test_ids_unique_across_evaluators(self, logger, prompts):
        runner = _runner(FakeProvider(lambda p: json.dumps([_issue(), _issue(5)])), logger, prompts)
        results = await runner.run_all_evaluators(
            ROOT, evaluators=_specs("security", "code-style", "language-clarity"), ids=IssueIdSequence()
        )

        ids = [i.dedup_id for r in results for i in r.issues]
        assert len(ids) == 6
        assert len(set(ids)) == 6

    @pytest.mark.asyncio
    async def test_no_file_runs_only_flagged_evaluators(self, logger, prompts):
        provider = FakeProvider(lambda p: "[]")
        runner = _runner(provider, logger, prompts)

        results = await runner.run_all_evaluators(None, evaluators=select_evaluators("all"), ids=IssueIdSequence())

        executed = [r.evaluator for r in results if not r.skipped]
        assert executed == ["context-gaps", "test-patterns-coverage", "database-patterns-coverage"]
        assert all(r.skip_reason == NO_FILE_SKIP_REASON for r in results if r.skipped)
        assert len(provider.prompts) == 3
        assert all(NO_FILE_MESSAGE in p for p in provider.prompts)

    @pytest.mark.asyncio
    async def test_root_only_evaluator_skips_nested_file(self, logger, prompts):
        provider = FakeProvider(lambda p: "[]")
        runner = _runner(provider, logger, prompts)

        results = await runner.run_all_evaluators(
            NESTED, evaluators=_specs("git-workflow"), ids=IssueIdSequence(), all_files=[ROOT, NESTED]
        )

        assert results[0].issues == []
        assert results[0].structured_errors == []
        assert provider.prompts == []

    @pytest.mark.asyncio
    async def test_retry_events_are_forwarded(self, logger, prompts):
        events = []
        seen = []
        runner = _runner(FakeProvider(lambda p: "[]", retries_before_success=2), logger, prompts)

        await runner.run_all_evaluators(
            ROOT,
            evaluators=_specs("security"),
            ids=IssueIdSequence(),
            progress=ProgressEmitter(events.append, logger),
            on_retry=lambda evaluator, event: seen.append((evaluator, event.attempt)),
        )

        assert [e.data["attempt"] for e in events if e.type == "evaluator.retry"] == [1, 2]
        assert seen == [("security", 1), ("security", 2)]
        statuses = [e.data["status"] for e in events if e.type == "evaluator.progress"]
        assert statuses == ["started", "completed"]

    @pytest.mark.asyncio
    async def test_debug_sink_receives_prompt_and_response(self, logger, prompts):
        sink = RecordingSink()
        runner = _runner(FakeProvider(lambda p: "[]"), logger, prompts, debug_sink=sink)

        await runner.run_all_evaluators(NESTED, evaluators=_specs("security"), ids=IssueIdSequence())

        name, text = sink.writes[0]
        assert name == "security--api_AGENTS.md"
        assert "# PROMPT" in text and "# RESPONSE" in text

    @pytest.mark.asyncio
    async def test_missing_prompt_becomes_failed_result(self, logger):
        class NoPrompts:
            def get(self, name):
                raise LookupError(f"Prompt not found: {name}")

            def exists(self, name):
                return False

        runner = _runner(FakeProvider(), logger, NoPrompts())
        results = await runner.run_all_evaluators(ROOT, evaluators=_specs("security", "code-style"), ids=IssueIdSequence())

        assert len(results) == 2
        assert all(r.structured_errors for r in results)


class TestRunUnifiedEvaluation:
    """Tests for unified mode."""

    @pytest.mark.asyncio
    async def test_per_file_and_cross_file_split(self, logger, prompts):
        reply = json.dumps(
            [
                _issue(location={"file": "api/AGENTS.md", "start": 1, "end": 1}),
                _issue(8, affectedFiles=["AGENTS.md", "api/AGENTS.md"], problem="Tabs vs spaces"),
            ]
        )
        provider = FakeProvider(lambda p: reply)
        runner = _runner(provider, logger, prompts)

        unified = await runner.run_unified_evaluation(
            [ROOT, NESTED], evaluators=_specs("contradictory-instructions"), ids=IssueIdSequence()
        )

        assert len(provider.prompts) == 1
        assert "FILE 2: api/AGENTS.md" in provider.prompts[0]
        assert [i.problem for i in unified.cross_file_issues] == ["Tabs vs spaces"]
        assert len(unified.per_file_issues["api/AGENTS.md"]) == 1
        assert unified.per_file_issues["AGENTS.md"] == []
        assert unified.total_cost_usd == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_root_only_sees_root_file(self, logger, prompts):
        provider = FakeProvider(lambda p: "[]")
        runner = _runner(provider, logger, prompts)

        await runner.run_unified_evaluation([NESTED, ROOT], evaluators=_specs("git-workflow"), ids=IssueIdSequence())

        assert "FILE 1: AGENTS.md" in provider.prompts[0]
        assert "api/AGENTS.md" not in provider.prompts[0]

    def test_fits_unified(self, logger, prompts):
        runner = _runner(FakeProvider(), logger, prompts, max_tokens=10)
        assert runner.fits_unified([ContextFile("AGENTS.md", "short")])
        assert not runner.fits_unified([ContextFile("AGENTS.md", "x" * 100)])


def test_aggregate_file_results():
    results = [
        EvaluatorResult(evaluator="a", issues=[error_issue("issue_1", severity=9)], usage=Usage(10, 5), cost_usd=0.1, duration_ms=10),
        EvaluatorResult(evaluator="b", issues=[error_issue("issue_2", severity=3)], usage=Usage(1, 1), cost_usd=0.2, duration_ms=5),
    ]
    agg = aggregate_file_results("AGENTS.md", results)

    assert agg.total_issues == 2
    assert (agg.high_count, agg.medium_count, agg.low_count) == (1, 0, 1)
    assert agg.usage.total_tokens == 17
    assert agg.cost_usd == pytest.approx(0.3)
