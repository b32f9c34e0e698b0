"""Tests for EvaluationEngine."""
import json

import pytest

from context_evaluator.core.domain.exceptions import ProviderUnavailableError, RepositoryError
from context_evaluator.core.domain.issues import IssueIdSequence
from context_evaluator.core.domain.models import ContextFile, EvaluationOptions, ProjectInputs
from context_evaluator.core.services import (
    ContextScorer,
    CurationPipeline,
    DeduplicationPipeline,
    EvaluationEngine,
    EvaluatorRunner,
    ImpactCurator,
    JsonExtractor,
)

from helpers import FakeProvider, error_issue, evaluator_of


ROOT = ContextFile("AGENTS.md", "# Root rules\n\nRun `make build`.\nCommit often.\n")
NESTED = ContextFile("api/AGENTS.md", "# API\n\nNode 12 only.\n")


class FakeDiscovery:
    def __init__(self, files, conflicts=()):
        self.files = list(files)
        self.conflicts = list(conflicts)

    def find_context_files(self, repo_path):
        return list(self.files)

    def collect_project_inputs(self, repo_path, context_files, ids=None):
        ids = ids or IssueIdSequence()
        return ProjectInputs(
            context_files=list(context_files),
            agents_file_paths=[f.relative_path for f in context_files],
            project_context="Languages: Python",
            consistency_issues=[
                error_issue(ids.next_id(), severity=9, problem=problem, category="File Consistency", affected_files=pair)
                for problem, pair in self.conflicts
            ],
        )


def _reply(problem, severity=7, line=3):
    return json.dumps([{"category": "Content", "severity": severity, "problem": problem, "location": {"start": line, "end": line}}])


def _engine(provider, files, logger, prompts, *, max_tokens=100_000, conflicts=(), **kwargs):
    extractor = JsonExtractor()
    return EvaluationEngine(
        provider=provider,
        discovery=FakeDiscovery(files, conflicts),
        runner=EvaluatorRunner(
            provider=provider, prompts=prompts, logger=logger, json_extractor=extractor, max_tokens=max_tokens
        ),
        deduplication=DeduplicationPipeline(logger=logger),
        curation=CurationPipeline(
            curator=ImpactCurator(provider=provider, prompts=prompts, logger=logger, json_extractor=extractor),
            logger=logger,
        ),
        scorer=ContextScorer(provider=provider, prompts=prompts, logger=logger, json_extractor=extractor, ai_explanation=False),
        logger=logger,
        **kwargs,
    )


def _types(events):
    return [e.type for e in events if not e.type.startswith("evaluator.")]


class TestEvaluate:
    """Tests for EvaluationEngine.evaluate."""

    @pytest.mark.asyncio
    async def test_independent_mode_event_order(self, tmp_path, logger, prompts):
        def respond(prompt):
            if "Root rules" in prompt:
                return _reply("Build command lacks flags")
            return _reply("Pinned runtime version is outdated")

        events = []
        engine = _engine(FakeProvider(respond), [ROOT, NESTED], logger, prompts)

        output = await engine.evaluate(
            tmp_path,
            options=EvaluationOptions(mode="independent", evaluators=("security",)),
            on_progress=events.append,
        )

        assert _types(events) == [
            "discovery.started",
            "discovery.completed",
            "context.started",
            "context.completed",
            "job.started",
            "file.started",
            "file.completed",
            "file.started",
            "file.completed",
            "job.completed",
        ]
        assert events[-1].data["result"] is output
        assert output.mode == "independent"
        assert list(output.files) == ["AGENTS.md", "api/AGENTS.md"]
        assert output.metadata.total_issues == 2
        assert output.metadata.files_evaluated == ["AGENTS.md", "api/AGENTS.md"]
        assert output.metadata.context_score is not None
        assert output.metadata.has_errors is False

    @pytest.mark.asyncio
    async def test_duplicates_are_filtered_everywhere(self, tmp_path, logger, prompts):
        def respond(prompt):
            severity = 9 if evaluator_of(prompt) == "security" else 5
            return _reply("Build command is missing", severity=severity)

        engine = _engine(FakeProvider(respond), [ROOT], logger, prompts)

        output = await engine.evaluate(
            tmp_path, options=EvaluationOptions(evaluators=("security", "code-style"))
        )

        assert len(output.issues) == 1
        assert output.issues[0].severity == 9
        assert output.files["AGENTS.md"].total_issues == 1
        assert output.metadata.deduplication.total_removed == 1
        kept = {i.dedup_id for r in output.files["AGENTS.md"].evaluations for i in r.issues}
        assert kept == {output.issues[0].dedup_id}

    @pytest.mark.asyncio
    async def test_unified_mode_selected_for_several_small_files(self, tmp_path, logger, prompts):
        provider = FakeProvider()
        engine = _engine(provider, [ROOT, NESTED], logger, prompts)

        output = await engine.evaluate(tmp_path, options=EvaluationOptions(evaluators=("security", "git-workflow")))

        assert output.mode == "unified"
        assert output.files == {}
        assert [r.evaluator for r in output.results] == ["git-workflow", "security"]
        assert len(provider.prompts) == 2

    @pytest.mark.asyncio
    async def test_no_context_files(self, tmp_path, logger, prompts):
        provider = FakeProvider()
        engine = _engine(provider, [], logger, prompts)

        output = await engine.evaluate(tmp_path)

        assert output.mode == "independent"
        assert output.metadata.total_files == 0
        assert output.metadata.context_score.score == 3.5
        assert output.metadata.context_score.explanation_source == "static"
        assert len(provider.prompts) == 3

    @pytest.mark.asyncio
    async def test_partial_failures_reported(self, tmp_path, logger, prompts):
        def respond(prompt):
            if evaluator_of(prompt) == "code-style":
                return RuntimeError("provider exploded")
            return "[]"

        events = []
        engine = _engine(FakeProvider(respond), [ROOT], logger, prompts)

        output = await engine.evaluate(
            tmp_path,
            options=EvaluationOptions(evaluators=("security", "code-style")),
            on_progress=events.append,
        )

        meta = output.metadata
        assert meta.has_errors is False
        assert meta.has_partial_failures is True
        assert [f.evaluator for f in meta.failed_evaluators] == ["code-style"]
        assert "1 evaluator(s) encountered errors" in meta.warnings
        assert "evaluation.warning" in _types(events)
        assert _types(events)[-1] == "job.completed"

    @pytest.mark.asyncio
    async def test_provider_unavailable_fails_job(self, tmp_path, logger, prompts):
        events = []
        engine = _engine(FakeProvider(available=False), [ROOT], logger, prompts)

        with pytest.raises(ProviderUnavailableError):
            await engine.evaluate(tmp_path, on_progress=events.append)

        assert _types(events) == ["job.failed"]
        assert events[-1].data["code"] == "PROVIDER_UNAVAILABLE"
        assert "evaluation_failed" in logger.messages("error")

    @pytest.mark.asyncio
    async def test_missing_repository_fails_job(self, tmp_path, logger, prompts):
        events = []
        engine = _engine(FakeProvider(), [ROOT], logger, prompts)

        with pytest.raises(RepositoryError):
            await engine.evaluate(tmp_path / "missing", on_progress=events.append)

        assert events[-1].type == "job.failed"
        assert events[-1].data["code"] == "REPOSITORY_ERROR"

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_abort(self, tmp_path, logger, prompts):
        def explode(event):
            raise RuntimeError("consumer bug")

        engine = _engine(FakeProvider(), [ROOT], logger, prompts)

        output = await engine.evaluate(tmp_path, options=EvaluationOptions(evaluators=("security",)), on_progress=explode)

        assert output.metadata.total_files == 1
        assert "progress_callback_error" in logger.messages("error")

    @pytest.mark.asyncio
    async def test_configured_default_evaluators(self, tmp_path, logger, prompts):
        provider = FakeProvider()
        engine = _engine(provider, [ROOT], logger, prompts, default_evaluators=["markdown-validity"])

        await engine.evaluate(tmp_path)

        assert [evaluator_of(p) for p in provider.prompts] == ["markdown-validity"]


    @pytest.mark.asyncio
    async def test_requested_unified_falls_back_when_over_token_limit(self, tmp_path, logger, prompts):
        big_root = ContextFile("AGENTS.md", "a" * 4000)
        big_nested = ContextFile("api/AGENTS.md", "b" * 4000)
        provider = FakeProvider()
        events = []
        engine = _engine(provider, [big_root, big_nested], logger, prompts, max_tokens=100)

        output = await engine.evaluate(
            tmp_path,
            options=EvaluationOptions(mode="unified", evaluators=("security",)),
            on_progress=events.append,
        )

        assert output.mode == "independent"
        assert list(output.files) == ["AGENTS.md", "api/AGENTS.md"]
        assert len(provider.prompts) == 2
        assert "unified_mode_fallback" in logger.messages("warning")
        assert any("token limit" in w for w in output.metadata.warnings)
        warning = next(e for e in events if e.type == "evaluation.warning")
        assert "falling back to independent mode" in warning.data["message"]

    @pytest.mark.asyncio
    async def test_consistency_conflicts_become_cross_file_issues(self, tmp_path, logger, prompts):
        conflicts = [("AGENTS.md and CLAUDE.md coexist with different content", ("AGENTS.md", "CLAUDE.md"))]
        engine = _engine(
            FakeProvider(lambda p: _reply("Build command lacks flags")), [ROOT], logger, prompts, conflicts=conflicts
        )

        output = await engine.evaluate(tmp_path, options=EvaluationOptions(evaluators=("security",)))

        assert [i.category for i in output.cross_file_issues] == ["File Consistency"]
        assert output.metadata.cross_file_issue_count == 1
        assert output.metadata.total_issues == 2
        ids = [i.dedup_id for i in output.issues]
        assert len(set(ids)) == 2

    @pytest.mark.asyncio
    async def test_curation_summary_logged(self, tmp_path, logger, prompts):
        engine = _engine(FakeProvider(), [ROOT], logger, prompts)

        await engine.evaluate(tmp_path, options=EvaluationOptions(evaluators=("security",)))

        summary = next(fields for _, message, fields in logger.records if message == "curation_summary")
        assert summary["curation_enabled"] is True
        assert summary["total_curated_count"] == 0


class TestSelectMode:
    """Tests for EvaluationEngine.select_mode."""

    def test_rules(self, logger, prompts):
        engine = _engine(FakeProvider(), [], logger, prompts)

        assert engine.select_mode([], "unified") == "independent"
        assert engine.select_mode([ROOT], None) == "independent"
        assert engine.select_mode([ROOT, NESTED], None) == "unified"
        assert engine.select_mode([ROOT, NESTED], "independent") == "independent"
        assert engine.select_mode([ROOT], "unified") == "unified"

    def test_requested_unified_needs_token_room(self, logger, prompts):
        engine = _engine(FakeProvider(), [], logger, prompts, max_tokens=10)

        assert engine.select_mode([ROOT, NESTED], "unified") == "independent"
        assert engine.select_mode([ROOT, NESTED], None) == "independent"
