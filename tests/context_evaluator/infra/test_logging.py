import io
import json
import logging

import pytest
from dependency_injector import providers

from context_evaluator.app.config import run_log_file
from context_evaluator.infra.logging import (
    EvaluationLogger,
    HumanReadableFormatter,
    RunContextFilter,
    build_console_handler,
    build_json_file_handler,
)


def _read_jsonl(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_json_file_handler_writes_extra_fields(tmp_path):
    log_file = tmp_path / "test.jsonl"
    logger = logging.getLogger("test_json_file_handler")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    for h in logger.handlers[:]:
        logger.removeHandler(h)

    handler = build_json_file_handler(log_file, level=logging.INFO)
    logger.addHandler(handler)
    logger.info("evaluator_completed", extra={"type": "evaluator_completed", "evaluator": "security", "issues": 3})
    handler.flush()
    handler.close()

    entry = _read_jsonl(log_file)[0]
    assert entry["message"] == "evaluator_completed"
    assert entry["type"] == "evaluator_completed"
    assert entry["evaluator"] == "security"
    assert entry["issues"] == 3
    assert entry["level"] == "INFO"


def test_human_formatter_appends_evaluator_and_error():
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "evaluator_failed", None, None)
    record.evaluator = "security"
    record.error = "timed out"

    text = HumanReadableFormatter().format(record)

    assert text.endswith("WARNING - evaluator_failed [security]: timed out")


def test_evaluation_logger_resource_lifecycle(tmp_path):
    log_file = run_log_file(tmp_path, "run-1")
    resource = providers.Resource(
        EvaluationLogger,
        log_file=log_file,
        run_id="run-1",
        logger_name="test_evaluation_logger",
        level="DEBUG",
    )

    logger = resource()
    logger.debug("discovery_started", type="discovery_started")
    logger.warning("evaluator_failed", type="evaluator_failed", evaluator="security", error="boom")
    logger.info("plain")
    assert logger.log_file == tmp_path / "run-1.jsonl"
    resource.shutdown()

    entries = _read_jsonl(tmp_path / "run-1.jsonl")
    assert [e["message"] for e in entries] == ["discovery_started", "evaluator_failed", "plain"]
    assert entries[1]["evaluator"] == "security"
    assert {e["run_id"] for e in entries} == {"run-1"}
    assert logging.getLogger("test_evaluation_logger").handlers == []


def test_evaluation_logger_without_run_id_writes_no_file(tmp_path):
    resource = providers.Resource(
        EvaluationLogger, log_file=run_log_file(tmp_path, None), logger_name="test_no_file_logger"
    )

    logger = resource()
    logger.info("nothing")
    resource.shutdown()

    assert logger.log_file is None
    assert list(tmp_path.iterdir()) == []


def test_unknown_level_rejected(tmp_path):
    resource = providers.Resource(EvaluationLogger, logger_name="test_bad_level", level="LOUD")

    with pytest.raises(ValueError, match="LOUD"):
        resource()


def test_console_handler_writes_to_given_stream():
    stream = io.StringIO()
    logger = logging.getLogger("test_console_handler")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.handlers.clear()
    logger.addHandler(build_console_handler(stream=stream))

    logger.info("evaluator_completed", extra={"evaluator": "security"})

    assert stream.getvalue().rstrip().endswith("INFO - evaluator_completed [security]")


def test_run_context_filter_keeps_explicit_run_id():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", None, None)
    record.run_id = "explicit"

    assert RunContextFilter("run-9").filter(record) is True
    assert record.run_id == "explicit"
