# ============================================================================
# FILE: tests/unit/test_logging.py
# ============================================================================
"""
Unit tests for logging utilities
"""

import json
import logging

import pytest

from medical_digitizer.utils.exceptions import ConfigurationError
from medical_digitizer.utils.logging import JsonFormatter, LogAdapter, log_performance, setup_logging


def _record(**extra):
    record = logging.LogRecord(
        name="medical_digitizer.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg="AI enhancement failed for %s",
        args=("doc-1",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_fields():
    data = json.loads(JsonFormatter().format(_record()))

    assert data["level"] == "WARNING"
    assert data["logger"] == "medical_digitizer.test"
    assert data["message"] == "AI enhancement failed for doc-1"
    assert "document_id" not in data


def test_json_formatter_includes_document_context():
    data = json.loads(JsonFormatter().format(_record(document_id="doc-1", generation=2)))

    assert data["document_id"] == "doc-1"
    assert data["generation"] == 2


def test_log_adapter_adds_extra(caplog):
    adapter = LogAdapter(logging.getLogger("medical_digitizer.adapter"), {"document_id": "doc-9"})

    with caplog.at_level(logging.INFO, logger="medical_digitizer.adapter"):
        adapter.info("stage advanced")

    assert caplog.records[0].document_id == "doc-9"


def test_setup_logging_to_file(tmp_path):
    log_file = tmp_path / "logs" / "digitizer.log"
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    setup_logging(level="DEBUG", log_file=log_file, format_json=True)
    try:
        logging.getLogger("medical_digitizer.file").info("written")
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in root.handlers[:]:
            handler.close()
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)

    line = log_file.read_text().strip().splitlines()[-1]
    assert json.loads(line)["message"] == "written"


def test_log_performance_sync(caplog):
    logger = logging.getLogger("medical_digitizer.perf")

    @log_performance(logger, "Baseline extraction")
    def work():
        return 42

    with caplog.at_level(logging.INFO, logger="medical_digitizer.perf"):
        assert work() == 42

    assert "Baseline extraction completed" in caplog.text


@pytest.mark.asyncio
async def test_log_performance_async_failure(caplog):
    logger = logging.getLogger("medical_digitizer.perf")

    @log_performance(logger, "OCR")
    async def failing():
        raise RuntimeError("scanner jammed")

    with caplog.at_level(logging.INFO, logger="medical_digitizer.perf"):
        with pytest.raises(RuntimeError):
            await failing()

    assert "OCR failed" in caplog.text
    assert "scanner jammed" in caplog.text


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ConfigurationError):
        setup_logging(level="LOUD")
