import logging

from logging_config import ContextualFormatter, configure_logging
from models.records import Severity


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.seeding",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Finished generation job",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(job_id="job-1", readings_written=24, unrelated="x"))

    assert line == "Finished generation job | job_id=job-1 readings_written=24"


def test_formatter_skips_empty_context() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    assert formatter.format(_record(error_count=None)) == "Finished generation job"


def test_formatter_leads_with_subjects_and_quotes_text() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(
        _record(
            reason="write rejected for bad",
            severity=Severity.high,
            sensor_id="sp-1",
            job_id="job-1",
        )
    )

    assert line == (
        'Finished generation job | job_id=job-1 sensor_id=sp-1 severity=high '
        'reason="write rejected for bad"'
    )


def test_configure_logging_quiets_http_client(monkeypatch) -> None:
    monkeypatch.setattr("logging_config._configured", False)
    root = logging.getLogger()
    previous_level, previous_handlers = root.level, list(root.handlers)

    try:
        configure_logging("DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert root.level == logging.DEBUG
    finally:
        root.setLevel(previous_level)
        root.handlers[:] = previous_handlers
