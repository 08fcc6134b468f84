from __future__ import annotations

import io
import json


def test_package_modules_import_with_module_level_loggers() -> None:
    import importlib

    for name in (
        "qualitydb.connection",
        "qualitydb.migrations",
        "qualitydb.migrations.runner",
        "qualitydb.seed",
        "qualitydb.bootstrap",
        "qualitydb.health",
        "qualitydb.lifecycle",
    ):
        assert importlib.import_module(name).logger is not None


def test_get_logger_emits_structured_events() -> None:
    import structlog

    from qualitydb.logging import get_logger

    log = get_logger("qualitydb.tests")
    with structlog.testing.capture_logs() as logs:
        log.info("db_connection_initialized", attempt=1)
    assert logs == [{"event": "db_connection_initialized", "attempt": 1, "log_level": "info"}]


def test_configure_logging_renders_json_lines_and_filters_level() -> None:
    import structlog

    from qualitydb.logging import configure_logging, get_logger

    buf = io.StringIO()
    configure_logging("info", stream=buf)
    try:
        log = get_logger("qualitydb.tests")
        log.debug("db_query", query="SELECT ?")
        log.warning("db_slow_query", duration_ms=1500)
    finally:
        structlog.reset_defaults()

    lines = [json.loads(line) for line in buf.getvalue().splitlines()]
    assert len(lines) == 1
    assert lines[0]["event"] == "db_slow_query"
    assert lines[0]["level"] == "warning"
    assert lines[0]["duration_ms"] == 1500
    assert "timestamp" in lines[0]
