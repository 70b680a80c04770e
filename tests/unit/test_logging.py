from __future__ import annotations

import json
import logging
import sys

from regen_pool.utils.logging import JsonFormatter, _json_formatter, configure_logging

EXPECTED_AMOUNT_CENTS = 700
EXPECTED_BUDGET_MICRO = 22_500_000


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record("[CONTRIBUTION] alice 700c")
    record.amount_usd_cents = EXPECTED_AMOUNT_CENTS
    record.month = "2026-03"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "[CONTRIBUTION] alice 700c"
    assert payload["amount_usd_cents"] == EXPECTED_AMOUNT_CENTS
    assert payload["month"] == "2026-03"
    assert "pathname" not in payload


def test_json_formatter_renders_exception_beside_extra_fields() -> None:
    try:
        raise RuntimeError("burn rpc down")
    except RuntimeError:
        record = logging.LogRecord(
            name="regen_pool.orchestrator",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="[BURN FAILED] 2026-03",
            args=(),
            exc_info=sys.exc_info(),
        )
    record.budget_micro = EXPECTED_BUDGET_MICRO

    payload = json.loads(_json_formatter(record))

    assert payload["budget_micro"] == EXPECTED_BUDGET_MICRO
    assert "RuntimeError: burn rpc down" in payload["exc_info"]


def test_json_formatter_stringifies_unknown_types() -> None:
    record = _record()
    record.path = object()

    payload = json.loads(JsonFormatter().format(record))

    assert payload["path"].startswith("<object object")


def test_configure_logging_without_force_keeps_existing_handlers() -> None:
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level
    sentinel = logging.NullHandler()
    root.addHandler(sentinel)
    try:
        configure_logging(level="DEBUG", force=False)
        assert sentinel in root.handlers
        assert root.level == previous_level
    finally:
        root.handlers = previous_handlers
        root.setLevel(previous_level)
