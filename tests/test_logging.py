from __future__ import annotations

import logging

from mediavault.core.logging import configure_logging, get_logger, level_from_name


def test_module_logger_follows_later_configuration(caplog, capsys):
    logger = get_logger(component="early_import")
    configure_logging(level=logging.WARNING)

    logger.info("dropped_event")
    logger.warning("kept_event", detail="x")

    assert capsys.readouterr().out == ""
    messages = [record.getMessage() for record in caplog.records]
    assert any('"event": "kept_event"' in message for message in messages)
    assert any('"component": "early_import"' in message for message in messages)
    assert not any("dropped_event" in message for message in messages)


def test_level_from_name():
    assert level_from_name("debug") == logging.DEBUG
    assert level_from_name("WARNING") == logging.WARNING
    assert level_from_name("chatty") == logging.INFO
