from __future__ import annotations
import logging

from fish_report.logging_setup import LOG_NAME, setup_logging


def _ours(lg):
    return [h for h in lg.handlers if getattr(h, "baseFilename", "").endswith(LOG_NAME)]


def test_handler_follows_data_root(settings, tmp_path):
    path = setup_logging(settings)
    setup_logging(settings)
    assert path == tmp_path / "logs" / LOG_NAME
    assert len(_ours(logging.getLogger())) == 1

    other = settings.model_copy(update={"FISH_DATA_ROOT": tmp_path / "other", "LOG_LEVEL": "warning"})
    new_path = setup_logging(other)

    handlers = _ours(logging.getLogger())
    assert len(handlers) == 1
    assert handlers[0].baseFilename == str(new_path)
    assert len(_ours(logging.getLogger("uvicorn.access"))) == 1
    assert logging.getLogger().level == logging.WARNING

    logging.getLogger("fish_report.test").warning("written")
    handlers[0].flush()
    assert "written" in new_path.read_text(encoding="utf-8")


def test_same_root_reuses_existing_handler(settings, monkeypatch):
    from fish_report import logging_setup

    setup_logging(settings)
    built = []
    real = logging_setup._build_handler
    monkeypatch.setattr(logging_setup, "_build_handler", lambda *a: built.append(a) or real(*a))

    setup_logging(settings.model_copy(update={"LOG_LEVEL": "DEBUG"}))

    assert built == []
    handlers = _ours(logging.getLogger())
    assert len(handlers) == 1
    assert handlers[0].level == logging.DEBUG
