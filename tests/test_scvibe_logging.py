import logging

from scvibe.logging_utils import (
    LOG_DIR_ENV,
    configure_logging,
    default_log_dir,
    log_exception,
    log_path,
    setup_file_logger,
)


def test_log_path_uses_env_override(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    assert default_log_dir() == tmp_path
    assert log_path("scsynth-output.log") == tmp_path / "scsynth-output.log"
    assert log_path("x.log", tmp_path / "other") == tmp_path / "other" / "x.log"


def test_setup_file_logger_creates_handler(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    logger_name = f"scvibe.test.{tmp_path.name}"
    path = setup_file_logger(logger_name, "engine.log", propagate=False)
    assert path == tmp_path / "engine.log"
    logger = logging.getLogger(logger_name)
    assert any(isinstance(handler, logging.FileHandler) for handler in logger.handlers)
    assert logger.propagate is False


def test_configure_logging_adds_one_stderr_handler() -> None:
    configure_logging()
    configure_logging()
    handlers = [
        handler
        for handler in logging.getLogger("scvibe").handlers
        if getattr(handler, "_scvibe_stderr", False)
    ]
    assert len(handlers) == 1


def test_log_exception_appends_traceback(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path))
    try:
        raise RuntimeError("scsynth crashed")
    except RuntimeError as exc:
        path = log_exception("synth-execute", exc)

    assert path == tmp_path / "scvibe.log"
    content = path.read_text(encoding="utf-8")
    assert "synth-execute failed: RuntimeError: scsynth crashed" in content
    assert "Traceback" in content
