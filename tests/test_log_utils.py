import logging
from importlib import reload

import log_utils


def _reset_logger(logger: logging.Logger) -> None:
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        try:
            handler.close()
        except Exception:
            pass


def test_setup_logger_writes_to_rotating_file(tmp_path, monkeypatch):
    module = reload(log_utils)
    log_path = tmp_path / "nested" / "strategy_core.log"
    monkeypatch.setattr(module, "LOG_FILE", str(log_path), raising=False)

    logger = module.setup_logger("test_log_utils_file")
    try:
        kinds = {type(h).__name__ for h in logger.handlers}
        assert kinds == {"StreamHandler", "RotatingFileHandler"}

        logger.info("[DECISION] BTCUSDT rejected (LowConfidence)")
        for handler in logger.handlers:
            handler.flush()

        assert log_path.exists()
        assert "BTCUSDT rejected" in log_path.read_text()
    finally:
        _reset_logger(logger)


def test_setup_logger_is_idempotent(tmp_path, monkeypatch):
    module = reload(log_utils)
    monkeypatch.setattr(module, "LOG_FILE", str(tmp_path / "core.log"), raising=False)

    first = module.setup_logger("test_log_utils_idempotent")
    second = module.setup_logger("test_log_utils_idempotent")
    try:
        assert first is second
        assert len(second.handlers) == 2
    finally:
        _reset_logger(first)


def test_log_file_location_from_environment(monkeypatch, tmp_path):
    target = tmp_path / "custom.log"
    monkeypatch.setenv("STRATEGY_LOG_FILE", f"{target}  # local override")
    module = reload(log_utils)
    assert module.LOG_FILE == str(target)
    monkeypatch.delenv("STRATEGY_LOG_FILE")
    reload(log_utils)
