import importlib
import logging

import pytest

from inkslot.app.core import constants


@pytest.fixture(autouse=True)
def _restore_constants():
    yield
    # monkeypatch has already restored the environment at this point
    importlib.reload(constants)


def _reload_constants(monkeypatch, **env) -> object:
    """Reload constants with a temporary env state."""
    for key, value in env.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)
    return importlib.reload(constants)


def test_env_helpers_parse_lists_and_bools(monkeypatch):
    module = _reload_constants(
        monkeypatch,
        DEFAULT_WORK_DAYS="1, 2;not-a-number;9",
        DEFAULT_SLOT_STEP_MINUTES="45",
        EXPIRATION_WORKER_ENABLED="no",
        DEFAULT_CURRENCY="usd",
    )
    assert module.DEFAULT_WORK_DAYS == [1, 2]
    assert module.DEFAULT_SLOT_STEP_MINUTES == 45
    assert module.EXPIRATION_WORKER_ENABLED is False
    assert module.DEFAULT_CURRENCY == "USD"


def test_env_helpers_fallbacks(monkeypatch):
    module = _reload_constants(monkeypatch, AVAILABILITY_WINDOW_DAYS="oops", DEFAULT_CURRENCY="euro")
    assert module.AVAILABILITY_WINDOW_DAYS == 30
    assert module.DEFAULT_CURRENCY == "EUR"

    module = _reload_constants(monkeypatch, RESERVATION_EXPIRE_CHECK_SECONDS="oops")
    assert module.RESERVATION_EXPIRE_CHECK_SECONDS == 60
    assert module.RESERVATION_EXPIRE_CHECK_SECONDS_INVALID is True

    module = _reload_constants(monkeypatch, RESERVATION_EXPIRE_CHECK_SECONDS="15")
    assert module.RESERVATION_EXPIRE_CHECK_SECONDS == 15
    assert module.RESERVATION_EXPIRE_CHECK_SECONDS_INVALID is False


def test_duration_bounds():
    assert constants.MIN_SERVICE_DURATION_MINUTES == 15
    assert constants.MAX_SERVICE_DURATION_MINUTES == 480


def test_currency_normalization(monkeypatch):
    module = _reload_constants(monkeypatch)
    assert module._normalize_currency("eur") == "EUR"
    assert module._normalize_currency(" usd ") == "USD"
    assert module._normalize_currency("too-long") is None
    assert module._normalize_currency("") is None


def test_configure_logging_installs_rich_handler(tmp_path):
    from rich.logging import RichHandler

    from inkslot.app.core.logger import configure_logging

    root = logging.getLogger()
    saved = (root.handlers[:], root.level)
    try:
        logger = configure_logging("debug", str(tmp_path / "inkslot.log"))
        assert logger.name == "inkslot"
        assert root.level == logging.DEBUG
        assert any(isinstance(h, RichHandler) for h in root.handlers)
        file_handlers = [h for h in root.handlers if isinstance(h, logging.FileHandler)]
        assert file_handlers and file_handlers[0].level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in root.handlers:
            if handler not in saved[0]:
                handler.close()
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
