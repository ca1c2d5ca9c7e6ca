import io
import logging

import pytest

from openstatement import logging_setup
from openstatement.config import Settings


def test_defaults():
    settings = Settings()
    assert settings.csv_posting_date_label == "Дата проводки"
    assert settings.iban_min_length == 15
    assert settings.iban_max_length == 34
    assert settings.log_level is None


def test_from_env_overrides():
    settings = Settings.from_env(
        {
            "OPENSTATEMENT_CSV_ENCODING": "cp1251",
            "OPENSTATEMENT_IBAN_MIN_LENGTH": "16",
            "OPENSTATEMENT_LOG_LEVEL": "DEBUG",
            "UNRELATED": "x",
        }
    )
    assert settings.csv_encoding == "cp1251"
    assert settings.iban_min_length == 16
    assert settings.log_level == "DEBUG"
    assert settings.mt940_encoding == "utf-8"


def test_from_env_rejects_bad_integers():
    with pytest.raises(ValueError) as exc:
        Settings.from_env({"OPENSTATEMENT_IBAN_MAX_LENGTH": "many"})
    assert "OPENSTATEMENT_IBAN_MAX_LENGTH" in str(exc.value)


def test_parse_level(monkeypatch):
    monkeypatch.delenv("OPENSTATEMENT_LOG_LEVEL", raising=False)
    assert logging_setup._parse_level("debug") == logging.DEBUG
    assert logging_setup._parse_level(" 30 ") == 30
    assert logging_setup._parse_level(logging.ERROR) == logging.ERROR
    assert logging_setup._parse_level(None) == logging.INFO

    monkeypatch.setenv("OPENSTATEMENT_LOG_LEVEL", "warning")
    assert logging_setup._parse_level(None) == logging.WARNING


def test_configure_logging_once(monkeypatch):
    logger = logging.getLogger("openstatement")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    stream = io.StringIO()
    try:
        logging_setup.configure_logging("DEBUG", fmt="%(levelname)s %(message)s", stream=stream)
        logging_setup.configure_logging("ERROR", stream=io.StringIO())
        logging_setup.get_logger("openstatement.test").debug("hello")
        assert stream.getvalue() == "DEBUG hello\n"
    finally:
        logger.handlers[:] = saved[0]
        logger.setLevel(saved[1])
        logger.propagate = saved[2]
