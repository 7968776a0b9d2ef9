import logging

import pytest

from logo_ledger.logging_utils import setup_logging


def test_setup_logging_sets_root_level_and_writes_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("debug")
    logging.getLogger("logo_ledger.test").debug("replaying contest")

    assert logging.getLogger().level == logging.DEBUG
    captured = capsys.readouterr()
    assert "DEBUG logo_ledger.test: replaying contest" in captured.err
    assert captured.out == ""


def test_unknown_level_falls_back_to_warning() -> None:
    setup_logging("chatty")
    assert logging.getLogger().level == logging.WARNING
