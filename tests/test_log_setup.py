import logging

from polysub.log_setup import setup_logging


def test_console_only_logging():
    assert setup_logging(logging.WARNING, log_dir=None) is None

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_file_logging_records_debug_and_replaces_handlers(tmp_path):
    setup_logging(logging.INFO, log_dir=str(tmp_path / "first"))
    path = setup_logging(logging.INFO, log_dir=str(tmp_path / "logs"), log_file="run.log")

    logging.getLogger("polysub.test").debug("batch detail")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert path == str(tmp_path / "logs" / "run.log")
    assert len(logging.getLogger().handlers) == 2
    assert "batch detail" in (tmp_path / "logs" / "run.log").read_text(encoding="utf-8")

    setup_logging(logging.WARNING, log_dir=None)
