import logging

from sfbackup.logging_config import configure_logging


def test_configure_logging_levels(caplog):
    configure_logging(None)
    logger = logging.getLogger("sfbackup.test")
    logger.warning("warn")
    assert any("warn" in rec.message for rec in caplog.records)

    caplog.clear()
    configure_logging(logging.INFO)
    logger.info("info-ok")
    assert any("info-ok" in rec.message for rec in caplog.records)

    caplog.clear()
    configure_logging(logging.DEBUG)
    logger.debug("dbg")
    assert any("dbg" in rec.message for rec in caplog.records)


def test_log_file_handler_added_once(tmp_path):
    log_file = tmp_path / "backup.log"
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        configure_logging(logging.INFO, str(log_file))
        configure_logging(logging.INFO, str(log_file))

        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1

        logging.getLogger("sfbackup.test").info("to-file")
        added[0].flush()
        assert "to-file" in log_file.read_text(encoding="utf-8")
    finally:
        for h in root.handlers[:]:
            if h not in before:
                root.removeHandler(h)
                h.close()


def test_urllib3_is_quieted():
    configure_logging(logging.DEBUG)

    assert logging.getLogger("urllib3.connection").level == logging.ERROR
