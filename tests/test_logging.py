from monostage.foundation.logging_utils import close_logger, setup_operational_logger


def test_operational_logger_writes_debug_to_file(tmp_path):
    logger, log_file = setup_operational_logger("unit_run", log_dir=str(tmp_path / "logs"), level="WARNING")
    try:
        logger.debug("docker stdout line")
        logger.warning("something odd")
    finally:
        close_logger(logger)

    assert log_file is not None
    text = (tmp_path / "logs" / "unit_run_oplog.log").read_text(encoding="utf-8")
    assert "| DEBUG | docker stdout line" in text
    assert "| WARNING | something odd" in text
    assert logger.handlers == []


def test_operational_logger_without_dir_only_streams(capsys):
    logger, log_file = setup_operational_logger("unit_stream", level="INFO")
    try:
        logger.debug("hidden")
        logger.info("shown")
    finally:
        close_logger(logger)

    assert log_file is None
    assert logger.propagate is False
    err = capsys.readouterr().err
    assert "shown" in err
    assert "hidden" not in err
