"""Tests for structured logging setup."""

import logging

from kube_exec_controller.logging import CommandRedactor, get_logger, setup_logging


def test_redactor_truncates_long_commands():
    redactor = CommandRedactor(max_tokens=2)
    event = redactor(None, "info", {"command_list": "mysql,-u,root,-psecret"})
    assert event["command_list"] == "mysql,-u,..."


def test_redactor_leaves_short_commands():
    event = CommandRedactor()(None, "info", {"command_list": "sh", "other": 1})
    assert event == {"command_list": "sh", "other": 1}


def test_setup_logging_quiets_third_party_loggers(tmp_path):
    log_file = tmp_path / "logs" / "controller.log"
    setup_logging(log_level="DEBUG", log_format="json", log_file=str(log_file))

    get_logger(__name__).info("hello", pod_name="web-0")

    assert log_file.exists()
    assert logging.getLogger("kubernetes").level == logging.WARNING
    assert logging.getLogger("urllib3").level == logging.WARNING
    assert logging.getLogger().level == logging.DEBUG
