"""
Brief: Tests for doh_relay.config.logging_config.init_logging and formatters.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import logging.handlers
from pathlib import Path

import pytest

from doh_relay.config.logging_config import (
    BracketLevelFormatter,
    SyslogFormatter,
    init_logging,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


def test_init_logging_defaults_to_info_on_stderr():
    """
    Brief: An empty config yields one stderr handler at INFO.

    Inputs:
      - cfg: None

    Outputs:
      - None: Asserts level and handler type
    """
    init_logging(None)
    root = logging.getLogger()
    assert root.level == logging.INFO
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0], logging.StreamHandler)
    assert isinstance(root.handlers[0].formatter, BracketLevelFormatter)


@pytest.mark.parametrize(
    "name,level",
    [("debug", logging.DEBUG), ("WARN", logging.WARNING), ("crit", logging.CRITICAL), ("bogus", logging.INFO)],
)
def test_init_logging_level_names(name, level):
    init_logging({"level": name})
    assert logging.getLogger().level == level


def test_init_logging_without_stderr_has_no_handlers():
    init_logging({"stderr": False})
    assert logging.getLogger().handlers == []


def test_init_logging_file_handler_writes(tmp_path):
    """
    Brief: init_logging creates the log directory and writes formatted entries.

    Inputs:
      - cfg: file path in a missing subdirectory

    Outputs:
      - None: Asserts file contains message and level tag
    """
    log_path = tmp_path / "logs" / "doh-relay.log"
    init_logging({"level": "info", "stderr": False, "file": str(log_path)})
    logging.getLogger("doh_relay.test").info("file message")
    for h in logging.getLogger().handlers:
        h.flush()
    content = Path(log_path).read_text()
    assert "file message" in content
    assert "[info] doh_relay.test:" in content
    assert content.split(" ", 1)[0].endswith("Z")


def test_init_logging_syslog_handler(monkeypatch):
    created = {}

    class DummySysLogHandler(logging.Handler):
        LOG_USER = 1
        LOG_LOCAL0 = 16

        def __init__(self, address=None, facility=None):
            super().__init__()
            created["address"] = address
            created["facility"] = facility

        def emit(self, record):
            return

    monkeypatch.setattr(logging.handlers, "SysLogHandler", DummySysLogHandler)

    init_logging({"syslog": True, "stderr": False})
    assert created["address"] == "/dev/log"
    assert created["facility"] == DummySysLogHandler.LOG_USER

    created.clear()
    init_logging(
        {
            "stderr": False,
            "syslog": {"address": ["localhost", 514], "facility": "local0", "tag": "relay"},
        }
    )
    assert created["address"] == ("localhost", 514)
    assert created["facility"] == DummySysLogHandler.LOG_LOCAL0
    fmt = logging.getLogger().handlers[0].formatter
    assert isinstance(fmt, SyslogFormatter)
    assert fmt.tag == "relay"


def test_init_logging_syslog_failure_keeps_other_handlers(monkeypatch):
    class FailingSysLogHandler:
        LOG_USER = 1

        def __init__(self, *a, **kw):
            raise OSError("no syslog")

    monkeypatch.setattr(logging.handlers, "SysLogHandler", FailingSysLogHandler)

    caught = {}
    root = logging.getLogger()

    def fake_warning(msg, *args, **kwargs):
        caught["msg"] = msg % args if args else str(msg)

    monkeypatch.setattr(root, "warning", fake_warning)

    init_logging({"syslog": True})
    assert "Failed to configure syslog" in caught["msg"]
    assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)


def test_formatters_produce_expected_tags():
    """
    Brief: BracketLevelFormatter and SyslogFormatter include bracketed tags.

    Inputs:
      - LogRecord instances at different levels

    Outputs:
      - None: Asserts formatted strings contain expected tags
    """
    fmt = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")
    rec = logging.LogRecord("n", logging.ERROR, __file__, 1, "m", (), None)
    out = fmt.format(rec)
    assert "[error] n: m" in out

    s = SyslogFormatter()
    rec2 = logging.LogRecord("n2", logging.WARNING, __file__, 2, "m2", (), None)
    assert s.format(rec2) == "doh-relay: [warn] n2: m2"

    rec3 = logging.LogRecord("n3", 25, __file__, 3, "m3", (), None)
    assert "[lvl25]" in SyslogFormatter(tag="x").format(rec3)
