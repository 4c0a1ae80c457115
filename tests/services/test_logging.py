from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler

from devgate.services.logging import setup_logging
from devgate.services.settings import Settings


def test_setup_logging_writes_json_lines(tmp_path):
    logfile = setup_logging(Settings(base_dir=tmp_path), level="debug")
    logger = logging.getLogger("devgate.services.activation.machine")
    logger.debug("state %s", "PENDING")

    for handler in logging.getLogger("devgate").handlers:
        handler.flush()
    line = logfile.read_text(encoding="utf-8").strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["level"] == "DEBUG"
    assert payload["logger"] == "devgate.services.activation.machine"
    assert payload["msg"] == "state PENDING"


def test_setup_logging_replaces_previous_handler(tmp_path):
    setup_logging(Settings(base_dir=tmp_path / "one"))
    setup_logging(Settings(base_dir=tmp_path / "two"))
    rotating = [h for h in logging.getLogger("devgate").handlers if isinstance(h, RotatingFileHandler)]
    assert len(rotating) == 1
    assert rotating[0].baseFilename.endswith(str(tmp_path / "two" / "logs" / "devgate.log"))
