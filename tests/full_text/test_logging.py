from __future__ import annotations

import json
import logging
from pathlib import Path

from PapersKit.FullText.logging_utils import (
    ROOT_LOGGER_NAME,
    JSONFormatter,
    mask_sensitive_data,
    setup_logging,
)


def test_mask_sensitive_data_masks_keys_and_query_strings() -> None:
    masked = mask_sensitive_data(
        {
            "headers": {"Zotero-API-Key": "secret", "Accept": "application/json"},
            "url": "https://content.openalex.org/works/W1.pdf?api_key=abc123&x=1",
            "api_key": "k",
            "count": 3,
        }
    )

    assert masked["headers"] == {"Zotero-API-Key": "***masked***", "Accept": "application/json"}
    assert masked["url"] == "https://content.openalex.org/works/W1.pdf?api_key=***masked***&x=1"
    assert masked["api_key"] == "***masked***"
    assert masked["count"] == 3


def test_json_formatter_includes_context_fields() -> None:
    record = logging.LogRecord(
        name="PapersKit.FullText.sync",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="uploaded %s",
        args=("ABCD2345",),
        exc_info=None,
    )
    record.item_key = "ABCD2345"
    record.extra_fields = {"token": "t0k"}

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "uploaded ABCD2345"
    assert payload["level"] == "INFO"
    assert payload["item_key"] == "ABCD2345"
    assert payload["work_id"] is None
    assert payload["token"] == "***masked***"
    assert payload["timestamp"].endswith("Z")


def test_setup_logging_replaces_its_own_handlers(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "paperskit.jsonl"

    setup_logging(level="DEBUG", log_file=log_file)
    logger = setup_logging(level="WARNING", log_file=log_file)

    managed = [h for h in logger.handlers if getattr(h, "_paperskit_managed", False)]
    assert len(managed) == 2
    assert logger.level == logging.WARNING
    assert logger.name == ROOT_LOGGER_NAME

    logging.getLogger("PapersKit.FullText.store").warning("cache written")
    for handler in managed:
        handler.flush()
    lines = log_file.read_text().splitlines()
    assert json.loads(lines[-1])["message"] == "cache written"

    for handler in managed:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
