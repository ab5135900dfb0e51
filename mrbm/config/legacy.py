"""Reader for the flat ``config.env`` format used by the original shell tool.

Each server is one line ``SERVERS["name"]="ip|port|user|password|key|app|container|dbpw|token|chat"``
and each timestamp is one line ``LAST_BACKUP_name="YYYYMMDD_HHMMSS"``.
"""

import logging
import re
from typing import Dict, Tuple

from mrbm.servers.models import DEFAULT_SSH_PORT, DEFAULT_SSH_USER, ServerRecord

logger = logging.getLogger(__name__)

RECORD_KEY = re.compile(r"^SERVERS\[(.+)\]$")
TIMESTAMP_KEY = re.compile(r"^LAST_BACKUP_(.+)$")

FIELD_COUNT = 10


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_record(name: str, value: str) -> ServerRecord:
    """Build a record from one pipe-delimited value."""
    fields = value.split("|")
    fields += [""] * (FIELD_COUNT - len(fields))
    host, port, user, password, key_path, app_path, container, db_password, token, chat_id = fields[:FIELD_COUNT]

    return ServerRecord(
        name=name,
        host=host,
        port=int(port) if port else DEFAULT_SSH_PORT,
        user=user or DEFAULT_SSH_USER,
        # the shell tool only asked for a key path when the password was blank
        password=password or None,
        key_path=(key_path or None) if not password else None,
        app_path=app_path,
        db_container=container,
        db_password=db_password,
        bot_token=token,
        chat_id=chat_id,
    )


def parse_legacy_config(text: str) -> Tuple[Dict[str, ServerRecord], Dict[str, str]]:
    """
    Parse the content of a legacy configuration file.

    Blank lines, comments and lines of any other shape are ignored.

    Returns:
        Tuple of records by name and timestamps by name
    """
    records: Dict[str, ServerRecord] = {}
    timestamps: Dict[str, str] = {}

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue

        key, value = stripped.split("=", 1)
        key = key.strip()

        match = RECORD_KEY.match(key)
        if match:
            name = _unquote(match.group(1))
            try:
                records[name] = parse_record(name, _unquote(value))
            except ValueError as e:
                logger.warning(f"Skipping legacy record '{name}': {e}")
            continue

        match = TIMESTAMP_KEY.match(key)
        if match:
            timestamps[match.group(1)] = _unquote(value)

    return records, timestamps
