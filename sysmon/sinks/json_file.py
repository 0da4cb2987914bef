"""Snapshot JSON contract and the dashboard data file sink.

The dashboard polls one JSON file. Every field of the snapshot is always
present, sentinel-filled when unavailable, so the front end never has to
guard against missing keys.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

from sysmon.core.models import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "system_data.json"


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    return snapshot.to_dict()


def encode_snapshot(snapshot: Snapshot, indent: int = 2) -> str:
    """Serialize a snapshot with stable key order.

    Example:
        >>> text = encode_snapshot(snapshot)
        >>> encode_snapshot(decode_snapshot(text)) == text
        True
    """
    return json.dumps(snapshot_to_dict(snapshot), indent=indent, ensure_ascii=False)


def decode_snapshot(text: Union[str, bytes]) -> Snapshot:
    """Parse JSON produced by ``encode_snapshot``; missing fields get sentinels.

    Raises:
        ValueError: If the text is not a JSON object.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("snapshot JSON must be an object")
    return Snapshot.from_dict(data)


class JsonFileSink:
    """Writes each snapshot to a JSON file, atomically replacing the previous one.

    Readers polling the file never see a partially written document.

    Example:
        >>> sink = JsonFileSink(Path("data/system_data.json"))
        >>> sink.write(snapshot)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if self.path.suffix != ".json":
            self.path = self.path / DEFAULT_FILENAME

    def write(self, snapshot: Snapshot) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = encode_snapshot(snapshot)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug(f"Wrote snapshot to {self.path}")
        return self.path

    def close(self) -> None:
        pass
