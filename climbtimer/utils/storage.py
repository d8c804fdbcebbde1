# climbtimer/utils/storage.py
import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class RoomStore:
    """
    One JSON file per room holding its rounds. Live timer fields are never
    written here.

    Failures are logged and reported through return values; the in-memory
    room stays authoritative.
    """

    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)

    def _path(self, room_id: str) -> Path:
        return self.data_dir / f"{room_id}.json"

    def load(self, room_id: str) -> Optional[dict]:
        path = self._path(room_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("room file must contain a JSON object")
            return data
        except Exception as e:
            logger.error("Failed to load room %s from %s: %s", room_id, path, e, exc_info=True)
            return None

    def save(self, room_id: str, payload: dict) -> bool:
        path = self._path(room_id)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            logger.debug("Saved room %s to %s", room_id, path)
            return True
        except Exception as e:
            logger.error("Failed to save room %s to %s: %s", room_id, path, e, exc_info=True)
            return False

    def delete(self, room_id: str):
        try:
            self._path(room_id).unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to delete stored room %s: %s", room_id, e)
