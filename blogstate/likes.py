import json
import logging
from typing import Dict, List, Optional

from .store import Storage

logger = logging.getLogger("blogstate.likes")

LIKED_POSTS_KEY = "likedPosts"


class LikeLedger:
    """
    Posts this client has liked, kept as ``{post_id: true}`` under one key.

    Only positive facts are stored: unliking removes the id. The ledger is
    independent of the TTL cache and is never cleared by cache invalidation.
    """

    def __init__(self, storage: Optional[Storage]):
        self.storage = storage

    def _read(self) -> Dict[str, bool]:
        if self.storage is None:
            return {}
        try:
            raw = self.storage.get_item(LIKED_POSTS_KEY)
            data = json.loads(raw) if raw else {}
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to read liked posts: %s", exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Liked posts ledger has unexpected shape, treating as empty")
            return {}
        return {str(k): bool(v) for k, v in data.items()}

    def _write(self, liked: Dict[str, bool]) -> None:
        if self.storage is None:
            return
        try:
            self.storage.set_item(LIKED_POSTS_KEY, json.dumps(liked))
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to save liked posts: %s", exc)

    def all(self) -> List[str]:
        return [post_id for post_id, liked in self._read().items() if liked]

    def is_liked(self, post_id) -> bool:
        return self._read().get(str(post_id), False)

    def set_liked(self, post_id, liked: bool) -> None:
        ledger = self._read()
        key = str(post_id)
        if liked:
            if ledger.get(key):
                return
            ledger[key] = True
        elif key in ledger:
            del ledger[key]
        else:
            return
        self._write(ledger)

    def toggle(self, post_id) -> bool:
        liked = not self.is_liked(post_id)
        self.set_liked(post_id, liked)
        return liked

    def clear(self) -> None:
        if self.storage is None:
            return
        try:
            self.storage.remove_item(LIKED_POSTS_KEY)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to clear liked posts: %s", exc)
