import json
import logging
import time
from typing import Callable, Dict, Optional

from .likes import LikeLedger
from .store import Storage

logger = logging.getLogger("blogstate.session")

AUTH_KEY = "backend_auth"
AUTH_USER_KEY = "auth_user"
AUTH_TIME_KEY = "auth_time"
SESSION_KEYS = (AUTH_KEY, AUTH_USER_KEY, AUTH_TIME_KEY)
AUTH_DURATION = 24 * 3600


class AdminSession:
    """
    Local "logged in" flag for the admin dashboard.

    This is a convenience marker, not an authentication mechanism: whoever
    can write the storage medium can forge it.
    """

    def __init__(
        self,
        storage: Optional[Storage],
        clock: Callable[[], float] = time.time,
        duration: float = AUTH_DURATION,
    ):
        self.storage = storage
        self.clock = clock
        self.duration = duration

    def login(self, user_id: int, name: str) -> None:
        if self.storage is None:
            return
        try:
            self.storage.set_item(AUTH_KEY, "true")
            self.storage.set_item(AUTH_USER_KEY, json.dumps({"id": user_id, "name": name}, ensure_ascii=False))
            self.storage.set_item(AUTH_TIME_KEY, str(int(self.clock() * 1000)))
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to store admin session: %s", exc)
            return
        logger.info("Admin session started for %s", name)

    def is_authenticated(self) -> bool:
        if self.storage is None:
            return False
        try:
            auth = self.storage.get_item(AUTH_KEY)
            auth_time = self.storage.get_item(AUTH_TIME_KEY)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to read admin session: %s", exc)
            return False
        if not auth or not auth_time:
            return False
        try:
            started = int(auth_time)
        except ValueError:
            self.logout()
            return False
        if int(self.clock() * 1000) - started > self.duration * 1000:
            logger.info("Admin session expired")
            self.logout()
            return False
        return True

    def current_user(self) -> Optional[Dict]:
        if self.storage is None:
            return None
        try:
            raw = self.storage.get_item(AUTH_USER_KEY)
            return json.loads(raw) if raw else None
        except Exception:  # noqa: BLE001
            return None

    def logout(self, ledger: Optional[LikeLedger] = None) -> None:
        """End the session; passing ``ledger`` also forgets this client's likes."""
        if self.storage is not None:
            for key in SESSION_KEYS:
                try:
                    self.storage.remove_item(key)
                except Exception as exc:  # noqa: BLE001
                    logger.error("Failed to remove %s: %s", key, exc)
        if ledger is not None:
            ledger.clear()
