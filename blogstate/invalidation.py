import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .cache import DomainCache, Namespace
from .likes import LIKED_POSTS_KEY
from .session import SESSION_KEYS

logger = logging.getLogger("blogstate.invalidation")


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntityKind(str, Enum):
    POST = "post"
    COMMENT = "comment"
    PROFILE = "profile"
    MEDIA = "media"


# comments are embedded in cached posts, so comment writes stale both lists
INVALIDATION_TABLE: Dict[EntityKind, FrozenSet[Namespace]] = {
    EntityKind.POST: frozenset({Namespace.POSTS}),
    EntityKind.COMMENT: frozenset({Namespace.POSTS, Namespace.COMMENTS}),
    EntityKind.PROFILE: frozenset(),
    EntityKind.MEDIA: frozenset({Namespace.MEDIA_FILES}),
}

# keys a full clear must carry over
PRESERVED_KEYS: Tuple[str, ...] = (LIKED_POSTS_KEY, *SESSION_KEYS)


def namespaces_for(operation: OperationKind, entity: EntityKind) -> FrozenSet[Namespace]:
    OperationKind(operation)  # raises on unknown kinds; all kinds map alike
    return INVALIDATION_TABLE[EntityKind(entity)]


class InvalidationPolicy:
    def __init__(self, cache: DomainCache):
        self.cache = cache

    def after_mutation(self, operation: OperationKind, entity: EntityKind) -> FrozenSet[Namespace]:
        """
        Drop the cached groups a successful remote write made stale.

        Returns the namespaces that were invalidated; an empty result means the
        whole storage was cleared with the like ledger and session restored.
        """
        operation = OperationKind(operation)
        entity = EntityKind(entity)
        namespaces = namespaces_for(operation, entity)
        logger.info("Data store %s %s", operation.value, entity.value)
        if not namespaces:
            self.clear_all()
            return namespaces
        for namespace in sorted(namespaces, key=lambda ns: ns.value):
            self.cache.invalidate(namespace)
        return namespaces

    def clear_all(self) -> None:
        """Wipe the storage medium but keep the like ledger and session flags."""
        storage = self.cache.store.storage
        if storage is None:
            return
        preserved: Dict[str, Optional[str]] = {}
        for key in PRESERVED_KEYS:
            try:
                preserved[key] = storage.get_item(key)
            except Exception as exc:  # noqa: BLE001
                logger.error("Cannot snapshot %s, skipping full clear: %s", key, exc)
                return
        self.cache.store.clear()
        for key, value in preserved.items():
            if value is None:
                continue
            try:
                storage.set_item(key, value)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to restore %s after cache clear: %s", key, exc)
        logger.info("Cleared local cache, kept liked posts and session")
