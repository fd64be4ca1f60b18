from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from .backend import DataStore, SupabaseClient
from .cache import DomainCache
from .config import Config
from .invalidation import InvalidationPolicy
from .likes import LikeLedger
from .optimistic import LikeController
from .services import BlogService
from .session import AdminSession
from .store import JsonFileStorage, Storage, TTLStore


@dataclass
class AppContext:
    config: Config
    storage: Optional[Storage]
    store: TTLStore
    cache: DomainCache
    ledger: LikeLedger
    policy: InvalidationPolicy
    service: BlogService
    likes: LikeController
    session: AdminSession


def build_context(
    config: Config,
    data_store: Optional[DataStore] = None,
    storage: Optional[Storage] = None,
    clock: Callable[[], float] = time.time,
) -> AppContext:
    if storage is None:
        storage = JsonFileStorage(config.storage.path, max_bytes=config.storage.max_bytes)
    if data_store is None:
        data_store = SupabaseClient(config.backend)
    store = TTLStore(storage, clock=clock)
    cache = DomainCache(store, config.cache)
    ledger = LikeLedger(storage)
    policy = InvalidationPolicy(cache)
    return AppContext(
        config=config,
        storage=storage,
        store=store,
        cache=cache,
        ledger=ledger,
        policy=policy,
        service=BlogService(data_store, cache, policy),
        likes=LikeController(data_store, ledger, cache, timeout=config.likes.timeout),
        session=AdminSession(storage, clock=clock),
    )
