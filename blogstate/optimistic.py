"""
Optimistic like/unlike.

Each tracked post is either idle or pending. A toggle flips the visible state
at once, then awaits the data store; success commits the new state to the
like ledger and takes the like count the store reports, failure restores the
previous state. A toggle on a pending post is rejected.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, Optional

from .backend import DataStore, LikeDirection
from .cache import DomainCache
from .likes import LikeLedger
from .models import LikeView, Post

logger = logging.getLogger("blogstate.optimistic")


class ToggleInProgressError(Exception):
    def __init__(self, post_id: int):
        super().__init__(f"Like on post {post_id} is still pending")
        self.post_id = post_id


class LikeController:
    def __init__(
        self,
        store: DataStore,
        ledger: LikeLedger,
        cache: Optional[DomainCache] = None,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.cache = cache
        # without a timeout a hung call keeps the post pending forever
        self.timeout = timeout
        self._views: Dict[int, LikeView] = {}

    def track(self, post: Post) -> LikeView:
        view = self._views.get(post.id)
        if view is None:
            view = LikeView(post_id=post.id, liked=self.ledger.is_liked(post.id), thumbs=post.thumbs)
            self._views[post.id] = view
        elif not view.pending:
            view.liked = self.ledger.is_liked(post.id)
            view.thumbs = post.thumbs
        return view

    def retain(self, post_ids: Iterable[int]) -> None:
        """Forget idle views of posts that are no longer listed."""
        keep = set(post_ids)
        for post_id in [pid for pid, view in self._views.items() if pid not in keep and not view.pending]:
            del self._views[post_id]

    def view(self, post_id: int) -> Optional[LikeView]:
        return self._views.get(post_id)

    def is_pending(self, post_id: int) -> bool:
        view = self._views.get(post_id)
        return bool(view and view.pending)

    async def _mutate(self, post_id: int, direction: LikeDirection) -> int:
        call = asyncio.to_thread(self.store.mutate_like, post_id, direction)
        if self.timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.timeout)

    async def toggle(self, post_id: int) -> LikeView:
        view = self._views.get(post_id)
        if view is None:
            raise KeyError(f"Post {post_id} is not tracked")
        if view.pending:
            raise ToggleInProgressError(post_id)

        previous = view.liked
        view.liked = not previous
        view.pending = True
        view.error = None
        direction = LikeDirection.UNLIKE if previous else LikeDirection.LIKE

        try:
            thumbs = await self._mutate(post_id, direction)
        except Exception as exc:  # noqa: BLE001
            view.liked = previous
            self.ledger.set_liked(post_id, previous)
            view.error = str(exc) or exc.__class__.__name__
            view.pending = False
            logger.warning("Failed to %s post %s, rolled back: %s", direction.value, post_id, view.error)
            return view

        self.ledger.set_liked(post_id, not previous)
        view.thumbs = max(0, int(thumbs))
        view.pending = False
        if self.cache is not None:
            self.cache.patch_post(post_id, thumbs=view.thumbs)
        logger.info("Post %s %sd, thumbs now %s", post_id, direction.value, view.thumbs)
        return view
