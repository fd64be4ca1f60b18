"""
Typed accessors for the cached entity lists.

Every namespace is a single key holding the whole list, tagged with the
namespace name and validated against that namespace's schema when read back.
Point updates (replace, remove, prepend) rewrite the full list, which is O(n)
per mutation and fine for a personal blog's post and media counts.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from .config import CacheSettings
from .models import Comment, MediaCategory, MediaFile, Post
from .store import TTLStore

logger = logging.getLogger("blogstate.cache")


class Namespace(str, Enum):
    POSTS = "posts"
    COMMENTS = "comments"
    MEDIA_FILES = "mediaFiles"
    MEDIA_CATEGORIES = "mediaCategories"


_SCHEMAS: Dict[Namespace, TypeAdapter] = {
    Namespace.POSTS: TypeAdapter(List[Post]),
    Namespace.COMMENTS: TypeAdapter(List[Comment]),
    Namespace.MEDIA_FILES: TypeAdapter(List[MediaFile]),
    Namespace.MEDIA_CATEGORIES: TypeAdapter(List[MediaCategory]),
}


class DomainCache:
    def __init__(self, store: TTLStore, settings: Optional[CacheSettings] = None):
        self.store = store
        self.settings = settings or CacheSettings()

    def ttl_for(self, namespace: Namespace) -> float:
        return {
            Namespace.POSTS: self.settings.posts_ttl,
            Namespace.COMMENTS: self.settings.comments_ttl,
            Namespace.MEDIA_FILES: self.settings.media_files_ttl,
            Namespace.MEDIA_CATEGORIES: self.settings.media_categories_ttl,
        }[namespace]

    def _write(self, namespace: Namespace, items: List[Any]) -> None:
        try:
            payload = _SCHEMAS[namespace].dump_python(list(items), mode="json")
        except Exception as exc:  # noqa: BLE001
            logger.error("Cannot serialize %s for caching: %s", namespace.value, exc)
            return
        self.store.set(namespace.value, {"namespace": namespace.value, "items": payload}, self.ttl_for(namespace))

    def _read(self, namespace: Namespace) -> Optional[List[Any]]:
        payload = self.store.get(namespace.value)
        if payload is None:
            return None
        if not isinstance(payload, dict) or payload.get("namespace") != namespace.value:
            logger.warning("Cached %s has no matching namespace tag, ignoring", namespace.value)
            self.store.remove(namespace.value)
            return None
        try:
            return _SCHEMAS[namespace].validate_python(payload.get("items"))
        except ValidationError as exc:
            logger.warning("Cached %s failed validation (%s errors), ignoring", namespace.value, exc.error_count())
            self.store.remove(namespace.value)
            return None

    def invalidate(self, namespace: Namespace) -> None:
        logger.debug("Invalidating %s", namespace.value)
        self.store.remove(namespace.value)

    # posts

    def set_posts(self, posts: List[Post]) -> None:
        self._write(Namespace.POSTS, posts)

    def get_posts(self) -> Optional[List[Post]]:
        return self._read(Namespace.POSTS)

    def update_post(self, post: Post) -> bool:
        return self._replace(Namespace.POSTS, post, lambda item: item.id == post.id)

    def patch_post(self, post_id: int, **changes) -> bool:
        posts = self.get_posts()
        if posts is None:
            return False
        for post in posts:
            if post.id == post_id:
                for name, value in changes.items():
                    setattr(post, name, value)
                self.set_posts(posts)
                return True
        return False

    def remove_post(self, post_id: int) -> bool:
        return self._remove(Namespace.POSTS, lambda item: item.id == post_id)

    def prepend_post(self, post: Post) -> bool:
        return self._prepend(Namespace.POSTS, post)

    # comments

    def set_comments(self, comments: List[Comment]) -> None:
        self._write(Namespace.COMMENTS, comments)

    def get_comments(self, post_id: Optional[int] = None) -> Optional[List[Comment]]:
        comments = self._read(Namespace.COMMENTS)
        if comments is None or post_id is None:
            return comments
        return [comment for comment in comments if comment.post_id == post_id]

    # media

    def set_media_files(self, files: List[MediaFile]) -> None:
        self._write(Namespace.MEDIA_FILES, files)

    def get_media_files(self) -> Optional[List[MediaFile]]:
        return self._read(Namespace.MEDIA_FILES)

    def find_media_by_url(self, url: str) -> Optional[MediaFile]:
        for media in self.get_media_files() or []:
            if media.url == url:
                return media
        return None

    def update_media_file(self, media: MediaFile) -> bool:
        return self._replace(Namespace.MEDIA_FILES, media, lambda item: item.id == media.id)

    def remove_media_file(self, media_id: str) -> bool:
        return self._remove(Namespace.MEDIA_FILES, lambda item: item.id == media_id)

    def prepend_media_file(self, media: MediaFile) -> bool:
        return self._prepend(Namespace.MEDIA_FILES, media)

    def set_media_categories(self, categories: List[MediaCategory]) -> None:
        self._write(Namespace.MEDIA_CATEGORIES, categories)

    def get_media_categories(self) -> Optional[List[MediaCategory]]:
        return self._read(Namespace.MEDIA_CATEGORIES)

    # read-modify-write helpers; a cold namespace is left cold

    def _replace(self, namespace: Namespace, new_item: Any, match: Callable[[Any], bool]) -> bool:
        items = self._read(namespace)
        if items is None:
            return False
        for index, item in enumerate(items):
            if match(item):
                items[index] = new_item
                self._write(namespace, items)
                return True
        return False

    def _remove(self, namespace: Namespace, match: Callable[[Any], bool]) -> bool:
        items = self._read(namespace)
        if items is None:
            return False
        kept = [item for item in items if not match(item)]
        if len(kept) == len(items):
            return False
        self._write(namespace, kept)
        return True

    def _prepend(self, namespace: Namespace, new_item: Any) -> bool:
        items = self._read(namespace)
        if items is None:
            return False
        self._write(namespace, [new_item, *items])
        return True
