import threading
from typing import Dict, List, Optional

import pytest

from blogstate.backend import BackendError, LikeDirection
from blogstate.cache import DomainCache
from blogstate.config import CacheSettings
from blogstate.invalidation import InvalidationPolicy
from blogstate.likes import LikeLedger
from blogstate.models import Comment, MediaCategory, MediaFile, Post, Profile
from blogstate.optimistic import LikeController
from blogstate.services import BlogService
from blogstate.store import MemoryStorage, TTLStore


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDataStore:
    """In-memory stand-in for the hosted data store."""

    def __init__(self):
        self.posts: Dict[int, Post] = {}
        self.comments: Dict[int, Comment] = {}
        self.media: List[MediaFile] = []
        self.categories: List[MediaCategory] = []
        self.profiles: Dict[int, Profile] = {}
        self.calls: Dict[str, int] = {}
        self.like_error: Optional[Exception] = None
        self.like_gate: Optional[threading.Event] = None
        self.like_started = threading.Event()
        self.failing_comment_deletes: set = set()
        self._next_id = 100

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_post(self, post_id: int, thumbs: int = 0, content: str = "") -> Post:
        post = Post(id=post_id, content=content or f"post {post_id}", thumbs=thumbs)
        self.posts[post_id] = post
        return post

    def add_comment(self, comment_id: int, post_id: int, parent_id: Optional[int] = None) -> Comment:
        comment = Comment(id=comment_id, post_id=post_id, content=f"c{comment_id}", author_name="guest", dis_id=parent_id)
        self.comments[comment_id] = comment
        return comment

    def fetch_posts(self) -> List[Post]:
        self._count("fetch_posts")
        posts = sorted(self.posts.values(), key=lambda p: p.id, reverse=True)
        return [
            Post(
                id=p.id,
                content=p.content,
                thumbs=p.thumbs,
                images=list(p.images),
                author="admin",
                comments=[c for c in self.comments.values() if c.post_id == p.id],
            )
            for p in posts
        ]

    def fetch_post(self, post_id: int) -> Optional[Post]:
        return self.posts.get(post_id)

    def mutate_like(self, post_id: int, direction: LikeDirection) -> int:
        self._count("mutate_like")
        self.like_started.set()
        if self.like_gate is not None:
            self.like_gate.wait(timeout=5)
        if self.like_error is not None:
            raise self.like_error
        post = self.posts[post_id]
        if LikeDirection(direction) is LikeDirection.LIKE:
            post.thumbs += 1
        else:
            post.thumbs = max(0, post.thumbs - 1)
        return post.thumbs

    def fetch_comments(self, post_id: Optional[int] = None) -> List[Comment]:
        self._count("fetch_comments")
        return [c for c in self.comments.values() if post_id is None or c.post_id == post_id]

    def fetch_comment_children(self, comment_id: int) -> List[int]:
        return [c.id for c in self.comments.values() if c.dis_id == comment_id]

    def create_comment(self, post_id, content, author_name, parent_id=None, ip=None) -> Comment:
        comment = Comment(
            id=self._new_id(), post_id=post_id, content=content, author_name=author_name, dis_id=parent_id, ip=ip
        )
        self.comments[comment.id] = comment
        return comment

    def update_comment(self, comment_id: int, content: str) -> Comment:
        self.comments[comment_id].content = content
        return self.comments[comment_id]

    def delete_comment(self, comment_id: int) -> None:
        if comment_id in self.failing_comment_deletes:
            raise BackendError(f"cannot delete comment {comment_id}", 500)
        del self.comments[comment_id]

    def create_post(self, content: str, images=None) -> Post:
        post = Post(id=self._new_id(), content=content, images=list(images or []))
        self.posts[post.id] = post
        return post

    def update_post(self, post_id: int, **changes) -> Post:
        post = self.posts[post_id]
        for name, value in changes.items():
            setattr(post, name, value)
        return post

    def delete_post(self, post_id: int) -> None:
        if post_id not in self.posts:
            raise BackendError(f"Post {post_id} not found", 404)
        del self.posts[post_id]

    def fetch_media_files(self) -> List[MediaFile]:
        self._count("fetch_media_files")
        return list(self.media)

    def fetch_media_categories(self) -> List[MediaCategory]:
        self._count("fetch_media_categories")
        return list(self.categories)

    def upload_media(self, filename: str, content: bytes, content_type: str) -> MediaFile:
        media = MediaFile(id=str(self._new_id()), name=filename, url=f"https://cdn.test/{filename}", size=len(content))
        self.media.insert(0, media)
        return media

    def delete_media(self, media: MediaFile) -> None:
        self.media = [m for m in self.media if m.id != media.id]

    def fetch_profile(self, profile_id: int) -> Optional[Profile]:
        return self.profiles.get(profile_id)

    def upsert_profile(self, profile) -> Profile:
        saved = Profile(**profile)
        self.profiles[saved.id] = saved
        return saved


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def ttl_store(storage, clock):
    return TTLStore(storage, clock=clock)


@pytest.fixture
def cache(ttl_store):
    return DomainCache(ttl_store, CacheSettings())


@pytest.fixture
def ledger(storage):
    return LikeLedger(storage)


@pytest.fixture
def policy(cache):
    return InvalidationPolicy(cache)


@pytest.fixture
def data_store():
    return FakeDataStore()


@pytest.fixture
def service(data_store, cache, policy):
    return BlogService(data_store, cache, policy, ip_lookup=lambda: "203.0.113.7")


@pytest.fixture
def controller(data_store, ledger, cache):
    return LikeController(data_store, ledger, cache)
