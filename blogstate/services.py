import logging
from typing import Any, Callable, Dict, List, Optional

from .backend import DataStore
from .cache import DomainCache
from .invalidation import EntityKind, InvalidationPolicy, OperationKind
from .ip import lookup_ip
from .models import Comment, MediaCategory, MediaFile, Post, Profile

logger = logging.getLogger("blogstate.services")

DEFAULT_COMMENT_AUTHOR = "Guest"


class BlogService:
    """
    Cache-aware data access for the UI layer.

    Reads try the local cache first and fall through to the data store on a
    miss. Writes go to the data store; after each one that succeeds the
    invalidation policy drops the stale cached groups. Write errors propagate.
    """

    def __init__(
        self,
        store: DataStore,
        cache: DomainCache,
        policy: Optional[InvalidationPolicy] = None,
        ip_lookup: Callable[[], str] = lookup_ip,
    ):
        self.store = store
        self.cache = cache
        self.policy = policy or InvalidationPolicy(cache)
        self.ip_lookup = ip_lookup

    # reads

    def get_posts(self) -> List[Post]:
        posts = self.cache.get_posts()
        if posts is not None:
            logger.debug("Posts served from cache (%s)", len(posts))
            return posts
        posts = self.store.fetch_posts()
        logger.info("Fetched %s posts from the data store", len(posts))
        self.cache.set_posts(posts)
        return posts

    def get_comments(self, post_id: Optional[int] = None) -> List[Comment]:
        comments = self.cache.get_comments(post_id)
        if comments is not None:
            return comments
        comments = self.store.fetch_comments()
        self.cache.set_comments(comments)
        if post_id is None:
            return comments
        return [comment for comment in comments if comment.post_id == post_id]

    def get_media_files(self) -> List[MediaFile]:
        files = self.cache.get_media_files()
        if files is not None:
            return files
        files = self.store.fetch_media_files()
        self.cache.set_media_files(files)
        return files

    def get_media_categories(self) -> List[MediaCategory]:
        categories = self.cache.get_media_categories()
        if categories is not None:
            return categories
        categories = self.store.fetch_media_categories()
        self.cache.set_media_categories(categories)
        return categories

    def media_name_for(self, url: str) -> str:
        media = self.cache.find_media_by_url(url)
        if media is not None:
            return media.name
        return url.rsplit("/", 1)[-1]

    def warm(self) -> None:
        """Refill the post and media caches from the data store."""
        self.cache.set_posts(self.store.fetch_posts())
        self.cache.set_media_files(self.store.fetch_media_files())
        self.cache.set_media_categories(self.store.fetch_media_categories())
        logger.info("Cache warmed")

    # writes

    def _after(self, operation: OperationKind, entity: EntityKind) -> None:
        self.policy.after_mutation(operation, entity)

    def create_post(self, content: str, images: Optional[List[str]] = None) -> Post:
        post = self.store.create_post(content, images)
        self._after(OperationKind.CREATE, EntityKind.POST)
        logger.info("Created post %s", post.id)
        return post

    def update_post(self, post_id: int, **changes: Any) -> Post:
        post = self.store.update_post(post_id, **changes)
        self._after(OperationKind.UPDATE, EntityKind.POST)
        return post

    def delete_post(self, post_id: int) -> None:
        self.store.delete_post(post_id)
        self._after(OperationKind.DELETE, EntityKind.POST)
        logger.info("Deleted post %s", post_id)

    def create_comment(
        self,
        post_id: int,
        content: str,
        author_name: Optional[str] = None,
        parent_id: Optional[int] = None,
    ) -> Comment:
        comment = self.store.create_comment(
            post_id,
            content,
            author_name or DEFAULT_COMMENT_AUTHOR,
            parent_id=parent_id,
            ip=self.ip_lookup(),
        )
        self._after(OperationKind.CREATE, EntityKind.COMMENT)
        return comment

    def update_comment(self, comment_id: int, content: str) -> Comment:
        comment = self.store.update_comment(comment_id, content)
        self._after(OperationKind.UPDATE, EntityKind.COMMENT)
        return comment

    def delete_comment(self, comment_id: int) -> None:
        """
        Delete a comment and all of its replies, deepest first.

        The data store has no cascading delete. If any reply fails to delete
        the error propagates and its ancestors stay in place; replies already
        deleted are not restored, but the cache is invalidated either way.
        """
        try:
            self._delete_subtree(comment_id)
        finally:
            self._after(OperationKind.DELETE, EntityKind.COMMENT)

    def _delete_subtree(self, comment_id: int) -> None:
        for child_id in self.store.fetch_comment_children(comment_id):
            self._delete_subtree(child_id)
        self.store.delete_comment(comment_id)
        logger.debug("Deleted comment %s", comment_id)

    def upload_media(self, filename: str, content: bytes, content_type: str) -> MediaFile:
        media = self.store.upload_media(filename, content, content_type)
        self._after(OperationKind.CREATE, EntityKind.MEDIA)
        return media

    def delete_media(self, media: MediaFile) -> None:
        self.store.delete_media(media)
        self._after(OperationKind.DELETE, EntityKind.MEDIA)

    def get_profile(self, profile_id: int) -> Optional[Profile]:
        return self.store.fetch_profile(profile_id)

    def upsert_profile(self, profile: Dict[str, Any]) -> Profile:
        saved = self.store.upsert_profile(profile)
        self._after(OperationKind.UPDATE, EntityKind.PROFILE)
        return saved
