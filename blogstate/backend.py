from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import requests

from .config import BackendSettings
from .models import Comment, MediaCategory, MediaFile, Post, Profile

logger = logging.getLogger("blogstate.backend")


class BackendError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LikeDirection(str, Enum):
    LIKE = "like"
    UNLIKE = "unlike"


class DataStore(Protocol):
    def fetch_posts(self) -> List[Post]: ...

    def fetch_post(self, post_id: int) -> Optional[Post]: ...

    def mutate_like(self, post_id: int, direction: LikeDirection) -> int: ...

    def fetch_comments(self, post_id: Optional[int] = None) -> List[Comment]: ...

    def fetch_comment_children(self, comment_id: int) -> List[int]: ...

    def create_comment(
        self,
        post_id: int,
        content: str,
        author_name: str,
        parent_id: Optional[int] = None,
        ip: Optional[str] = None,
    ) -> Comment: ...

    def update_comment(self, comment_id: int, content: str) -> Comment: ...

    def delete_comment(self, comment_id: int) -> None: ...

    def create_post(self, content: str, images: Optional[List[str]] = None) -> Post: ...

    def update_post(self, post_id: int, **changes: Any) -> Post: ...

    def delete_post(self, post_id: int) -> None: ...

    def fetch_media_files(self) -> List[MediaFile]: ...

    def fetch_media_categories(self) -> List[MediaCategory]: ...

    def upload_media(self, filename: str, content: bytes, content_type: str) -> MediaFile: ...

    def delete_media(self, media: MediaFile) -> None: ...

    def fetch_profile(self, profile_id: int) -> Optional[Profile]: ...

    def upsert_profile(self, profile: Dict[str, Any]) -> Profile: ...


def category_for(content_type: str) -> str:
    content_type = (content_type or "").lower()
    if content_type.startswith("image/"):
        return "images"
    if content_type.startswith("video/"):
        return "videos"
    if content_type.startswith("audio/"):
        return "audios"
    if "pdf" in content_type:
        return "documents"
    return "others"


def _comment_from_row(row: Dict) -> Comment:
    return Comment(
        id=int(row["id"]),
        post_id=int(row.get("post_id") or 0),
        content=row.get("content") or "",
        author_name=row.get("author_name") or "",
        created_at=row.get("created_at") or "",
        dis_id=row.get("dis_id") or None,
        ip=row.get("ip"),
    )


def _post_from_row(row: Dict, author: Optional[str], comments: List[Comment]) -> Post:
    return Post(
        id=int(row["id"]),
        content=row.get("content"),
        thumbs=max(0, int(row.get("thumbs") or 0)),
        created_at=row.get("created_at") or "",
        images=list(row.get("images") or []),
        author=author,
        comments=comments,
    )


def _media_from_row(row: Dict) -> MediaFile:
    return MediaFile(
        id=str(row["id"]),
        name=row.get("name") or "",
        url=row.get("url") or "",
        type=row.get("type") or "unknown",
        size=int(row.get("size") or 0),
        category=row.get("category") or "others",
        created_at=row.get("created_at") or "",
    )


class SupabaseClient:
    """Data store backed by Supabase PostgREST tables and a storage bucket."""

    UNKNOWN_AUTHOR = "Unknown author"

    def __init__(self, settings: BackendSettings):
        self.base_url = settings.url.rstrip("/")
        self.bucket = settings.bucket
        self.author_profile_id = settings.author_profile_id
        self.timeout = settings.timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "apikey": settings.anon_key,
                "Authorization": f"Bearer {settings.anon_key}",
            }
        )

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BackendError(f"{method} {url} failed: {exc}") from exc
        if not resp.ok:
            raise BackendError(f"{method} {url} returned {resp.status_code}: {resp.text}", resp.status_code)
        if not resp.content:
            return None
        return resp.json()

    def _table(self, method: str, table: str, params: Optional[Dict] = None, **kwargs) -> Any:
        return self._request(method, f"{self.base_url}/rest/v1/{table}", params=params, **kwargs)

    def _select(self, table: str, **params) -> List[Dict]:
        params.setdefault("select", "*")
        return self._table("GET", table, params=params) or []

    def _single(self, table: str, **params) -> Optional[Dict]:
        rows = self._select(table, limit=1, **params)
        return rows[0] if rows else None

    def _returning(self, method: str, table: str, params: Optional[Dict] = None, body: Any = None, prefer: str = "return=representation") -> Dict:
        rows = self._table(method, table, params=params, json=body, headers={"Prefer": prefer})
        if not rows:
            raise BackendError(f"{method} {table} returned no rows")
        return rows[0]

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    def storage_path(self, url: str) -> Optional[str]:
        marker = f"/object/public/{self.bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1]

    # posts

    def _author_name(self) -> str:
        row = self._single("profile", select="name", id=f"eq.{self.author_profile_id}")
        return (row or {}).get("name") or self.UNKNOWN_AUTHOR

    def fetch_posts(self) -> List[Post]:
        logger.debug("Fetching posts from the data store")
        rows = self._select("posts", order="created_at.desc")
        author = self._author_name()
        comments = self.fetch_comments()
        by_post: Dict[int, List[Comment]] = {}
        for comment in comments:
            by_post.setdefault(comment.post_id, []).append(comment)
        return [_post_from_row(row, author, by_post.get(int(row["id"]), [])) for row in rows]

    def fetch_post(self, post_id: int) -> Optional[Post]:
        row = self._single("posts", id=f"eq.{post_id}")
        if row is None:
            return None
        return _post_from_row(row, self._author_name(), self.fetch_comments(post_id))

    def mutate_like(self, post_id: int, direction: LikeDirection) -> int:
        direction = LikeDirection(direction)
        current = self._single("posts", select="thumbs", id=f"eq.{post_id}")
        if current is None:
            raise BackendError(f"Post {post_id} not found", 404)
        thumbs = int(current.get("thumbs") or 0)
        new_thumbs = thumbs + 1 if direction is LikeDirection.LIKE else max(0, thumbs - 1)
        row = self._returning("PATCH", "posts", params={"id": f"eq.{post_id}"}, body={"thumbs": new_thumbs})
        logger.debug("Post %s %sd, thumbs %s -> %s", post_id, direction.value, thumbs, row.get("thumbs"))
        return int(row.get("thumbs", new_thumbs))

    def create_post(self, content: str, images: Optional[List[str]] = None) -> Post:
        row = self._returning("POST", "posts", body={"content": content, "images": images or [], "thumbs": 0})
        return _post_from_row(row, self._author_name(), [])

    def update_post(self, post_id: int, **changes: Any) -> Post:
        row = self._returning("PATCH", "posts", params={"id": f"eq.{post_id}"}, body=changes)
        return _post_from_row(row, self._author_name(), self.fetch_comments(post_id))

    def delete_post(self, post_id: int) -> None:
        row = self._single("posts", select="images", id=f"eq.{post_id}")
        if row is None:
            raise BackendError(f"Post {post_id} not found", 404)
        self._table("DELETE", "posts", params={"id": f"eq.{post_id}"})
        for url in row.get("images") or []:
            path = self.storage_path(url)
            if not path:
                continue
            try:
                self._remove_objects([path])
            except BackendError as exc:
                # the post is gone already; an orphaned file is acceptable
                logger.error("Failed to delete image %s of post %s: %s", path, post_id, exc)

    # comments

    def fetch_comments(self, post_id: Optional[int] = None) -> List[Comment]:
        params = {"order": "created_at.asc"}
        if post_id is not None:
            params["post_id"] = f"eq.{post_id}"
        return [_comment_from_row(row) for row in self._select("discussions", **params)]

    def fetch_comment_children(self, comment_id: int) -> List[int]:
        return [int(row["id"]) for row in self._select("discussions", select="id", dis_id=f"eq.{comment_id}")]

    def create_comment(
        self,
        post_id: int,
        content: str,
        author_name: str,
        parent_id: Optional[int] = None,
        ip: Optional[str] = None,
    ) -> Comment:
        body = {
            "post_id": post_id,
            "content": content,
            "author_name": author_name,
            "dis_id": parent_id or None,
            "ip": ip or "unknown",
        }
        return _comment_from_row(self._returning("POST", "discussions", body=body))

    def update_comment(self, comment_id: int, content: str) -> Comment:
        row = self._returning("PATCH", "discussions", params={"id": f"eq.{comment_id}"}, body={"content": content})
        return _comment_from_row(row)

    def delete_comment(self, comment_id: int) -> None:
        self._table("DELETE", "discussions", params={"id": f"eq.{comment_id}"})

    # media

    def fetch_media_files(self) -> List[MediaFile]:
        return [_media_from_row(row) for row in self._select("media_files", order="created_at.desc")]

    def fetch_media_categories(self) -> List[MediaCategory]:
        names: List[str] = []
        for row in self._select("media_categories", select="name"):
            if row.get("name") and row["name"] not in names:
                names.append(row["name"])
        for row in self._select("media_files", select="category"):
            if row.get("category") and row["category"] not in names:
                names.append(row["category"])
        return [MediaCategory(id=name, name=name) for name in names]

    def _remove_objects(self, paths: List[str]) -> None:
        self._request("DELETE", f"{self.base_url}/storage/v1/object/{self.bucket}", json={"prefixes": paths})

    def upload_media(self, filename: str, content: bytes, content_type: str) -> MediaFile:
        ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
        category = category_for(content_type)
        path = f"{category}/{int(time.time() * 1000)}.{ext}"
        self._request(
            "POST",
            f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
            data=content,
            headers={"Content-Type": content_type or "application/octet-stream"},
        )
        body = {
            "name": filename,
            "url": self.public_url(path),
            "size": len(content),
            "type": content_type or "unknown",
            "category": category,
        }
        logger.info("Uploaded %s to %s", filename, path)
        return _media_from_row(self._returning("POST", "media_files", body=body))

    def delete_media(self, media: MediaFile) -> None:
        path = self.storage_path(media.url)
        if path:
            self._remove_objects([path])
        self._table("DELETE", "media_files", params={"id": f"eq.{media.id}"})

    # profile

    def fetch_profile(self, profile_id: int) -> Optional[Profile]:
        row = self._single("profile", select="id,name,avatar,birth,created_at", id=f"eq.{profile_id}")
        return Profile(**row) if row else None

    def upsert_profile(self, profile: Dict[str, Any]) -> Profile:
        row = self._returning(
            "POST",
            "profile",
            params={"select": "id,name,avatar,birth,created_at"},
            body=profile,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return Profile(**row)
