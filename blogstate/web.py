from __future__ import annotations

import os
from collections import deque
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, field_validator

from .backend import BackendError
from .config import load_config
from .context import AppContext, build_context
from .optimistic import ToggleInProgressError

BASE_DIR = Path(__file__).resolve().parent.parent
CONFIG_PATH = Path(os.getenv("CONFIG_PATH", BASE_DIR / "config/config.yaml"))

app = FastAPI(title="Blog local state", version="0.1.0")

_context: Optional[AppContext] = None


def get_context() -> AppContext:
    global _context
    if _context is None:
        _context = build_context(load_config(CONFIG_PATH))
    return _context


class CommentRequest(BaseModel):
    post_id: int
    content: str
    author_name: Optional[str] = None
    parent_id: Optional[int] = None

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment must not be empty")
        return value


class LikeResponse(BaseModel):
    post_id: int
    liked: bool
    thumbs: int
    pending: bool
    error: Optional[str] = None


class LikedResponse(BaseModel):
    liked: List[str] = Field(default_factory=list)


def _backend_failure(exc: BackendError) -> HTTPException:
    return HTTPException(status_code=502, detail={"message": str(exc), "status": exc.status_code})


def _tail_lines(path: Path, lines: int, level: Optional[str] = None) -> List[str]:
    """Last `lines` log records, optionally only those at `level`."""
    if lines <= 0:
        return []
    marker = f"[{level.upper()}]" if level else None
    with path.open(encoding="utf-8", errors="replace") as handle:
        return list(deque((line for line in handle if marker is None or marker in line), maxlen=lines))


@app.get("/api/posts")
def list_posts(ctx: AppContext = Depends(get_context)) -> dict:
    try:
        posts = ctx.service.get_posts()
    except BackendError as exc:
        raise _backend_failure(exc)
    ctx.likes.retain(post.id for post in posts)
    items = []
    for post in posts:
        view = ctx.likes.track(post)
        items.append({**asdict(post), "thumbs": view.thumbs, "liked": view.liked, "pending": view.pending})
    return {"posts": items}


@app.post("/api/posts/{post_id}/like", response_model=LikeResponse)
async def toggle_like(post_id: int, ctx: AppContext = Depends(get_context)) -> LikeResponse:
    if ctx.likes.view(post_id) is None:
        try:
            posts = await run_in_threadpool(ctx.service.get_posts)
        except BackendError as exc:
            raise _backend_failure(exc)
        post = next((p for p in posts if p.id == post_id), None)
        if post is None:
            raise HTTPException(status_code=404, detail=f"Post {post_id} not found")
        ctx.likes.track(post)
    try:
        view = await ctx.likes.toggle(post_id)
    except ToggleInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return LikeResponse(**asdict(view))


@app.get("/api/likes", response_model=LikedResponse)
def liked_posts(ctx: AppContext = Depends(get_context)) -> LikedResponse:
    return LikedResponse(liked=ctx.ledger.all())


@app.delete("/api/likes")
def reset_likes(ctx: AppContext = Depends(get_context)) -> dict:
    ctx.ledger.clear()
    return {"ok": True}


@app.get("/api/media")
def list_media(ctx: AppContext = Depends(get_context)) -> dict:
    try:
        files = ctx.service.get_media_files()
    except BackendError as exc:
        raise _backend_failure(exc)
    return {"files": [asdict(media) for media in files]}


@app.get("/api/media/categories")
def list_categories(ctx: AppContext = Depends(get_context)) -> dict:
    try:
        categories = ctx.service.get_media_categories()
    except BackendError as exc:
        raise _backend_failure(exc)
    return {"categories": [asdict(category) for category in categories]}


@app.get("/api/comments")
def list_comments(post_id: Optional[int] = None, ctx: AppContext = Depends(get_context)) -> dict:
    try:
        comments = ctx.service.get_comments(post_id)
    except BackendError as exc:
        raise _backend_failure(exc)
    return {"comments": [asdict(comment) for comment in comments]}


@app.post("/api/comments")
def create_comment(payload: CommentRequest, ctx: AppContext = Depends(get_context)) -> dict:
    try:
        comment = ctx.service.create_comment(
            payload.post_id,
            payload.content,
            author_name=payload.author_name,
            parent_id=payload.parent_id,
        )
    except BackendError as exc:
        raise _backend_failure(exc)
    return asdict(comment)


@app.delete("/api/comments/{comment_id}")
def delete_comment(comment_id: int, ctx: AppContext = Depends(get_context)) -> dict:
    try:
        ctx.service.delete_comment(comment_id)
    except BackendError as exc:
        raise _backend_failure(exc)
    return {"ok": True}


@app.post("/api/cache/clear")
def clear_cache(ctx: AppContext = Depends(get_context)) -> dict:
    ctx.policy.clear_all()
    return {"ok": True}


@app.get("/api/logs")
def get_logs(lines: int = 200, level: Optional[str] = None, ctx: AppContext = Depends(get_context)) -> dict:
    # level=warning shows like rollbacks and cache write failures
    log_path = Path(ctx.config.general.log_file)
    if not log_path.exists():
        return {"lines": [], "path": str(log_path)}
    return {"lines": _tail_lines(log_path, lines, level), "path": str(log_path)}
