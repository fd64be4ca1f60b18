from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Comment:
    id: int
    post_id: int
    content: str
    author_name: str
    created_at: str = ""
    dis_id: Optional[int] = None
    ip: Optional[str] = None

    @property
    def is_top_level(self) -> bool:
        return not self.dis_id


@dataclass
class Post:
    id: int
    content: Optional[str] = None
    thumbs: int = 0
    created_at: str = ""
    images: List[str] = field(default_factory=list)
    author: Optional[str] = None
    comments: List[Comment] = field(default_factory=list)


@dataclass
class MediaFile:
    id: str
    name: str
    url: str
    type: str = "unknown"
    size: int = 0
    category: str = "others"
    created_at: str = ""


@dataclass
class MediaCategory:
    id: str
    name: str


@dataclass
class Profile:
    id: int
    name: Optional[str] = None
    avatar: Optional[str] = None
    birth: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class LikeView:
    """What the like affordance of one post shows right now."""

    post_id: int
    liked: bool
    thumbs: int
    pending: bool = False
    error: Optional[str] = None
