# inkwell/models.py
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

# ---------------------------
# Users / Auth
# ---------------------------
class Role(str, Enum):
    READER = "READER"
    AUTHOR = "AUTHOR"
    ADMIN = "ADMIN"


class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: Optional[str] = None


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class SessionUser(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: Role = Role.READER


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=120)
    bio: Optional[str] = Field(None, max_length=2000)
    website: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=120)


# ---------------------------
# Posts / Comments
# ---------------------------
class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    excerpt: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    published: bool = False
    cover_image: Optional[str] = None
    is_premium: bool = False
    price: Optional[float] = Field(None, ge=0)


class PostUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    content: Optional[str] = Field(None, min_length=1)
    excerpt: Optional[str] = None
    tags: Optional[List[str]] = None
    published: Optional[bool] = None
    cover_image: Optional[str] = None
    is_premium: Optional[bool] = None
    price: Optional[float] = Field(None, ge=0)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PostListResponse(BaseModel):
    posts: List[Dict[str, Any]]
    pagination: Pagination


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    parent_id: Optional[str] = None


# ---------------------------
# Interactions
# ---------------------------
class ReactionType(str, Enum):
    HEART = "HEART"
    CLAP = "CLAP"
    FIRE = "FIRE"
    ROCKET = "ROCKET"
    EYES = "EYES"


class ReactionPayload(BaseModel):
    post_id: str
    type: ReactionType


class BookmarkPayload(BaseModel):
    post_id: str
    action: Literal["bookmark", "unbookmark"]


class FollowPayload(BaseModel):
    user_id: str
    action: Literal["follow", "unfollow"]


class NotificationAction(BaseModel):
    action: Literal["mark_as_read", "mark_all_as_read"]
    notification_id: Optional[str] = None


class PurchasePayload(BaseModel):
    post_id: str


class ReportCreate(BaseModel):
    target_type: Literal["post", "comment"]
    target_id: str
    reason: str = Field(..., min_length=3, max_length=1000)


# ---------------------------
# Admin
# ---------------------------
class AdminUserUpdate(BaseModel):
    user_id: str
    role: Optional[Role] = None
    action: Optional[Literal["ban", "unban"]] = None


class ReportAction(BaseModel):
    report_id: str
    action: Literal["approve", "reject", "ban_user"]
    reason: Optional[str] = None


class LogEntry(BaseModel):
    ts: Optional[str] = None
    user_email: Optional[str] = None
    action: str
    details: Optional[Dict[str, Any]] = None


class LogsResponse(BaseModel):
    items: List[LogEntry] = Field(default_factory=list)


# ---------------------------
# AI
# ---------------------------
class GenerateType(str, Enum):
    title = "title"
    excerpt = "excerpt"
    content = "content"
    tags = "tags"
    seo_description = "seo-description"
    keywords = "keywords"


class GeneratePayload(BaseModel):
    prompt: str = Field(..., min_length=1)
    type: GenerateType
    context: Optional[str] = None


class SummaryPayload(BaseModel):
    content: str = Field(..., min_length=1)
    title: Optional[str] = None


class ModeratePayload(BaseModel):
    content: str = Field(..., min_length=1)
    type: str = "comment"


class SEOPayload(BaseModel):
    content: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    excerpt: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ImageType(str, Enum):
    cover = "cover"
    illustration = "illustration"
    thumbnail = "thumbnail"


class ImagePayload(BaseModel):
    prompt: str = Field(..., min_length=1)
    type: ImageType = ImageType.cover
    style: Optional[str] = None


# ---------------------------
# Cross-post
# ---------------------------
class CrossPostPayload(BaseModel):
    post_id: str
    platforms: List[str] = Field(..., min_length=1)


class CrossPostResult(BaseModel):
    platform: str
    success: bool
    external_url: Optional[str] = None
    error: Optional[str] = None


class CrossPostResponse(BaseModel):
    success: bool
    results: List[CrossPostResult]
