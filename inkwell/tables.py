# inkwell/tables.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------
# Enumerations (stored as strings)
# ---------------------------
ROLES = ("READER", "AUTHOR", "ADMIN")
REACTION_TYPES = ("HEART", "CLAP", "FIRE", "ROCKET", "EYES")
NOTIFICATION_TYPES = ("FOLLOW", "COMMENT", "REACTION", "SYSTEM")
CROSSPOST_PLATFORMS = ("GHOST", "WORDPRESS", "BLOGGER", "MEDIUM")
REPORT_STATUSES = ("pending", "approved", "rejected", "resolved")


# ---------------------------
# Users
# ---------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(120))
    image = Column(String(500))
    password_hash = Column(String(255))
    role = Column(String(16), nullable=False, default="READER")
    banned = Column(Boolean, nullable=False, default=False)
    bio = Column(Text)
    website = Column(String(255))
    location = Column(String(120))
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    last_login = Column(DateTime(timezone=True))

    posts = relationship("Post", back_populates="author", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (UniqueConstraint("follower_id", "following_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    follower_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    following_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    follower = relationship("User", foreign_keys=[follower_id])
    following = relationship("User", foreign_keys=[following_id])


# ---------------------------
# Posts / Tags
# ---------------------------
class Post(Base):
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, default=_uuid)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    slug = Column(String(320), unique=True, nullable=False, index=True)
    content = Column(Text, nullable=False)
    excerpt = Column(Text)
    cover_image = Column(String(500))
    published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime(timezone=True))
    reading_time = Column(Integer, nullable=False, default=1)
    word_count = Column(Integer, nullable=False, default=0)
    is_premium = Column(Boolean, nullable=False, default=False)
    price = Column(Float)
    purchases = Column(Integer, nullable=False, default=0)
    revenue = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    author = relationship("User", back_populates="posts")
    tags = relationship("PostTag", back_populates="post", cascade="all, delete-orphan")
    reactions = relationship("Reaction", back_populates="post", cascade="all, delete-orphan")
    comments = relationship("Comment", back_populates="post", cascade="all, delete-orphan")
    bookmarks = relationship("Bookmark", back_populates="post", cascade="all, delete-orphan")
    cross_posts = relationship("CrossPost", back_populates="post", cascade="all, delete-orphan")

    @property
    def tag_names(self):
        return [pt.tag.name for pt in self.tags]


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(60), unique=True, nullable=False, index=True)
    slug = Column(String(80), nullable=False)
    color = Column(String(16))

    posts = relationship("PostTag", back_populates="tag", cascade="all, delete-orphan")


class PostTag(Base):
    __tablename__ = "post_tags"
    __table_args__ = (UniqueConstraint("post_id", "tag_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True)

    post = relationship("Post", back_populates="tags")
    tag = relationship("Tag", back_populates="posts")


# ---------------------------
# Interactions
# ---------------------------
class Reaction(Base):
    __tablename__ = "reactions"
    __table_args__ = (UniqueConstraint("post_id", "user_id", "type"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    post = relationship("Post", back_populates="reactions")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=_uuid)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(String(36), ForeignKey("comments.id", ondelete="CASCADE"))
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    post = relationship("Post", back_populates="comments")
    author = relationship("User")
    replies = relationship("Comment", cascade="all, delete-orphan", order_by="Comment.created_at")


class Bookmark(Base):
    __tablename__ = "bookmarks"
    __table_args__ = (UniqueConstraint("post_id", "user_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    post = relationship("Post", back_populates="bookmarks")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (UniqueConstraint("user_id", "post_id"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    status = Column(String(16), nullable=False, default="COMPLETED")
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)


class CrossPost(Base):
    __tablename__ = "cross_posts"

    id = Column(String(36), primary_key=True, default=_uuid)
    post_id = Column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(16), nullable=False)
    external_id = Column(String(255), nullable=False, default="")
    external_url = Column(String(500), nullable=False, default="")
    status = Column(String(16), nullable=False)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    post = relationship("Post", back_populates="cross_posts")


# ---------------------------
# Moderation / Audit
# ---------------------------
class Report(Base):
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=_uuid)
    reporter_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"))
    target_type = Column(String(16), nullable=False)
    target_id = Column(String(36), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    resolution = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    reviewed_at = Column(DateTime(timezone=True))

    reporter = relationship("User")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    timestamp = Column(DateTime(timezone=True), default=_now, nullable=False, index=True)
    user_email = Column(String(255))
    action = Column(String(64), nullable=False)
    details = Column(JSON)
