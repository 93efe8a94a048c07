# inkwell/services.py
import logging
import math
import os
import re
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

from google.cloud import bigquery, storage
from passlib.context import CryptContext
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import models
from .config import settings
from .errors import ConflictError, ForbiddenError, IntegrationError, NotFoundError
from .tables import (
    AuditLog,
    Bookmark,
    Comment,
    Follow,
    Notification,
    Post,
    PostTag,
    Purchase,
    Reaction,
    REACTION_TYPES,
    Report,
    Tag,
    User,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

WORDS_PER_MINUTE = 200
EXCERPT_LENGTH = 150
DEFAULT_AVATAR = "https://images.unsplash.com/photo-1472099645785-5658abf4ff4e?w=150&h=150&fit=crop&crop=face"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


# =============================================================================
# Audit log (optional BigQuery export)
# =============================================================================
@lru_cache(maxsize=1)
def get_bq_client() -> bigquery.Client:
    return bigquery.Client()


def log_action(db: Session, user_email: Optional[str], action: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Persist an audit entry; export failures are logged, never raised."""
    entry = AuditLog(user_email=user_email, action=action, details=details)
    db.add(entry)
    db.commit()
    if not settings.bigquery_audit_table:
        return
    row = {
        "timestamp": entry.timestamp.isoformat(),
        "user_email": user_email,
        "action": action,
        "details": details,
    }
    try:
        errors = get_bq_client().insert_rows_json(settings.bigquery_audit_table, [row])
        if errors:
            logger.warning("BigQuery rejected audit row %s: %s", action, errors)
    except Exception:
        logger.exception("Failed to export audit row %s to BigQuery", action)


def get_recent_logs(db: Session, limit: int = 200) -> List[Dict[str, Any]]:
    rows = db.query(AuditLog).order_by(AuditLog.timestamp.desc()).limit(limit).all()
    return [
        {"ts": _iso(r.timestamp), "user_email": r.user_email, "action": r.action, "details": r.details}
        for r in rows
    ]


# =============================================================================
# Users
# =============================================================================
def serialize_author(user: Optional[User]) -> Dict[str, Any]:
    if user is None:
        return {"id": None, "name": "Anonymous", "image": DEFAULT_AVATAR}
    return {"id": user.id, "name": user.name or "Anonymous", "image": user.image or DEFAULT_AVATAR}


def serialize_session_user(user: User) -> Dict[str, Any]:
    return models.SessionUser(
        id=user.id, email=user.email, name=user.name, image=user.image, role=user.role
    ).model_dump(mode="json")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(password, password_hash)


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def _initial_role(email: str) -> str:
    return "ADMIN" if email in settings.admin_emails else "READER"


def create_user(db: Session, email: str, password: str, name: Optional[str] = None) -> User:
    email = email.strip().lower()
    if get_user_by_email(db, email):
        raise ConflictError("Email already registered")
    user = User(
        email=email,
        name=name or email.split("@")[0],
        password_hash=hash_password(password),
        role=_initial_role(email),
    )
    db.add(user)
    db.commit()
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    user.last_login = _now()
    db.commit()
    return user


def upsert_oauth_user(db: Session, email: str, name: Optional[str], picture: Optional[str]) -> User:
    email = email.strip().lower()
    user = get_user_by_email(db, email)
    if user is None:
        user = User(email=email, name=name or email.split("@")[0], image=picture, role=_initial_role(email))
        db.add(user)
    else:
        user.name = user.name or name
        user.image = picture or user.image
    user.last_login = _now()
    db.commit()
    return user


def update_profile(db: Session, user: User, updates: models.ProfileUpdate) -> User:
    for field, value in updates.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    return user


def follow_counts(db: Session, user_id: str) -> Dict[str, int]:
    followers = db.query(func.count(Follow.id)).filter(Follow.following_id == user_id).scalar()
    following = db.query(func.count(Follow.id)).filter(Follow.follower_id == user_id).scalar()
    return {"followers": followers or 0, "following": following or 0}


def user_stats(db: Session, user_id: str) -> Dict[str, int]:
    posts = (
        db.query(func.count(Post.id)).filter(Post.author_id == user_id, Post.published.is_(True)).scalar() or 0
    )
    reactions = (
        db.query(func.count(Reaction.id)).join(Post, Reaction.post_id == Post.id)
        .filter(Post.author_id == user_id).scalar() or 0
    )
    return {"posts": posts, "reactions_received": reactions, **follow_counts(db, user_id)}


def public_profile(db: Session, user_id: str) -> Dict[str, Any]:
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("User")
    return {
        **serialize_author(user),
        "bio": user.bio,
        "website": user.website,
        "location": user.location,
        "role": user.role,
        "joined_at": _iso(user.created_at),
    }


def own_profile(user: User) -> Dict[str, Any]:
    return {
        **serialize_session_user(user),
        "bio": user.bio,
        "website": user.website,
        "location": user.location,
        "created_at": _iso(user.created_at),
        "last_login": _iso(user.last_login),
    }


def list_users(
    db: Session, page: int = 1, limit: int = 10, role: Optional[str] = None, search: Optional[str] = None
) -> Dict[str, Any]:
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if search:
        term = f"%{search}%"
        query = query.filter(or_(User.name.ilike(term), User.email.ilike(term)))
    total = query.count()
    users = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    items = []
    for u in users:
        items.append({
            "id": u.id,
            "name": u.name,
            "email": u.email,
            "role": u.role,
            "banned": u.banned,
            "created_at": _iso(u.created_at),
            "counts": {
                "posts": db.query(func.count(Post.id)).filter(Post.author_id == u.id).scalar() or 0,
                "comments": db.query(func.count(Comment.id)).filter(Comment.author_id == u.id).scalar() or 0,
                "reactions": db.query(func.count(Reaction.id)).filter(Reaction.user_id == u.id).scalar() or 0,
            },
        })
    return {"users": items, "pagination": {"page": page, "limit": limit, "total": total, "pages": _pages(total, limit)}}


def set_role(db: Session, user_id: str, role: str) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("User")
    user.role = role
    db.commit()
    return user


def set_banned(db: Session, user_id: str, banned: bool) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError("User")
    user.banned = banned
    db.commit()
    return user


# =============================================================================
# Storage (avatar upload)
# =============================================================================
@lru_cache(maxsize=1)
def get_storage_client() -> storage.Client:
    return storage.Client()


def upload_avatar(user: User, fileobj, filename: str, content_type: str) -> str:
    if not settings.gcs_bucket_name:
        raise IntegrationError("storage", "bucket not configured")
    bucket = get_storage_client().bucket(settings.gcs_bucket_name)
    ext = os.path.splitext(filename or "")[1]
    blob = bucket.blob(f"avatars/{user.id}_{uuid.uuid4()}{ext}")
    blob.upload_from_file(fileobj, content_type=content_type)
    blob.make_public()
    return blob.public_url


# =============================================================================
# Posts / Tags
# =============================================================================
def slugify(text: str) -> str:
    return re.sub(r"(^-|-$)", "", re.sub(r"[^a-z0-9]+", "-", text.lower()))


def _unique_slug(db: Session, title: str, exclude_id: Optional[str] = None) -> str:
    base = slugify(title) or "post"
    slug, n = base, 2
    while True:
        query = db.query(Post.id).filter(Post.slug == slug)
        if exclude_id:
            query = query.filter(Post.id != exclude_id)
        if query.first() is None:
            return slug
        slug, n = f"{base}-{n}", n + 1


def count_words(content: str) -> int:
    return len([w for w in re.split(r"\s+", content) if w])


def reading_time(word_count: int) -> int:
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))


def excerpt_of(post: Post) -> str:
    if post.excerpt:
        return post.excerpt
    if len(post.content) <= EXCERPT_LENGTH:
        return post.content
    return post.content[:EXCERPT_LENGTH] + "..."


def reaction_counts(reactions: Iterable[Reaction]) -> Dict[str, int]:
    counts = {t: 0 for t in REACTION_TYPES}
    for r in reactions:
        if r.type in counts:
            counts[r.type] += 1
    return counts


def serialize_post(post: Post, include_content: bool = False) -> Dict[str, Any]:
    data = {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "excerpt": excerpt_of(post),
        "cover_image": post.cover_image,
        "author": serialize_author(post.author),
        "published": post.published,
        "published_at": _iso(post.published_at or post.created_at),
        "reading_time": post.reading_time,
        "word_count": post.word_count,
        "tags": post.tag_names,
        "reactions": reaction_counts(post.reactions),
        "counts": {"comments": len(post.comments), "reactions": len(post.reactions)},
        "is_premium": post.is_premium,
        "price": post.price,
    }
    if include_content:
        data["content"] = post.content
        data["updated_at"] = _iso(post.updated_at)
    return data


_POST_LOAD = (
    selectinload(Post.author),
    selectinload(Post.tags).selectinload(PostTag.tag),
    selectinload(Post.reactions),
    selectinload(Post.comments),
)


def _set_tags(db: Session, post: Post, names: Iterable[str]) -> None:
    wanted: List[str] = []
    for raw in names:
        name = raw.strip()
        if name and name.lower() not in {w.lower() for w in wanted}:
            wanted.append(name)
    # keep unchanged links in place; the unit of work inserts before it deletes
    for link in list(post.tags):
        if link.tag.name not in wanted:
            post.tags.remove(link)
    present = set(post.tag_names)
    for name in wanted:
        if name in present:
            continue
        tag = db.query(Tag).filter(Tag.name == name).first()
        if tag is None:
            tag = Tag(name=name, slug=re.sub(r"\s+", "-", name.lower()))
            db.add(tag)
            db.flush()
        post.tags.append(PostTag(tag=tag))


def list_posts(
    db: Session, page: int = 1, limit: int = 10, tag: Optional[str] = None, author: Optional[str] = None
) -> Dict[str, Any]:
    query = db.query(Post).filter(Post.published.is_(True))
    if tag:
        query = query.filter(Post.tags.any(PostTag.tag.has(Tag.name == tag)))
    if author:
        query = query.filter(Post.author_id == author)
    total = query.count()
    posts = (
        query.options(*_POST_LOAD)
        .order_by(Post.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "posts": [serialize_post(p) for p in posts],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": _pages(total, limit)},
    }


def create_post(db: Session, author: User, payload: models.PostCreate) -> Post:
    words = count_words(payload.content)
    post = Post(
        author_id=author.id,
        title=payload.title,
        slug=_unique_slug(db, payload.title),
        content=payload.content,
        excerpt=payload.excerpt,
        cover_image=payload.cover_image,
        published=payload.published,
        published_at=_now() if payload.published else None,
        word_count=words,
        reading_time=reading_time(words),
        is_premium=payload.is_premium,
        price=payload.price,
    )
    db.add(post)
    _set_tags(db, post, payload.tags)
    if author.role == "READER":
        author.role = "AUTHOR"
    db.commit()
    return get_post(db, post.id)


def get_post(db: Session, id_or_slug: str) -> Post:
    post = (
        db.query(Post)
        .options(*_POST_LOAD)
        .filter(or_(Post.id == id_or_slug, Post.slug == id_or_slug))
        .first()
    )
    if post is None:
        raise NotFoundError("Post")
    return post


def _ensure_can_edit(post: Post, user: User) -> None:
    if post.author_id != user.id and not user.is_admin:
        raise ForbiddenError("Only the author can change this post")


def update_post(db: Session, post_id: str, user: User, payload: models.PostUpdate) -> Post:
    post = get_post(db, post_id)
    _ensure_can_edit(post, user)
    changes = payload.model_dump(exclude_unset=True)
    tags = changes.pop("tags", None)
    if "title" in changes and changes["title"] != post.title:
        post.slug = _unique_slug(db, changes["title"], exclude_id=post.id)
    if "content" in changes:
        post.word_count = count_words(changes["content"])
        post.reading_time = reading_time(post.word_count)
    if changes.get("published") and not post.published_at:
        post.published_at = _now()
    for field, value in changes.items():
        setattr(post, field, value)
    if tags is not None:
        _set_tags(db, post, tags)
    db.commit()
    return get_post(db, post.id)


def delete_post(db: Session, post_id: str, user: User) -> Post:
    post = get_post(db, post_id)
    _ensure_can_edit(post, user)
    db.delete(post)
    db.commit()
    return post


def has_purchased(db: Session, user_id: str, post_id: str) -> bool:
    return db.query(Purchase.id).filter(Purchase.user_id == user_id, Purchase.post_id == post_id).first() is not None


def can_read_full(db: Session, post: Dict[str, Any], user: Optional[User]) -> bool:
    if not post.get("is_premium"):
        return True
    if user is None:
        return False
    return user.is_admin or post["author"]["id"] == user.id or has_purchased(db, user.id, post["id"])


def trending_tags(db: Session, limit: int = 10) -> List[Dict[str, Any]]:
    rows = (
        db.query(Tag.name, Tag.slug, Tag.color, func.count(PostTag.id).label("post_count"))
        .join(PostTag, PostTag.tag_id == Tag.id)
        .join(Post, PostTag.post_id == Post.id)
        .filter(Post.published.is_(True))
        .group_by(Tag.id)
        .order_by(func.count(PostTag.id).desc(), Tag.name)
        .limit(limit)
        .all()
    )
    return [{"name": r.name, "slug": r.slug, "color": r.color, "post_count": r.post_count} for r in rows]


# =============================================================================
# Comments
# =============================================================================
def serialize_comment(comment: Comment) -> Dict[str, Any]:
    return {
        "id": comment.id,
        "content": comment.content,
        "author": serialize_author(comment.author),
        "created_at": _iso(comment.created_at),
        "parent_id": comment.parent_id,
        "replies": [serialize_comment(r) for r in comment.replies],
    }


def list_comments(db: Session, post_id: str) -> List[Dict[str, Any]]:
    get_post(db, post_id)
    roots = (
        db.query(Comment)
        .filter(Comment.post_id == post_id, Comment.parent_id.is_(None))
        .order_by(Comment.created_at)
        .all()
    )
    return [serialize_comment(c) for c in roots]


def create_comment(db: Session, post_id: str, author: User, payload: models.CommentCreate) -> Comment:
    post = get_post(db, post_id)
    if payload.parent_id:
        parent = db.get(Comment, payload.parent_id)
        if parent is None or parent.post_id != post.id:
            raise NotFoundError("Parent comment")
    comment = Comment(post_id=post.id, author_id=author.id, parent_id=payload.parent_id, content=payload.content)
    db.add(comment)
    if post.author_id != author.id:
        notify(
            db, post.author_id, "COMMENT", "New Comment",
            f"{author.name or author.email} commented on \"{post.title}\"",
            {"post_id": post.id, "comment_author_id": author.id},
        )
    db.commit()
    return comment


def delete_comment(db: Session, comment_id: str, user: User) -> Comment:
    comment = db.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment")
    if comment.author_id != user.id and not user.is_admin:
        raise ForbiddenError("Only the author can delete this comment")
    db.delete(comment)
    db.commit()
    return comment


# =============================================================================
# Reactions
# =============================================================================
def toggle_reaction(db: Session, post_id: str, user: User, reaction_type: str) -> str:
    post = get_post(db, post_id)
    existing = (
        db.query(Reaction)
        .filter(Reaction.post_id == post.id, Reaction.user_id == user.id, Reaction.type == reaction_type)
        .first()
    )
    if existing:
        db.delete(existing)
        db.commit()
        return "removed"
    db.add(Reaction(post_id=post.id, user_id=user.id, type=reaction_type))
    db.commit()
    return "added"


def reaction_summary(db: Session, post_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    rows = (
        db.query(Reaction.type, func.count(Reaction.id))
        .filter(Reaction.post_id == post_id)
        .group_by(Reaction.type)
        .all()
    )
    counts = {t: 0 for t in REACTION_TYPES}
    for reaction_type, n in rows:
        counts[reaction_type] = n
    mine: List[str] = []
    if user_id:
        mine = [
            t for (t,) in db.query(Reaction.type).filter(Reaction.post_id == post_id, Reaction.user_id == user_id)
        ]
    return {"counts": counts, "user_reactions": mine}


# =============================================================================
# Bookmarks
# =============================================================================
def _bookmark(db: Session, post_id: str, user_id: str) -> Optional[Bookmark]:
    return db.query(Bookmark).filter(Bookmark.post_id == post_id, Bookmark.user_id == user_id).first()


def add_bookmark(db: Session, post_id: str, user: User) -> None:
    post = get_post(db, post_id)
    if _bookmark(db, post.id, user.id):
        raise ConflictError("Post already bookmarked")
    db.add(Bookmark(post_id=post.id, user_id=user.id))
    db.commit()


def remove_bookmark(db: Session, post_id: str, user: User) -> None:
    post = get_post(db, post_id)
    bookmark = _bookmark(db, post.id, user.id)
    if bookmark is None:
        raise ConflictError("Post not bookmarked")
    db.delete(bookmark)
    db.commit()


def is_bookmarked(db: Session, post_id: str, user_id: str) -> bool:
    return _bookmark(db, post_id, user_id) is not None


def list_bookmarks(db: Session, user: User) -> List[Dict[str, Any]]:
    bookmarks = (
        db.query(Bookmark)
        .options(selectinload(Bookmark.post).options(*_POST_LOAD))
        .filter(Bookmark.user_id == user.id)
        .order_by(Bookmark.created_at.desc())
        .all()
    )
    return [{**serialize_post(b.post), "bookmarked_at": _iso(b.created_at)} for b in bookmarks]


# =============================================================================
# Follows
# =============================================================================
def _follow(db: Session, follower_id: str, following_id: str) -> Optional[Follow]:
    return (
        db.query(Follow)
        .filter(Follow.follower_id == follower_id, Follow.following_id == following_id)
        .first()
    )


def follow_user(db: Session, follower: User, target_id: str) -> None:
    if target_id == follower.id:
        raise ConflictError("Cannot follow yourself")
    if get_user(db, target_id) is None:
        raise NotFoundError("User")
    if _follow(db, follower.id, target_id):
        raise ConflictError("Already following this user")
    db.add(Follow(follower_id=follower.id, following_id=target_id))
    notify(
        db, target_id, "FOLLOW", "New Follower",
        f"{follower.name or follower.email} started following you",
        {"follower_id": follower.id, "follower_name": follower.name},
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Already following this user")


def unfollow_user(db: Session, follower: User, target_id: str) -> None:
    if target_id == follower.id:
        raise ConflictError("Cannot unfollow yourself")
    if get_user(db, target_id) is None:
        raise NotFoundError("User")
    existing = _follow(db, follower.id, target_id)
    if existing is None:
        raise ConflictError("Not following this user")
    db.delete(existing)
    db.commit()


def follow_status(db: Session, viewer_id: str, target_id: str) -> Dict[str, Any]:
    return {"is_following": _follow(db, viewer_id, target_id) is not None, **follow_counts(db, target_id)}


def list_followers(db: Session, user_id: str) -> List[Dict[str, Any]]:
    rows = db.query(Follow).filter(Follow.following_id == user_id).order_by(Follow.created_at.desc()).all()
    return [serialize_author(f.follower) for f in rows]


def list_following(db: Session, user_id: str) -> List[Dict[str, Any]]:
    rows = db.query(Follow).filter(Follow.follower_id == user_id).order_by(Follow.created_at.desc()).all()
    return [serialize_author(f.following) for f in rows]


def feed(db: Session, user: User, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """Published posts from the authors ``user`` follows, newest first."""
    followed = [fid for (fid,) in db.query(Follow.following_id).filter(Follow.follower_id == user.id)]
    query = db.query(Post).filter(Post.published.is_(True), Post.author_id.in_(followed))
    total = query.count()
    posts = (
        query.options(*_POST_LOAD).order_by(Post.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    )
    return {
        "posts": [serialize_post(p) for p in posts],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": _pages(total, limit)},
    }


# =============================================================================
# Notifications
# =============================================================================
def notify(db: Session, user_id: str, type_: str, title: str, message: str, data: Optional[dict] = None) -> Notification:
    """Queue a notification on ``db``; the caller commits."""
    notification = Notification(user_id=user_id, type=type_, title=title, message=message, data=data)
    db.add(notification)
    return notification


def list_notifications(
    db: Session, user: User, limit: int = 20, offset: int = 0, unread_only: bool = False
) -> Dict[str, Any]:
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    total = query.count()
    unread = (
        db.query(func.count(Notification.id))
        .filter(Notification.user_id == user.id, Notification.read.is_(False))
        .scalar() or 0
    )
    rows = query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()
    return {
        "notifications": [
            {
                "id": n.id,
                "type": n.type,
                "title": n.title,
                "message": n.message,
                "data": n.data,
                "read": n.read,
                "created_at": _iso(n.created_at),
            }
            for n in rows
        ],
        "pagination": {
            "total": total,
            "unread": unread,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        },
    }


def mark_notification_read(db: Session, user: User, notification_id: str) -> None:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification")
    notification.read = True
    db.commit()


def mark_all_notifications_read(db: Session, user: User) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user.id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


# =============================================================================
# Search
# =============================================================================
def search_posts(db: Session, query: str, limit: int, offset: int) -> List[Dict[str, Any]]:
    term = f"%{query}%"
    rows = (
        db.query(Post)
        .outerjoin(Reaction, Reaction.post_id == Post.id)
        .filter(
            Post.published.is_(True),
            or_(
                Post.title.ilike(term),
                Post.content.ilike(term),
                Post.excerpt.ilike(term),
                Post.tags.any(PostTag.tag.has(Tag.name.ilike(term))),
            ),
        )
        .group_by(Post.id)
        .order_by(func.count(Reaction.id).desc(), Post.created_at.desc())
        .options(*_POST_LOAD)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [
        {
            "id": p.id,
            "type": "post",
            "title": p.title,
            "excerpt": excerpt_of(p),
            "author": serialize_author(p.author),
            "tags": p.tag_names,
            "stats": {"reactions": len(p.reactions), "comments": len(p.comments)},
            "published_at": _iso(p.published_at),
        }
        for p in rows
    ]


def search_users(db: Session, query: str, limit: int, offset: int) -> List[Dict[str, Any]]:
    term = f"%{query}%"
    rows = (
        db.query(User)
        .filter(User.banned.is_(False), or_(User.name.ilike(term), User.email.ilike(term)))
        .order_by(User.name)
        .offset(offset)
        .limit(limit)
        .all()
    )
    results = []
    for u in rows:
        counts = follow_counts(db, u.id)
        results.append({
            "id": u.id,
            "type": "user",
            "name": u.name,
            "image": u.image,
            "bio": u.bio,
            "stats": {
                "posts": db.query(func.count(Post.id)).filter(Post.author_id == u.id, Post.published.is_(True)).scalar() or 0,
                "followers": counts["followers"],
            },
        })
    return results


def search_tags(db: Session, query: str, limit: int, offset: int) -> List[Dict[str, Any]]:
    term = f"%{query}%"
    rows = (
        db.query(Tag, func.count(PostTag.id).label("post_count"))
        .outerjoin(PostTag, PostTag.tag_id == Tag.id)
        .filter(Tag.name.ilike(term))
        .group_by(Tag.id)
        .order_by(func.count(PostTag.id).desc(), Tag.name)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return [
        {"id": t.id, "type": "tag", "name": t.name, "color": t.color, "post_count": n}
        for t, n in rows
    ]


def search(db: Session, query: str, search_type: str = "all", limit: int = 20, offset: int = 0) -> List[Dict[str, Any]]:
    if search_type == "posts":
        return search_posts(db, query, limit, offset)
    if search_type == "users":
        return search_users(db, query, limit, offset)
    if search_type == "tags":
        return search_tags(db, query, limit, offset)
    share = math.ceil(limit / 3)
    results = search_posts(db, query, share, 0) + search_users(db, query, share, 0) + search_tags(db, query, share, 0)
    return results[:limit]


# =============================================================================
# Purchases
# =============================================================================
def purchase_post(db: Session, user: User, post_id: str) -> Purchase:
    post = get_post(db, post_id)
    if not post.is_premium or not post.price:
        raise ConflictError("Post is not premium")
    if post.author_id == user.id:
        raise ConflictError("Cannot purchase your own post")
    if has_purchased(db, user.id, post.id):
        raise ConflictError("Already purchased")
    purchase = Purchase(user_id=user.id, post_id=post.id, amount=post.price, status="COMPLETED")
    db.add(purchase)
    post.purchases = (post.purchases or 0) + 1
    post.revenue = (post.revenue or 0.0) + post.price
    db.commit()
    return purchase


# =============================================================================
# Reports / moderation
# =============================================================================
def serialize_report(report: Report) -> Dict[str, Any]:
    return {
        "id": report.id,
        "type": report.target_type,
        "target_id": report.target_id,
        "reason": report.reason,
        "status": report.status,
        "resolution": report.resolution,
        "reported_by": report.reporter_id,
        "reported_at": _iso(report.created_at),
        "reviewed_at": _iso(report.reviewed_at),
    }


def _report_target(db: Session, target_type: str, target_id: str):
    model = Post if target_type == "post" else Comment
    return db.get(model, target_id)


def create_report(db: Session, reporter: User, payload: models.ReportCreate) -> Report:
    if _report_target(db, payload.target_type, payload.target_id) is None:
        raise NotFoundError(payload.target_type.capitalize())
    report = Report(
        reporter_id=reporter.id, target_type=payload.target_type, target_id=payload.target_id, reason=payload.reason
    )
    db.add(report)
    db.commit()
    return report


def list_reports(
    db: Session, page: int = 1, limit: int = 10, status: Optional[str] = None, target_type: Optional[str] = None
) -> Dict[str, Any]:
    query = db.query(Report)
    if status:
        query = query.filter(Report.status == status)
    if target_type:
        query = query.filter(Report.target_type == target_type)
    total = query.count()
    rows = query.order_by(Report.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "reports": [serialize_report(r) for r in rows],
        "pagination": {"page": page, "limit": limit, "total": total, "pages": _pages(total, limit)},
    }


def act_on_report(db: Session, report_id: str, action: str, reason: Optional[str] = None) -> Report:
    """Apply a moderator decision.

    approve: the reported content is taken down (post unpublished, comment deleted).
    reject: the report is dismissed.
    ban_user: the content author is banned.
    """
    report = db.get(Report, report_id)
    if report is None:
        raise NotFoundError("Report")
    target = _report_target(db, report.target_type, report.target_id)
    if action == "approve":
        if isinstance(target, Post):
            target.published = False
        elif target is not None:
            db.delete(target)
        report.status = "approved"
    elif action == "reject":
        report.status = "rejected"
    elif action == "ban_user":
        if target is None:
            raise NotFoundError(report.target_type.capitalize())
        author_id = target.author_id
        set_banned(db, author_id, True)
        report.status = "resolved"
    else:
        raise ValueError(f"Invalid action: {action}")
    report.resolution = reason
    report.reviewed_at = _now()
    db.commit()
    return report


# =============================================================================
# Recommendation inputs
# =============================================================================
def reading_history(db: Session, user_id: str, days: int = 30) -> Dict[str, List[Any]]:
    since = _now() - timedelta(days=days)
    reactions = (
        db.query(Reaction)
        .options(selectinload(Reaction.post).options(*_POST_LOAD))
        .filter(Reaction.user_id == user_id, Reaction.created_at >= since)
        .limit(50)
        .all()
    )
    bookmarks = (
        db.query(Bookmark)
        .options(selectinload(Bookmark.post).options(*_POST_LOAD))
        .filter(Bookmark.user_id == user_id, Bookmark.created_at >= since)
        .limit(20)
        .all()
    )
    return {"reactions": reactions, "bookmarks": bookmarks}


def preferences(db: Session, user_id: str, top: int = 10) -> Dict[str, List[Any]]:
    following = db.query(Follow).filter(Follow.follower_id == user_id).all()
    frequency: Dict[str, int] = {}
    reactions = (
        db.query(Reaction)
        .options(selectinload(Reaction.post).selectinload(Post.tags).selectinload(PostTag.tag))
        .filter(Reaction.user_id == user_id)
        .all()
    )
    for reaction in reactions:
        for name in reaction.post.tag_names:
            frequency[name] = frequency.get(name, 0) + 1
    preferred = [name for name, _ in sorted(frequency.items(), key=lambda kv: (-kv[1], kv[0]))[:top]]
    return {
        "following": [{"id": f.following_id, "name": f.following.name} for f in following],
        "preferred_tags": preferred,
    }


def popular_posts(
    db: Session, limit: int, exclude_post_ids: Iterable[str] = (), exclude_author_ids: Iterable[str] = ()
) -> List[Post]:
    query = (
        db.query(Post)
        .outerjoin(Reaction, Reaction.post_id == Post.id)
        .filter(Post.published.is_(True))
    )
    exclude_post_ids, exclude_author_ids = list(exclude_post_ids), list(exclude_author_ids)
    if exclude_post_ids:
        query = query.filter(Post.id.notin_(exclude_post_ids))
    if exclude_author_ids:
        query = query.filter(Post.author_id.notin_(exclude_author_ids))
    return (
        query.group_by(Post.id)
        .order_by(func.count(Reaction.id).desc(), Post.created_at.desc())
        .options(*_POST_LOAD)
        .limit(limit)
        .all()
    )


def recent_posts_by(db: Session, author_id: str, limit: int = 10) -> List[Post]:
    return (
        db.query(Post)
        .options(selectinload(Post.tags).selectinload(PostTag.tag))
        .filter(Post.author_id == author_id, Post.published.is_(True))
        .order_by(Post.created_at.desc())
        .limit(limit)
        .all()
    )
