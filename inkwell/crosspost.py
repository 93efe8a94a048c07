# inkwell/crosspost.py
"""Publish a post to external blogging platforms.

Each platform is a ``Publisher`` with one coroutine, ``publish(post)``, where
``post`` is the dict produced by ``services.serialize_post(..., include_content=True)``.
The dispatcher calls them one after another; a failing platform never stops
the others.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import httpx
import jwt
from sqlalchemy.orm import Session

from .config import Settings
from .tables import CrossPost

logger = logging.getLogger(__name__)

BLOGGER_API = "https://www.googleapis.com/blogger/v3"
MEDIUM_API = "https://api.medium.com/v1"
MEDIUM_MAX_TAGS = 3


class PublishError(Exception):
    pass


@dataclass
class PublishResult:
    platform: str
    success: bool
    external_id: str = ""
    external_url: str = ""
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "success": self.success,
            "external_url": self.external_url or None,
            "error": self.error,
        }


class Publisher:
    platform = ""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    def configured(self) -> bool:
        raise NotImplementedError

    async def publish(self, post: Dict[str, Any]) -> PublishResult:
        raise NotImplementedError

    def _ok(self, external_id, external_url) -> PublishResult:
        return PublishResult(self.platform, True, str(external_id), external_url or "")

    @staticmethod
    def _check(response: httpx.Response, name: str) -> Dict[str, Any]:
        if response.status_code >= 400:
            raise PublishError(f"{name} API error: {response.status_code}")
        return response.json()


# ---------------------------
# Ghost (Admin API)
# ---------------------------
def ghost_admin_token(admin_key: str, now: Optional[int] = None) -> str:
    """Short-lived admin JWT from an ``<id>:<hex secret>`` admin API key."""
    key_id, secret = admin_key.split(":", 1)
    iat = int(now if now is not None else time.time())
    return jwt.encode(
        {"iat": iat, "exp": iat + 5 * 60, "aud": "/admin/"},
        bytes.fromhex(secret),
        algorithm="HS256",
        headers={"kid": key_id},
    )


class GhostPublisher(Publisher):
    platform = "ghost"

    def __init__(self, http: httpx.AsyncClient, api_url: Optional[str], admin_key: Optional[str]):
        super().__init__(http)
        self.api_url = (api_url or "").rstrip("/")
        self.admin_key = admin_key

    def configured(self) -> bool:
        return bool(self.api_url and self.admin_key)

    async def publish(self, post: Dict[str, Any]) -> PublishResult:
        response = await self.http.post(
            f"{self.api_url}/ghost/api/admin/posts/",
            params={"source": "html"},
            headers={"Authorization": f"Ghost {ghost_admin_token(self.admin_key)}"},
            json={
                "posts": [{
                    "title": post["title"],
                    "html": post["content"],
                    "status": "published",
                    "tags": [{"name": t} for t in post.get("tags", [])],
                }]
            },
        )
        created = self._check(response, "Ghost")["posts"][0]
        return self._ok(created["id"], created.get("url") or f"{self.api_url}/{post['slug']}/")


# ---------------------------
# WordPress (REST API + application password)
# ---------------------------
class WordPressPublisher(Publisher):
    platform = "wordpress"

    def __init__(self, http: httpx.AsyncClient, api_url: Optional[str], username: Optional[str], app_password: Optional[str]):
        super().__init__(http)
        self.api_url = (api_url or "").rstrip("/")
        self.username = username
        self.app_password = app_password

    def configured(self) -> bool:
        return bool(self.api_url and self.username and self.app_password)

    async def publish(self, post: Dict[str, Any]) -> PublishResult:
        response = await self.http.post(
            f"{self.api_url}/wp-json/wp/v2/posts",
            auth=(self.username, self.app_password),
            json={
                "title": post["title"],
                "content": post["content"],
                "status": "publish",
                "slug": post["slug"],
                "excerpt": post.get("excerpt") or "",
            },
        )
        created = self._check(response, "WordPress")
        return self._ok(created["id"], created.get("link"))


# ---------------------------
# Blogger (v3)
# ---------------------------
class BloggerPublisher(Publisher):
    platform = "blogger"

    def __init__(self, http: httpx.AsyncClient, blog_id: Optional[str], access_token: Optional[str]):
        super().__init__(http)
        self.blog_id = blog_id
        self.access_token = access_token

    def configured(self) -> bool:
        return bool(self.blog_id and self.access_token)

    async def publish(self, post: Dict[str, Any]) -> PublishResult:
        response = await self.http.post(
            f"{BLOGGER_API}/blogs/{self.blog_id}/posts/",
            headers={"Authorization": f"Bearer {self.access_token}"},
            json={
                "kind": "blogger#post",
                "title": post["title"],
                "content": post["content"],
                "labels": post.get("tags", []),
            },
        )
        created = self._check(response, "Blogger")
        return self._ok(created["id"], created.get("url"))


# ---------------------------
# Medium (integration token)
# ---------------------------
class MediumPublisher(Publisher):
    platform = "medium"

    def __init__(self, http: httpx.AsyncClient, token: Optional[str]):
        super().__init__(http)
        self.token = token

    def configured(self) -> bool:
        return bool(self.token)

    async def publish(self, post: Dict[str, Any]) -> PublishResult:
        headers = {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}
        me = self._check(await self.http.get(f"{MEDIUM_API}/me", headers=headers), "Medium")
        response = await self.http.post(
            f"{MEDIUM_API}/users/{me['data']['id']}/posts",
            headers=headers,
            json={
                "title": post["title"],
                "contentFormat": "markdown",
                "content": post["content"],
                "tags": post.get("tags", [])[:MEDIUM_MAX_TAGS],
                "publishStatus": "public",
            },
        )
        created = self._check(response, "Medium")["data"]
        return self._ok(created["id"], created.get("url"))


def build_publishers(http: httpx.AsyncClient, cfg: Settings) -> Dict[str, Publisher]:
    publishers: List[Publisher] = [
        GhostPublisher(http, cfg.ghost_api_url, cfg.ghost_admin_api_key),
        WordPressPublisher(http, cfg.wordpress_api_url, cfg.wordpress_username, cfg.wordpress_app_password),
        BloggerPublisher(http, cfg.blogger_blog_id, cfg.blogger_access_token),
        MediumPublisher(http, cfg.medium_integration_token),
    ]
    return {p.platform: p for p in publishers}


async def dispatch(publishers: Dict[str, Publisher], post: Dict[str, Any], platforms: Iterable[str]) -> List[PublishResult]:
    results = []
    for name in platforms:
        platform = name.lower()
        publisher = publishers.get(platform)
        if publisher is None:
            results.append(PublishResult(platform, False, error="Unsupported platform"))
            continue
        if not publisher.configured():
            results.append(PublishResult(platform, False, error=f"{platform} credentials not configured"))
            continue
        try:
            results.append(await publisher.publish(post))
        except (PublishError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("Cross-post to %s failed: %s", platform, e)
            results.append(PublishResult(platform, False, error=str(e) or type(e).__name__))
    return results


def record_results(db: Session, post_id: str, user_id: str, results: Iterable[PublishResult], publishers: Dict[str, Publisher]) -> None:
    for r in results:
        if r.platform not in publishers:
            continue
        db.add(CrossPost(
            post_id=post_id,
            user_id=user_id,
            platform=r.platform.upper(),
            external_id=r.external_id,
            external_url=r.external_url,
            status="PUBLISHED" if r.success else "FAILED",
            error=r.error,
        ))
    db.commit()


def list_records(db: Session, post_id: str) -> List[Dict[str, Any]]:
    rows = db.query(CrossPost).filter(CrossPost.post_id == post_id).order_by(CrossPost.created_at.desc()).all()
    return [
        {
            "id": r.id,
            "platform": r.platform,
            "status": r.status,
            "external_id": r.external_id,
            "external_url": r.external_url,
            "error": r.error,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]
