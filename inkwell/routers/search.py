# inkwell/routers/search.py
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import services
from ..cache import cache_keys, search_cache
from ..database import get_db

router = APIRouter(prefix="/api/search", tags=["Search"])

SEARCH_TTL = 60 * 2


@router.get("")
async def search(
    q: str = "",
    type: Literal["all", "posts", "users", "tags"] = "all",
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    query = q.strip()
    if len(query) < 2:
        raise HTTPException(status_code=400, detail="Search query must be at least 2 characters")
    # pagination is part of the key, otherwise page 2 would be served page 1
    key = f"{cache_keys.search(query.lower(), type)}:{limit}:{offset}"
    results = await search_cache.get_or_compute(
        key, lambda: services.search(db, query, type, limit=limit, offset=offset), ttl=SEARCH_TTL
    )
    return {
        "query": query,
        "type": type,
        "results": results,
        "pagination": {"limit": limit, "offset": offset, "has_more": len(results) == limit},
    }
