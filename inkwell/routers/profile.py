# inkwell/routers/profile.py
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from google.api_core.exceptions import GoogleAPIError
from sqlalchemy.orm import Session

from .. import dependencies, models, services
from ..cache import invalidate_user_cache
from ..config import settings
from ..database import get_db
from ..errors import IntegrationError
from ..tables import User

router = APIRouter(prefix="/api/profile", tags=["Profile"])

AVATAR_TYPES = {"image/jpeg", "image/png", "image/webp"}
AVATAR_MAX_BYTES = 2 * 1024 * 1024


@router.get("")
async def get_my_profile(user: User = Depends(dependencies.get_current_user)):
    return services.own_profile(user)


@router.patch("")
async def update_my_profile(
    payload: models.ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    services.update_profile(db, user, payload)
    invalidate_user_cache(user.id)
    services.log_action(db, user.email, "PROFILE_UPDATED", payload.model_dump(exclude_unset=True))
    return services.own_profile(user)


@router.post("/avatar")
async def upload_avatar(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(dependencies.get_current_user),
):
    if not settings.gcs_bucket_name:
        raise HTTPException(status_code=500, detail="Storage bucket not configured.")
    if file.content_type not in AVATAR_TYPES:
        raise HTTPException(status_code=400, detail="Unsupported file type. Use JPG, PNG or WEBP.")
    pos = file.file.tell()
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(pos, 0)
    if size > AVATAR_MAX_BYTES:
        raise HTTPException(status_code=400, detail="File larger than 2 MB.")
    try:
        url = services.upload_avatar(user, file.file, file.filename, file.content_type)
    except GoogleAPIError as e:
        services.log_action(db, user.email, "AVATAR_UPLOAD_FAILED", {"error": str(e)})
        raise IntegrationError("storage", f"avatar upload failed: {e}") from e
    user.image = url
    db.commit()
    invalidate_user_cache(user.id)
    services.log_action(db, user.email, "AVATAR_UPLOADED")
    return {"image": url}
