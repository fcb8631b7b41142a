from fastapi import HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from typing import Any, Dict, List

from models.avatar_models import AvatarRecord
from models.errors import AvatarPoolError, NotFoundError, ValidationFailure
from services.avatar_service import AvatarService
from utils.media_validation import MAX_AVATAR_BYTES


def _service(request: Request) -> AvatarService:
    return request.app.state.avatar_service


def to_http_error(exc: AvatarPoolError) -> HTTPException:
    """Translate a core error into the matching HTTP status."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, ValidationFailure):
        return HTTPException(status_code=400, detail=exc.message)
    return HTTPException(status_code=500, detail=exc.message)


def _avatar_payload(record: AvatarRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "name": record.name,
        "file_name": record.stored_filename,
        "created_at": record.created_at,
        "url": f"/avatars/{record.id}/image",
    }


async def list_avatars(request: Request) -> List[Dict[str, Any]]:
    """Return every pool avatar with the URL of its image."""
    records = await _service(request).list_avatars()
    return [_avatar_payload(r) for r in records]


async def upload_avatar(request: Request, file: UploadFile) -> Dict[str, Any]:
    """Read an uploaded image and add it to the pool.

    The size check here only avoids buffering oversized uploads; the pool
    store re-validates type and size before persisting.
    """
    data = await file.read(MAX_AVATAR_BYTES + 1)
    try:
        record = await _service(request).add_avatar(file.filename or "", data)
    except AvatarPoolError as exc:
        raise to_http_error(exc) from exc
    return _avatar_payload(record)


async def get_avatar_image(request: Request, avatar_id: str) -> FileResponse:
    """Stream the pool file for `avatar_id`."""
    try:
        path, mime_type = await _service(request).resolve(avatar_id)
    except AvatarPoolError as exc:
        raise to_http_error(exc) from exc
    return FileResponse(path, media_type=mime_type)


async def delete_avatar(request: Request, avatar_id: str) -> Dict[str, Any]:
    try:
        removed = await _service(request).remove_avatar(avatar_id)
    except AvatarPoolError as exc:
        raise to_http_error(exc) from exc
    if not removed:
        raise HTTPException(status_code=404, detail="Avatar not found")
    return {"message": "Avatar deleted successfully"}


async def get_user_avatar(request: Request, user_id: str) -> Dict[str, Any]:
    """Return the avatar currently bound to `user_id`."""
    avatar_id = await _service(request).get_binding(user_id)
    if not avatar_id:
        raise HTTPException(status_code=404, detail="No custom avatar set for this user")
    return {"user_id": user_id, "avatar_id": avatar_id, "url": f"/users/{user_id}/avatar/image"}


async def get_user_avatar_image(request: Request, user_id: str) -> FileResponse:
    """Stream the pool image currently bound to `user_id`."""
    service = _service(request)
    avatar_id = await service.get_binding(user_id)
    if not avatar_id:
        raise HTTPException(status_code=404, detail="No custom avatar set for this user")
    try:
        path, mime_type = await service.resolve(avatar_id)
    except AvatarPoolError as exc:
        raise to_http_error(exc) from exc
    return FileResponse(path, media_type=mime_type)


async def set_user_avatar(request: Request, user_id: str, avatar_id: str) -> Dict[str, Any]:
    """Bind a pool avatar to the user's profile image."""
    if not avatar_id:
        raise HTTPException(status_code=400, detail="Avatar ID is required")
    try:
        image = await _service(request).bind(user_id, avatar_id)
    except AvatarPoolError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Avatar set successfully", "user_id": user_id, "avatar_id": image.avatar_id}


async def remove_user_avatar(request: Request, user_id: str) -> Dict[str, Any]:
    try:
        changed = await _service(request).unbind(user_id)
    except AvatarPoolError as exc:
        raise to_http_error(exc) from exc
    return {"message": "Avatar removed", "changed": changed}


async def run_validation(request: Request) -> Dict[str, Any]:
    return {"repaired": await _service(request).validate()}


async def run_orphan_collection(request: Request) -> Dict[str, Any]:
    return {"deleted": await _service(request).collect_orphans()}
