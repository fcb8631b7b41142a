"""FastAPI routes for the avatar pool, user bindings and maintenance."""

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers import avatar_controller

router = APIRouter()


class SetAvatarPayload(BaseModel):
	avatar_id: str


@router.get("/avatars")
async def list_avatars_route(request: Request):
	try:
		return await avatar_controller.list_avatars(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/avatars")
async def upload_avatar_route(request: Request, file: UploadFile = File(...)):
	try:
		return await avatar_controller.upload_avatar(request, file)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/avatars/{avatar_id}/image")
async def get_avatar_image_route(request: Request, avatar_id: str):
	"""Return the raw image bytes of a pool avatar."""
	try:
		return await avatar_controller.get_avatar_image(request, avatar_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/avatars/{avatar_id}")
async def delete_avatar_route(request: Request, avatar_id: str):
	try:
		return await avatar_controller.delete_avatar(request, avatar_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/users/{user_id}/avatar")
async def get_user_avatar_route(request: Request, user_id: str):
	try:
		return await avatar_controller.get_user_avatar(request, user_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/users/{user_id}/avatar/image")
async def get_user_avatar_image_route(request: Request, user_id: str):
	try:
		return await avatar_controller.get_user_avatar_image(request, user_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.put("/users/{user_id}/avatar")
async def set_user_avatar_route(request: Request, user_id: str, payload: SetAvatarPayload):
	try:
		return await avatar_controller.set_user_avatar(request, user_id, payload.avatar_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/users/{user_id}/avatar")
async def remove_user_avatar_route(request: Request, user_id: str):
	try:
		return await avatar_controller.remove_user_avatar(request, user_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/maintenance/validate")
async def validate_route(request: Request):
	"""Re-check every binding and repair missing profile images."""
	try:
		return await avatar_controller.run_validation(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/maintenance/orphans")
async def collect_orphans_route(request: Request):
	try:
		return await avatar_controller.run_orphan_collection(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
