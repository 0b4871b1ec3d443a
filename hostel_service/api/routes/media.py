"""
Media routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from ...application.media import ImageFile, MediaService
from ...domain.models import UserProfile, UserRole
from ...schemas import HostelImageSchema, ImageUrlResponse, UploadResponse
from ..dependencies import get_media_service, require_role


router = APIRouter(prefix="/api/v1/media", tags=["Media"])


@router.post("/upload", response_model=UploadResponse)
async def upload_images(
    files: List[UploadFile] = File(...),
    captions: Optional[List[str]] = Form(None),
    user: UserProfile = Depends(require_role(UserRole.MANAGER, UserRole.ADMIN)),
    media_service: MediaService = Depends(get_media_service),
):
    """
    Upload hostel photos

    - Up to 10 files per request
    - JPEG, PNG, WebP or HEIC, max 10MB each
    - The first image becomes the primary photo
    """
    images = [
        ImageFile(filename=f.filename or "upload", content_type=f.content_type, data=await f.read())
        for f in files
    ]
    uploaded = await media_service.upload_images(images, user, captions)
    return UploadResponse(images=[HostelImageSchema.model_validate(i) for i in uploaded])


@router.get("/url/{public_id:path}", response_model=ImageUrlResponse)
async def image_url(
    public_id: str,
    preset: str = Query("card", pattern="^(thumbnail|card|detail|full|avatar|blur)$"),
    media_service: MediaService = Depends(get_media_service),
):
    """Delivery URL for a stored image in one of the named sizes"""
    return ImageUrlResponse(public_id=public_id, preset=preset, url=media_service.image_url(public_id, preset))
