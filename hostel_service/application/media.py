"""
Media service - hostel image uploads
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from ..config import settings
from ..domain.models import HostelImage, UserProfile, UserRole
from ..errors import UploadError
from ..infrastructure.cdn import CdnClient
from ..infrastructure.image_processor import ImageProcessor
from .services import require_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageFile:
    """An image received from a client"""
    filename: str
    content_type: Optional[str]
    data: bytes


class MediaService:
    """Validates, normalises and uploads hostel images"""

    def __init__(self, cdn: CdnClient, max_files: int = settings.MAX_UPLOAD_FILES):
        self.cdn = cdn
        self.max_files = max_files
        self.image_processor = ImageProcessor()

    async def upload_images(
        self,
        files: List[ImageFile],
        user: UserProfile,
        captions: Optional[List[str]] = None,
    ) -> List[HostelImage]:
        """
        Upload a batch of hostel photos.

        Every file is validated before anything is uploaded. The first image
        of the batch is marked primary.
        """
        require_role(user, UserRole.MANAGER, UserRole.ADMIN)
        if not files:
            raise UploadError("No files provided")
        if len(files) > self.max_files:
            raise UploadError(f"You can upload at most {self.max_files} images at a time")
        for file in files:
            self.image_processor.validate(file.content_type, len(file.data))

        images = []
        for index, file in enumerate(files):
            data, width, height = self.image_processor.normalize(file.data, file.content_type)
            uploaded = await self.cdn.upload(file.filename, data, file.content_type)
            logger.info(f"Uploaded {uploaded.public_id} ({width}x{height}) for {user.id}")
            images.append(HostelImage(
                url=uploaded.url,
                public_id=uploaded.public_id,
                caption=captions[index] if captions and index < len(captions) else None,
                is_primary=index == 0,
                uploaded_at=datetime.now(timezone.utc),
            ))
        return images

    def image_url(self, public_id: str, preset: str = "card") -> str:
        return self.cdn.image_url(public_id, preset)
