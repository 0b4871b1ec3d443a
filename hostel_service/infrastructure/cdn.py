"""
Media CDN client: unsigned uploads and transformation URLs
"""
import logging
import re
from typing import Dict, List, Optional

import httpx

from ..config import settings
from ..domain.models import UploadedImage
from ..errors import UploadError

logger = logging.getLogger(__name__)

AUTO_DELIVERY = "q_auto,f_auto"

# Named delivery transformations
IMAGE_PRESETS: Dict[str, str] = {
    "thumbnail": "c_thumb,w_150,h_150,g_auto",
    "card": "c_fill,w_400,h_300,g_auto",
    "detail": "c_fill,w_800,h_600,g_auto",
    "full": "c_scale,w_1080",
    "avatar": "c_thumb,w_100,h_100,g_auto",
}

BLUR_TRANSFORMATION = "c_scale,w_20/q_auto:low,f_auto"

PUBLIC_ID_PATTERN = re.compile(r"/v\d+/(.+?)\.(jpg|jpeg|png|gif|webp)")


def extract_public_id(url: str) -> Optional[str]:
    """Public id embedded in a versioned delivery URL"""
    match = PUBLIC_ID_PATTERN.search(url)
    return match.group(1) if match else None


class CdnClient:
    """HTTP client for the media CDN"""

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        upload_preset: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cloud_name = cloud_name if cloud_name is not None else settings.CDN_CLOUD_NAME
        self.upload_preset = upload_preset if upload_preset is not None else settings.CDN_UPLOAD_PRESET
        self.timeout = httpx.Timeout(60.0, connect=5.0)
        self.transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    async def start(self):
        self.client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        logger.info("CDN client initialized")

    async def stop(self):
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("CDN client closed")

    def image_url(self, public_id: str, preset: str = "card") -> str:
        if preset == "blur":
            transformation = BLUR_TRANSFORMATION
        else:
            try:
                transformation = f"{IMAGE_PRESETS[preset]}/{AUTO_DELIVERY}"
            except KeyError:
                raise ValueError(f"Unknown image preset: {preset}")
        return f"{settings.CDN_DELIVERY_URL}/{self.cloud_name}/image/upload/{transformation}/{public_id}"

    async def upload(
        self,
        filename: str,
        data: bytes,
        content_type: str,
        folder: str = settings.CDN_FOLDER,
        tags: Optional[List[str]] = None,
    ) -> UploadedImage:
        """Unsigned upload with the configured preset"""
        if not self.client:
            raise UploadError("CDN client not initialized")
        url = f"{settings.CDN_UPLOAD_URL}/{self.cloud_name}/image/upload"
        form = {
            "upload_preset": self.upload_preset,
            "folder": folder,
            "tags": ",".join(list(settings.CDN_TAGS) + list(tags or [])),
        }
        try:
            response = await self.client.post(
                url,
                data=form,
                files={"file": (filename, data, content_type)},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"CDN upload rejected with {e.response.status_code}")
            raise UploadError("Upload failed")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"CDN upload failed: {e}")
            raise UploadError("Upload failed")

        return UploadedImage(
            public_id=body["public_id"],
            url=body["secure_url"],
            width=body.get("width"),
            height=body.get("height"),
            bytes=body.get("bytes"),
            format=body.get("format"),
        )
