"""
Image validation and normalisation before upload
"""
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import settings
from ..errors import UploadError

TYPE_ERROR = "Please upload a JPEG, PNG, WebP, or HEIC image"
EXIF_ORIENTATION = 0x0112

# Pillow format name per accepted content type; HEIC is passed through undecoded
PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}


class ImageProcessor:
    """Image checks and resizing"""

    @staticmethod
    def validate(content_type: Optional[str], size: int) -> None:
        """Accepted type and at most MAX_IMAGE_SIZE_MB"""
        if content_type not in settings.ALLOWED_IMAGE_TYPES:
            raise UploadError(TYPE_ERROR)
        if size > settings.MAX_IMAGE_SIZE_MB * 1024 * 1024:
            raise UploadError(f"Image must be less than {settings.MAX_IMAGE_SIZE_MB}MB")

    @staticmethod
    def fix_image_orientation(image: Image.Image) -> Image.Image:
        """Apply the EXIF orientation tag to the pixels"""
        return ImageOps.exif_transpose(image)

    @staticmethod
    def normalize(
        data: bytes,
        content_type: str,
        max_dimension: int = settings.MAX_IMAGE_DIMENSION,
    ) -> Tuple[bytes, Optional[int], Optional[int]]:
        """
        Decode, orient and shrink an image so neither edge exceeds
        ``max_dimension``.

        Returns:
            (bytes, width, height); width/height are None for formats that
            are passed through without decoding
        """
        pil_format = PIL_FORMATS.get(content_type)
        if pil_format is None:
            return data, None, None
        try:
            image = Image.open(BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise UploadError(f"Could not read image: {e}")

        changed = image.getexif().get(EXIF_ORIENTATION, 1) != 1
        if changed:
            image = ImageProcessor.fix_image_orientation(image)
        if max(image.size) > max_dimension:
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            changed = True
        if not changed:
            return data, image.width, image.height

        if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        output = BytesIO()
        save_kwargs = {"quality": 90, "optimize": True} if pil_format in ("JPEG", "WEBP") else {}
        image.save(output, format=pil_format, **save_kwargs)
        return output.getvalue(), image.width, image.height
