from urllib.parse import urlparse

import cloudinary
import cloudinary.uploader
import structlog

from errors import AppError
from settings import Settings

logger = structlog.get_logger(__name__)

PLACEHOLDER_URL = "https://via.placeholder.com/400x400?text=Image+Not+Available"
MAX_IMAGE_BYTES = 5 * 1024 * 1024
UPLOAD_FOLDER = "store-products"


class ImageUploader:
    def __init__(self, settings: Settings):
        self.settings = settings
        if settings.cloudinary_url:
            # cloudinary://<api_key>:<api_secret>@<cloud_name>
            parsed = urlparse(settings.cloudinary_url)
            cloudinary.config(cloud_name=parsed.hostname, api_key=parsed.username, api_secret=parsed.password)
        elif settings.cloudinary_configured:
            cloudinary.config(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
            )

    def upload(self, content: bytes, content_type: str) -> dict:
        if not content:
            raise AppError("No image provided", 400)
        if not (content_type or "").startswith("image/"):
            raise AppError("Only images are allowed", 400)
        if len(content) > MAX_IMAGE_BYTES:
            raise AppError("Image exceeds the 5MB limit", 413)

        if not self.settings.cloudinary_configured:
            logger.warning("upload.cloudinary_not_configured")
            return {"url": PLACEHOLDER_URL, "message": "Image host not configured, using placeholder"}

        result = cloudinary.uploader.upload(
            content,
            folder=UPLOAD_FOLDER,
            transformation=[{"width": 800, "height": 800, "crop": "limit"}, {"quality": "auto"}],
        )
        return {"url": result["secure_url"]}
