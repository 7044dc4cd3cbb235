"""Image store adapters (Cloudinary, S3) for purging hosted item images"""

from ...config import Settings
from ...domain.retention.ports import ImageStorePort
from .cloudinary_store import CloudinaryImageStore
from .errors import ImageStoreError
from .s3_store import S3ImageStore


def build_image_store(settings: Settings) -> ImageStorePort:
    """Create the image store selected by IMAGE_STORE_BACKEND.

    Raises:
        ImageStoreError: If the selected backend is missing credentials
    """
    timeout = settings.EXTERNAL_CALL_TIMEOUT_SECONDS

    if settings.IMAGE_STORE_BACKEND == "s3":
        return S3ImageStore(
            endpoint_url=settings.S3_ENDPOINT_URL,
            access_key=settings.S3_ACCESS_KEY_ID,
            secret_key=settings.S3_SECRET_ACCESS_KEY,
            bucket_name=settings.S3_BUCKET_NAME,
            region=settings.S3_REGION,
            timeout=timeout,
        )

    return CloudinaryImageStore(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        timeout=timeout,
    )


__all__ = [
    "build_image_store",
    "CloudinaryImageStore",
    "ImageStoreError",
    "S3ImageStore",
]
