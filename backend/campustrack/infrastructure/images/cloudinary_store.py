"""Cloudinary image store - ImageStorePort implementation using the cloudinary SDK.

Item images are uploaded by the API to Cloudinary; the retention engine only
deletes them. Hosted URLs look like:

    https://res.cloudinary.com/<cloud>/image/upload/v1699999999/campustrack/items/abc.jpg

and the deletable public id is the path after /upload/ without the version
segment and file extension (campustrack/items/abc).

Architecture: Hexagonal - Adapter implementation in infrastructure layer
"""

import logging
import re
from typing import List, Optional

import cloudinary.exceptions
import cloudinary.uploader

from ...domain.retention.ports import AssetDeletionResult, ImageStorePort

logger = logging.getLogger(__name__)

PUBLIC_ID_PATTERN = re.compile(r"/upload/(?:v\d+/)?(.+)\.\w+$")

# destroy() answers; "not found" means the asset is already gone
DELETED_RESULTS = {"ok", "not found"}

MISSING_CREDENTIALS = (
    "Cloudinary credentials missing: set CLOUDINARY_CLOUD_NAME, "
    "CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET"
)


class CloudinaryImageStore(ImageStorePort):
    """Deletes hosted images through the Cloudinary upload API.

    Credentials are passed per call instead of through cloudinary.config(),
    so several stores can coexist in one process.
    """

    def __init__(
        self,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        timeout: float = 15.0,
    ):
        self.cloud_name = cloud_name
        self.configured = bool(cloud_name and api_key and api_secret)
        self._credentials = {
            "cloud_name": cloud_name,
            "api_key": api_key,
            "api_secret": api_secret,
        }
        self.timeout = timeout

    def extract_asset_id(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        match = PUBLIC_ID_PATTERN.search(url)
        return match.group(1) if match else None

    def delete_assets(self, asset_ids: List[str]) -> List[AssetDeletionResult]:
        return [self._delete_one(public_id) for public_id in asset_ids]

    def _delete_one(self, public_id: str) -> AssetDeletionResult:
        if not self.configured:
            return AssetDeletionResult(
                asset_id=public_id,
                success=False,
                error=MISSING_CREDENTIALS,
            )

        try:
            response = cloudinary.uploader.destroy(
                public_id,
                invalidate=True,
                timeout=self.timeout,
                **self._credentials,
            )
        except cloudinary.exceptions.Error as e:
            logger.error(f"Cloudinary rejected deletion: public_id={public_id}, error={e}")
            return AssetDeletionResult(asset_id=public_id, success=False, error=str(e))
        except Exception as e:
            # Connection errors and timeouts surface from urllib3
            logger.error(f"Failed to delete Cloudinary image: public_id={public_id}, error={e}")
            return AssetDeletionResult(asset_id=public_id, success=False, error=str(e))

        result = (response or {}).get("result")
        if result not in DELETED_RESULTS:
            return AssetDeletionResult(
                asset_id=public_id,
                success=False,
                error=f"Unexpected Cloudinary response: {result}",
            )

        logger.debug(f"Deleted Cloudinary image: public_id={public_id} ({result})")
        return AssetDeletionResult(asset_id=public_id, success=True)
