"""S3 image store - ImageStorePort implementation using boto3.

For deployments that host item images in an S3-compatible bucket (AWS S3,
MinIO) instead of Cloudinary. Both virtual-hosted and path-style URLs are
recognised:

    https://<bucket>.s3.<region>.amazonaws.com/items/abc.jpg
    http://minio:9000/<bucket>/items/abc.jpg

Architecture: Hexagonal - Adapter implementation in infrastructure layer
"""

import logging
from typing import List, Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ...domain.retention.ports import AssetDeletionResult, ImageStorePort
from .errors import ImageStoreError

logger = logging.getLogger(__name__)


class S3ImageStore(ImageStorePort):
    """S3-compatible image store.

    Example:
        store = S3ImageStore(
            endpoint_url=settings.S3_ENDPOINT_URL,
            access_key=settings.S3_ACCESS_KEY_ID,
            secret_key=settings.S3_SECRET_ACCESS_KEY,
            bucket_name=settings.S3_BUCKET_NAME,
            region=settings.S3_REGION,
        )
        results = store.delete_assets(["items/abc.jpg"])
    """

    def __init__(
        self,
        endpoint_url: Optional[str],
        access_key: Optional[str],
        secret_key: Optional[str],
        bucket_name: str,
        region: str = "us-east-1",
        timeout: float = 15.0,
    ):
        """Initialize S3 image store.

        Args:
            endpoint_url: S3 endpoint URL (None for AWS S3, URL for MinIO)
            access_key: S3 access key ID
            secret_key: S3 secret access key
            bucket_name: Bucket holding item images
            region: AWS region (default: 'us-east-1')
            timeout: Connect/read timeout per request in seconds

        Raises:
            ImageStoreError: If S3 client initialization fails
        """
        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
                config=Config(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 2},
                ),
            )
        except NoCredentialsError as e:
            raise ImageStoreError(f"Invalid S3 credentials: {e}")
        except Exception as e:
            raise ImageStoreError(f"Failed to initialize S3 client: {e}")

        self.bucket_name = bucket_name
        self.region = region

        logger.info(
            f"Initialized S3 image store: bucket={bucket_name}, "
            f"endpoint={endpoint_url or 'AWS S3'}, region={region}"
        )

    def extract_asset_id(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None

        parsed = urlparse(url)
        path = unquote(parsed.path)
        host = parsed.hostname or ""

        if host.startswith(f"{self.bucket_name}."):
            key = path.lstrip("/")
        elif path.startswith(f"/{self.bucket_name}/"):
            key = path[len(self.bucket_name) + 2:]
        else:
            return None

        return key or None

    def delete_assets(self, asset_ids: List[str]) -> List[AssetDeletionResult]:
        return [self._delete_one(key) for key in asset_ids]

    def _delete_one(self, key: str) -> AssetDeletionResult:
        # delete_object succeeds for keys that do not exist
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"S3 deletion failed: key={key}, error={error_code}")
            return AssetDeletionResult(asset_id=key, success=False, error=error_code)
        except BotoCoreError as e:
            logger.error(f"S3 deletion failed: key={key}, error={e}")
            return AssetDeletionResult(asset_id=key, success=False, error=str(e))

        logger.debug(f"Deleted S3 image: key={key}")
        return AssetDeletionResult(asset_id=key, success=True)
