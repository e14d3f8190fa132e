"""S3 storage backend for task artifacts."""

import asyncio
from typing import Any, List, Optional

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from . import ArtifactBackend, ArtifactNotFoundError, StorageReadError, StorageWriteError

logger = structlog.get_logger()

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3Backend(ArtifactBackend):
    """S3 storage backend implementation."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client: Any = None,
    ):
        """Initialize S3 backend."""
        self.bucket = bucket
        self.prefix = prefix.strip("/")

        self.s3_client = client or boto3.client(
            's3',
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

        logger.info(
            "Initialized S3 artifact backend",
            bucket=self.bucket,
            prefix=self.prefix,
            region=region
        )

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _strip_prefix(self, object_key: str) -> str:
        if self.prefix and object_key.startswith(self.prefix + "/"):
            return object_key[len(self.prefix) + 1:]
        return object_key

    async def read(self, key: str) -> bytes:
        """Read an artifact object from S3."""
        try:
            response = await asyncio.to_thread(
                self.s3_client.get_object,
                Bucket=self.bucket,
                Key=self._object_key(key),
            )
            data = await asyncio.to_thread(response['Body'].read)

        except ClientError as e:
            if e.response['Error']['Code'] in _MISSING_CODES:
                raise ArtifactNotFoundError(key)
            logger.error("Failed to read artifact from S3", key=key, error=str(e))
            raise StorageReadError(f"Failed to read artifact {key} from S3: {e}") from e
        except BotoCoreError as e:
            logger.error("Failed to read artifact from S3", key=key, error=str(e))
            raise StorageReadError(f"Failed to read artifact {key} from S3: {e}") from e

        logger.debug("Read artifact from S3", bucket=self.bucket, key=key, size=len(data))
        return data

    async def write(self, key: str, data: bytes) -> None:
        """Upload an artifact object to S3."""
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=self._object_key(key),
                Body=data,
            )

        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to write artifact to S3", key=key, error=str(e))
            raise StorageWriteError(f"Failed to write artifact {key} to S3: {e}")

        logger.debug("Stored artifact in S3", bucket=self.bucket, key=key, size=len(data))

    async def delete(self, key: str) -> None:
        """Delete an artifact object from S3."""
        try:
            await asyncio.to_thread(
                self.s3_client.delete_object,
                Bucket=self.bucket,
                Key=self._object_key(key),
            )

        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to delete artifact from S3", key=key, error=str(e))
            raise StorageWriteError(f"Failed to delete artifact {key} from S3: {e}")

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(
                self.s3_client.head_object,
                Bucket=self.bucket,
                Key=self._object_key(key),
            )
            return True
        except ClientError as e:
            if e.response['Error']['Code'] in _MISSING_CODES:
                return False
            logger.error("Failed to check artifact in S3", key=key, error=str(e))
            raise StorageReadError(f"Failed to check artifact {key} in S3: {e}") from e
        except BotoCoreError as e:
            logger.error("Failed to check artifact in S3", key=key, error=str(e))
            raise StorageReadError(f"Failed to check artifact {key} in S3: {e}") from e

    async def list_keys(self, prefix: str) -> List[str]:
        """List artifact keys with the given prefix."""
        paginator = self.s3_client.get_paginator('list_objects_v2')

        def _collect() -> List[str]:
            keys = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self._object_key(prefix)):
                for item in page.get('Contents', []):
                    keys.append(self._strip_prefix(item['Key']))
            return keys

        try:
            keys = await asyncio.to_thread(_collect)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to list artifacts in S3", prefix=prefix, error=str(e))
            raise StorageReadError(f"Failed to list artifacts under {prefix} in S3: {e}") from e
        return sorted(keys)
