from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from papierkraken.config.settings import Settings
from papierkraken.errors import StorageError
from papierkraken.logging.logger import Log
from papierkraken.storage.base import BaseObjectStorage

SSE_ALGORITHM = "aws:kms"


def create_s3_client(settings: Settings) -> Any:
    """Build the boto3 S3 client shared by storage and the access broker."""
    return boto3.client(
        "s3",
        region_name=settings.storage_region,
        endpoint_url=settings.storage_endpoint_url or None,
    )


class S3ObjectStorage(BaseObjectStorage):
    """Stores objects in S3 with SSE-KMS encryption at rest."""

    def __init__(self, client: Any, bucket: str, kms_key_id: str) -> None:
        if not kms_key_id:
            raise ValueError("storage_kms_key_id is required: encryption at rest is mandatory")
        self._client = client
        self._bucket = bucket
        self._kms_key_id = kms_key_id

    @property
    def encryption_params(self) -> dict[str, str]:
        return {
            "ServerSideEncryption": SSE_ALGORITHM,
            "SSEKMSKeyId": self._kms_key_id,
        }

    def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                **self.encryption_params,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to store object {key}: {exc}") from exc
        Log.info(f"Stored {len(data)} bytes at {key}")

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to read object {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete object {key}: {exc}") from exc
        Log.info(f"Deleted object {key}")


def build_object_storage(settings: Settings, client: Any | None = None) -> S3ObjectStorage:
    return S3ObjectStorage(
        client=client if client is not None else create_s3_client(settings),
        bucket=settings.storage_bucket,
        kms_key_id=settings.storage_kms_key_id,
    )
