"""Signed, time-bounded references to storage objects and per-owner key isolation.

Storage keys have the shape::

    {owner_namespace}/{owner_id}/{category}/{timestamp}-{random}{.ext}

so that authorization of any client-declared key reduces to a prefix check.
"""

import mimetypes
import re
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import PurePosixPath
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from papierkraken.config.settings import Settings
from papierkraken.errors import AuthError, StorageError
from papierkraken.logging.logger import Log
from papierkraken.storage.s3_adapter import SSE_ALGORITHM

DEFAULT_CATEGORY_NAMESPACE = "documents"

_SEGMENT_RE = re.compile(r"[^a-z0-9_-]+")
_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,10}$")


@dataclass(frozen=True)
class SignedReference:
    """A capability to read or write one object until ``expires_at``."""

    url: str
    method: str
    storage_key: str
    expires_at: datetime
    headers: dict[str, str] = field(default_factory=dict)


class AccessBroker:
    """Issues presigned upload/download references and checks key ownership."""

    def __init__(
        self,
        client: Any,
        *,
        bucket: str,
        owner_namespace: str,
        kms_key_id: str,
        ttl_seconds: int = 300,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._namespace = owner_namespace.strip("/")
        self._kms_key_id = kms_key_id
        self._ttl_seconds = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def owner_prefix(self, owner_id: int) -> str:
        return f"{self._namespace}/{owner_id}/"

    def generate_key(
        self,
        owner_id: int,
        category: str | None,
        original_name: str,
        mime_type: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Build a fresh, collision-resistant key. Every call yields a new key."""
        moment = now or datetime.now(UTC)
        timestamp = int(moment.timestamp() * 1000)
        token = secrets.token_hex(8)
        extension = _extension_for(original_name, mime_type)
        return (
            f"{self.owner_prefix(owner_id)}{category_namespace(category)}/"
            f"{timestamp}-{token}{extension}"
        )

    def verify_ownership(self, owner_id: int, key: str) -> bool:
        """True only if ``key`` lies inside ``owner_id``'s namespace."""
        prefix = self.owner_prefix(owner_id)
        if not key.startswith(prefix):
            return False
        remainder = key[len(prefix):].split("/")
        if len(remainder) != 2:
            return False
        return all(part and part not in {".", ".."} for part in remainder)

    def issue_upload_reference(
        self,
        owner_id: int,
        key: str,
        content_type: str,
    ) -> SignedReference:
        """Presign a PUT for ``key``. The client must send the returned headers verbatim.

        Raises:
            AuthError: if ``key`` is outside the owner's namespace.
            StorageError: if presigning fails.
        """
        if not self.verify_ownership(owner_id, key):
            raise AuthError(
                f"Storage key is outside the namespace of owner {owner_id}",
                status_code=403,
            )
        params = {
            "Bucket": self._bucket,
            "Key": key,
            "ContentType": content_type,
            "ServerSideEncryption": SSE_ALGORITHM,
            "SSEKMSKeyId": self._kms_key_id,
        }
        url = self._presign("put_object", params)
        Log.info(f"Issued upload reference for {key} (owner {owner_id})")
        return SignedReference(
            url=url,
            method="PUT",
            storage_key=key,
            expires_at=self._expiry(),
            headers={
                "Content-Type": content_type,
                "x-amz-server-side-encryption": SSE_ALGORITHM,
                "x-amz-server-side-encryption-aws-kms-key-id": self._kms_key_id,
            },
        )

    def issue_download_reference(self, key: str) -> SignedReference:
        url = self._presign("get_object", {"Bucket": self._bucket, "Key": key})
        return SignedReference(
            url=url,
            method="GET",
            storage_key=key,
            expires_at=self._expiry(),
        )

    def _presign(self, operation: str, params: dict[str, str]) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod=operation,
                Params=params,
                ExpiresIn=self._ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to sign {operation} for {params['Key']}: {exc}") from exc

    def _expiry(self) -> datetime:
        return datetime.now(UTC) + timedelta(seconds=self._ttl_seconds)


def category_namespace(category: str | None) -> str:
    """Lowercase, path-safe category segment; falls back to ``documents``."""
    if not category:
        return DEFAULT_CATEGORY_NAMESPACE
    cleaned = _SEGMENT_RE.sub("", category.strip().lower())
    return cleaned or DEFAULT_CATEGORY_NAMESPACE


def _extension_for(original_name: str, mime_type: str | None) -> str:
    suffix = PurePosixPath(original_name.replace("\\", "/")).suffix.lower()
    if _EXTENSION_RE.match(suffix):
        return suffix
    if mime_type:
        guessed = mimetypes.guess_extension(mime_type)
        if guessed and _EXTENSION_RE.match(guessed):
            return guessed
    return ""


def build_access_broker(settings: Settings, client: Any) -> AccessBroker:
    return AccessBroker(
        client,
        bucket=settings.storage_bucket,
        owner_namespace=settings.storage_prefix,
        kms_key_id=settings.storage_kms_key_id,
        ttl_seconds=settings.signed_reference_ttl_seconds,
    )
