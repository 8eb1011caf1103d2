import asyncio
import hashlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import structlog

logger = structlog.stdlib.get_logger(__name__)

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/svg+xml": "svg",
}


def build_object_key(prefix: str, data: bytes, content_type: Optional[str]) -> str:
    """
    Content-addressed keys: <prefix>/<sha[:2]>/<sha>.<ext>
    """
    sha256 = hashlib.sha256(data).hexdigest()
    ext = _EXTENSIONS.get(content_type or "", "bin")
    parts = [p for p in prefix.strip("/").split("/") if p]
    parts.append(sha256[:2])
    return "/".join(parts + [f"{sha256}.{ext}"])


class ObjectStorage(ABC):
    @abstractmethod
    async def upload_bytes(
        self, key: str, data: bytes, content_type: Optional[str] = None
    ) -> str:
        """Store the object and return the path that is saved on the entity."""


class LocalObjectStorage(ObjectStorage):
    """Writes objects below a directory. Meant for development and tests."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    async def upload_bytes(
        self, key: str, data: bytes, content_type: Optional[str] = None
    ) -> str:
        target = self.root / key
        await asyncio.to_thread(self._write, target, data)
        logger.debug("Stored object on disk", key=key, size=len(data))
        return key

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


class S3ObjectStorage(ObjectStorage):
    def __init__(self, s3_client: Any, bucket: str):
        self.client = s3_client
        self.bucket = bucket

    async def upload_bytes(
        self, key: str, data: bytes, content_type: Optional[str] = None
    ) -> str:
        kwargs = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
        }
        if content_type:
            kwargs["ContentType"] = content_type
        # boto3 is blocking
        await asyncio.to_thread(self.client.put_object, **kwargs)
        logger.info("Uploaded object", bucket=self.bucket, key=key, size=len(data))
        return f"s3://{self.bucket}/{key}"
