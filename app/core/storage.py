"""Artifact storage for rendered invoice PDFs (local disk or S3)."""

import logging
import re
from functools import lru_cache
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class ArtifactNotFound(Exception):
    """Stored artifact is missing."""


class ArtifactStorage:
    """
    Minimal blob store interface. Calls are blocking; async callers run them
    in a thread.
    """

    def save(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        raise NotImplementedError

    def load(self, key: str) -> bytes:
        raise NotImplementedError


class LocalArtifactStorage(ArtifactStorage):
    """Stores artifacts below a base directory on the local filesystem."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir).resolve()

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key.lstrip("/")).resolve()
        if self.base_dir not in path.parents:
            raise ValueError(f"Artifact key escapes storage directory: {key!r}")
        return path

    def save(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        return key

    def load(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise ArtifactNotFound(key)
        return path.read_bytes()


class S3ArtifactStorage(ArtifactStorage):
    """Stores artifacts as private objects in the configured S3 bucket."""

    def __init__(self, bucket: str, client=None):
        self.bucket = self._validated_bucket_name(bucket)
        self.client = client or self._create_client()

    @staticmethod
    def _create_client():
        settings = get_settings()
        return boto3.client(
            "s3",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
            region_name=settings.AWS_REGION,
            config=boto3.session.Config(s3={"addressing_style": "path"}),
        )

    @staticmethod
    def _validated_bucket_name(bucket: str) -> str:
        bucket = (bucket or "").strip()
        # Fail at startup instead of boto3 raising a cryptic "Invalid bucket name" later.
        if not bucket:
            raise ValueError("AWS_S3_BUCKET is not configured.")
        if not re.fullmatch(r"[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]", bucket):
            raise ValueError(f"Invalid AWS_S3_BUCKET value '{bucket}'.")
        return bucket

    def save(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error(f"Error uploading artifact to S3: {e}")
            raise
        return key

    def load(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in {"NoSuchKey", "404"}:
                raise ArtifactNotFound(key) from e
            logger.error(f"Error downloading artifact from S3: {e}")
            raise
        return response["Body"].read()


@lru_cache
def get_artifact_storage() -> ArtifactStorage:
    """Storage backend selected by ARTIFACT_STORAGE."""
    settings = get_settings()
    backend = (settings.ARTIFACT_STORAGE or "local").strip().lower()
    if backend == "s3":
        return S3ArtifactStorage(settings.AWS_S3_BUCKET)
    if backend == "local":
        return LocalArtifactStorage(settings.ARTIFACT_LOCAL_DIR)
    raise ValueError(f"Unsupported ARTIFACT_STORAGE '{settings.ARTIFACT_STORAGE}'.")
