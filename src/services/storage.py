"""Content-addressed storage for published audio (S3/MinIO or IPFS via Pinata)."""

import hashlib
import json
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Protocol

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.config import get_settings
from src.services.errors import UploadError

logger = logging.getLogger(__name__)


@dataclass
class UploadMetadata:
    """Descriptor sent alongside an uploaded blob."""

    filename: str
    mime_type: str
    duration: float


@dataclass
class UploadResult:
    """Result of a content upload."""

    hash: str
    size: int
    url: str


class ContentStorage(Protocol):
    async def upload(self, blob: bytes, metadata: UploadMetadata) -> UploadResult: ...

    def health_check(self) -> bool: ...


def get_extension(content_type: str) -> str:
    """Get file extension from content type."""
    mapping = {
        "audio/wav": ".wav",
        "audio/x-wav": ".wav",
        "audio/mpeg": ".mp3",
        "audio/mp3": ".mp3",
        "audio/ogg": ".ogg",
        "audio/flac": ".flac",
        "audio/m4a": ".m4a",
        "audio/webm": ".webm",
    }
    base_type = content_type.split(";", 1)[0].strip()
    return mapping.get(base_type, ".mp3")


class S3ContentStorage:
    """
    Object storage (MinIO/S3) addressed by the sha256 of the payload.

    Identical payloads land on the same key, so repeated uploads are
    idempotent.
    """

    def __init__(self):
        settings = get_settings()
        self._settings = settings
        self._client = None
        self._bucket = settings.minio_bucket

    @property
    def client(self):
        """Lazy initialization of S3 client."""
        if self._client is None:
            settings = self._settings
            endpoint_url = f"{'https' if settings.minio_use_ssl else 'http'}://{settings.minio_endpoint}"
            self._client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=settings.minio_access_key,
                aws_secret_access_key=settings.minio_secret_key,
                config=Config(signature_version="s3v4"),
            )
            self._ensure_bucket()
        return self._client

    def _ensure_bucket(self):
        """Create bucket if it doesn't exist."""
        try:
            self.client.head_bucket(Bucket=self._bucket)
        except ClientError:
            self.client.create_bucket(Bucket=self._bucket)

    def _generate_path(self, content_hash: str, mime_type: str) -> str:
        return f"audio/{content_hash[:2]}/{content_hash}{get_extension(mime_type)}"

    async def upload(self, blob: bytes, metadata: UploadMetadata) -> UploadResult:
        content_hash = hashlib.sha256(blob).hexdigest()
        path = self._generate_path(content_hash, metadata.mime_type)

        try:
            self.client.upload_fileobj(
                BytesIO(blob),
                self._bucket,
                path,
                ExtraArgs={
                    "ContentType": metadata.mime_type,
                    "Metadata": {
                        "filename": metadata.filename,
                        "duration": str(metadata.duration),
                    },
                },
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload of {metadata.filename} failed: {e}")
            raise UploadError(f"Storage upload failed: {e}") from e

        return UploadResult(hash=content_hash, size=len(blob), url=self.generate_presigned_url(path))

    def generate_presigned_url(self, storage_path: str, expires_in: int = 3600) -> str:
        """Generate a presigned URL for downloading a file."""
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": storage_path},
            ExpiresIn=expires_in,
        )

    def health_check(self) -> bool:
        """Check if storage is accessible."""
        try:
            self.client.head_bucket(Bucket=self._bucket)
            return True
        except (BotoCoreError, ClientError):
            return False


class PinataContentStorage:
    """IPFS pinning through the Pinata API. The returned hash is the CID."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        settings = get_settings()
        self._api_url = settings.pinata_api_url.rstrip("/")
        self._gateway = settings.ipfs_gateway_url
        self._jwt = settings.pinata_jwt
        self._timeout = settings.http_timeout_seconds
        self._client = client

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._jwt}"}

    async def _post(self, path: str, **kwargs) -> httpx.Response:
        url = f"{self._api_url}{path}"
        if self._client is not None:
            return await self._client.post(url, headers=self._headers(), **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, headers=self._headers(), **kwargs)

    async def upload(self, blob: bytes, metadata: UploadMetadata) -> UploadResult:
        pinata_metadata = {
            "name": metadata.filename,
            "keyvalues": {
                "mimeType": metadata.mime_type,
                "duration": str(metadata.duration),
            },
        }
        files = {"file": (metadata.filename, blob, metadata.mime_type)}
        data = {"pinataMetadata": json.dumps(pinata_metadata)}

        try:
            response = await self._post("/pinning/pinFileToIPFS", files=files, data=data)
            response.raise_for_status()
            cid = response.json()["IpfsHash"]
        except httpx.HTTPStatusError as e:
            logger.error(f"Pinata upload of {metadata.filename} failed: {e.response.status_code}")
            raise UploadError(f"IPFS upload failed with status {e.response.status_code}") from e
        except (httpx.RequestError, KeyError, ValueError) as e:
            logger.error(f"Pinata upload of {metadata.filename} failed: {e}")
            raise UploadError(f"IPFS upload failed: {e}") from e

        return UploadResult(hash=cid, size=len(blob), url=f"{self._gateway}{cid}")

    def health_check(self) -> bool:
        try:
            response = httpx.get(
                f"{self._api_url}/data/testAuthentication",
                headers=self._headers(),
                timeout=10,
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False


def create_content_storage() -> ContentStorage:
    """Build the storage provider selected by configuration."""
    if get_settings().storage_provider == "pinata":
        return PinataContentStorage()
    return S3ContentStorage()
