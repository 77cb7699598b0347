from __future__ import annotations
import io
import structlog
from minio import Minio
from minio.error import S3Error
from challenge_league.config import settings

log = structlog.get_logger()

_client: Minio | None = None

def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure

def client() -> Minio:
    """Create the client and the uploads bucket on first use."""
    global _client
    if _client is None:
        host, secure = _parse_endpoint(settings.s3_endpoint)
        c = Minio(host, access_key=settings.s3_access_key, secret_key=settings.s3_secret_key, secure=secure)
        try:
            if not c.bucket_exists(settings.s3_bucket_uploads):
                c.make_bucket(settings.s3_bucket_uploads)
        except S3Error as e:
            # Concurrent creation by another worker
            if e.code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                raise
        _client = c
    return _client

def response_key(prompt_id: object, user_id: object, token: str, ext: str) -> str:
    return f"responses/{prompt_id}/{user_id}/{token}.{ext}"

def put_bytes(key: str, data: bytes, content_type: str) -> None:
    client().put_object(
        settings.s3_bucket_uploads, key, io.BytesIO(data), length=len(data), content_type=content_type
    )

def get_bytes(key: str) -> tuple[bytes, str]:
    """
    Retrieve object from storage.
    Returns (data, content_type).
    """
    try:
        response = client().get_object(settings.s3_bucket_uploads, key)
        try:
            data = response.read()
            content_type = response.headers.get("Content-Type", "application/octet-stream")
        finally:
            response.close()
            response.release_conn()
        return data, content_type
    except S3Error as e:
        if e.code == "NoSuchKey":
            raise FileNotFoundError(f"Object not found: {key}")
        raise

def delete_object(key: str) -> None:
    """Best-effort removal of a replaced upload."""
    try:
        client().remove_object(settings.s3_bucket_uploads, key)
    except S3Error:
        log.warning("storage.delete_failed", key=key, exc_info=True)
