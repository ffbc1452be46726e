# src/qrcoded/services/s3.py
import os
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from typing import Any, Dict, List
import logging
from opentelemetry import trace

from qrcoded.errors import UploadError

AWS_REGION = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1"
AWS_BUCKET = os.getenv("AWS_S3_BUCKET")  # must be set
S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL")
UPLOAD_TIMEOUT_SECONDS = float(os.getenv("S3_UPLOAD_TIMEOUT_SECONDS", "10"))

# A hung put_object must not hold a worker forever; retries are owned by
# the generation worker, so botocore gets a single attempt.
_s3_client = boto3.client(
    "s3",
    region_name=AWS_REGION,
    config=Config(
        connect_timeout=UPLOAD_TIMEOUT_SECONDS,
        read_timeout=UPLOAD_TIMEOUT_SECONDS,
        retries={"total_max_attempts": 1, "mode": "standard"},
    ),
    # boto3 will pick credentials from env, ~/.aws, or IAM role
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def public_url_for(key: str) -> str:
    if S3_PUBLIC_BASE_URL:
        return f"{S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
    return f"https://{AWS_BUCKET}.s3.{AWS_REGION}.amazonaws.com/{key}"


def upload_png(key: str, data: bytes) -> str:
    """
    Upload a PNG image to S3 and return its public URL.
    Raises UploadError when the bucket is unset or S3 rejects/times out.
    """
    if not AWS_BUCKET:
        raise UploadError("AWS_S3_BUCKET is not set in environment variables")
    if not data:
        raise UploadError(f"Refusing to upload empty image for key={key}")

    try:
        with tracer.start_as_current_span("s3.upload") as span:
            span.set_attribute("s3.key", key)
            span.set_attribute("file.size", len(data))
            logger.info("Uploading to S3: %s", key)
            _s3_client.put_object(
                Bucket=AWS_BUCKET,
                Key=key,
                Body=data,
                ContentType="image/png",
            )
    except (ClientError, BotoCoreError) as exc:
        logger.error("S3 upload failed for key=%s: %s", key, exc)
        raise UploadError(f"S3 upload failed for key={key}: {exc}") from exc

    return public_url_for(key)


def delete_object(key: str) -> None:
    """Remove a single object, used to compensate a failed persist."""
    if not AWS_BUCKET:
        raise UploadError("AWS_S3_BUCKET is not set in environment variables")

    try:
        with tracer.start_as_current_span("s3.delete") as span:
            span.set_attribute("s3.key", key)
            logger.info("Deleting from S3: %s", key)
            _s3_client.delete_object(Bucket=AWS_BUCKET, Key=key)
    except (ClientError, BotoCoreError) as exc:
        logger.error("S3 delete failed for key=%s: %s", key, exc)
        raise UploadError(f"S3 delete failed for key={key}: {exc}") from exc


def list_objects(prefix: str) -> List[Dict[str, Any]]:
    """
    List every object under a prefix as {"key", "last_modified"} dicts.
    """
    if not AWS_BUCKET:
        raise UploadError("AWS_S3_BUCKET is not set in environment variables")

    objects: List[Dict[str, Any]] = []
    try:
        with tracer.start_as_current_span("s3.list") as span:
            span.set_attribute("s3.prefix", prefix)
            paginator = _s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=AWS_BUCKET, Prefix=prefix):
                for obj in page.get("Contents", []):
                    objects.append({"key": obj["Key"], "last_modified": obj.get("LastModified")})
    except (ClientError, BotoCoreError) as exc:
        logger.error("S3 list failed for prefix=%s: %s", prefix, exc)
        raise UploadError(f"S3 list failed for prefix={prefix}: {exc}") from exc

    return objects
