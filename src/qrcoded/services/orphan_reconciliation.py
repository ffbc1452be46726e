# src/qrcoded/services/orphan_reconciliation.py

"""
Out-of-band cleanup for orphaned uploads.

An orphaned upload is an image in S3 whose code id has no qr_codes row,
left behind when a job's persist and compensating delete both failed.
Objects younger than `min_age_seconds` are skipped because their job may
still be persisting.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

from sqlalchemy.orm import Session

from qrcoded.errors import UploadError
from qrcoded.repositories.qr_code_repository import QRCodeRepository
from qrcoded.services import s3
from qrcoded.services.generation_worker import S3_KEY_PREFIX, code_id_from_key

logger = logging.getLogger(__name__)

DEFAULT_MIN_AGE_SECONDS = 3600
BATCH_SIZE = 500


def find_orphaned_keys(
    db: Session,
    objects: List[Dict[str, Any]],
    *,
    min_age_seconds: int = DEFAULT_MIN_AGE_SECONDS,
    now: datetime | None = None,
) -> List[str]:
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=min_age_seconds)

    candidates: Dict[str, str] = {}
    for obj in objects:
        last_modified = obj.get("last_modified")
        if last_modified is not None and last_modified > cutoff:
            continue
        code_id = code_id_from_key(obj["key"])
        if code_id:
            candidates[code_id] = obj["key"]

    ids = list(candidates)
    existing = set()
    for start in range(0, len(ids), BATCH_SIZE):
        existing |= QRCodeRepository.existing_ids(db, ids[start:start + BATCH_SIZE])

    return sorted(key for code_id, key in candidates.items() if code_id not in existing)


def reconcile_orphaned_uploads(
    db: Session,
    *,
    delete: bool = False,
    prefix: str = S3_KEY_PREFIX,
    min_age_seconds: int = DEFAULT_MIN_AGE_SECONDS,
    list_objects: Callable[[str], List[Dict[str, Any]]] = s3.list_objects,
    delete_object: Callable[[str], None] = s3.delete_object,
) -> Dict[str, Any]:
    """
    Find (and with delete=True remove) orphaned images under `prefix`.

    Returns {"scanned", "orphaned", "deleted", "errors", "keys"}.
    """
    objects = list_objects(prefix.strip("/") + "/")
    orphaned = find_orphaned_keys(db, objects, min_age_seconds=min_age_seconds)

    deleted = 0
    errors = 0
    for key in orphaned:
        if not delete:
            logger.info("Orphaned upload (dry run): %s", key)
            continue
        try:
            delete_object(key)
            deleted += 1
        except UploadError as exc:
            errors += 1
            logger.error("Failed to delete orphaned upload %s: %s", key, exc)

    logger.info(
        "Reconciliation scanned=%d orphaned=%d deleted=%d errors=%d",
        len(objects),
        len(orphaned),
        deleted,
        errors,
    )
    return {
        "scanned": len(objects),
        "orphaned": len(orphaned),
        "deleted": deleted,
        "errors": errors,
        "keys": orphaned,
    }
