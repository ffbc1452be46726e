# src/qrcoded/repositories/qr_code_repository.py

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set, Tuple

from opentelemetry import trace
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from qrcoded.errors import DuplicateCodeError, PersistenceError
from qrcoded.models.base_model import utcnow
from qrcoded.models.qr_code import QRCode

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_PAGE_LIMIT = 100


def normalize_pagination(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """
    Coerce page/limit into safe values.

    Missing or non-positive values fall back to the defaults; limit is
    capped so a single request can never scan the whole table.
    """
    page = page if page and page > 0 else DEFAULT_PAGE
    limit = limit if limit and limit > 0 else DEFAULT_LIMIT
    return page, min(limit, MAX_PAGE_LIMIT)


class QRCodeRepository:

    @staticmethod
    def create(db: Session, *, code_id: str, image_url: str) -> QRCode:
        if not code_id:
            raise PersistenceError("Refusing to persist a QR code without an id")
        if not image_url:
            raise PersistenceError(
                "Refusing to persist a QR code without an image URL", code_id=code_id
            )

        with tracer.start_as_current_span("db.create_qr_code") as span:
            span.set_attribute("qr.id", code_id)

            try:
                if db.get(QRCode, code_id) is not None:
                    raise DuplicateCodeError(
                        f"QR code id already exists: {code_id}", code_id=code_id
                    )

                qr_code = QRCode(id=code_id, image_url=image_url)
                db.add(qr_code)
                db.commit()
                db.refresh(qr_code)
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Failed to persist QR code id=%s: %s", code_id, exc)
                raise PersistenceError(
                    f"Failed to persist QR code {code_id}: {exc}", code_id=code_id
                ) from exc

        logger.info("Created QR code id=%s", code_id)
        return qr_code

    @staticmethod
    def get_by_id(db: Session, code_id: str) -> QRCode | None:
        with tracer.start_as_current_span("db.get_qr_code") as span:
            span.set_attribute("qr.id", code_id)
            result = db.query(QRCode).filter(QRCode.id == code_id).first()

        logger.debug("Fetched QR code id=%s -> %s", code_id, getattr(result, "id", None))
        return result

    @staticmethod
    def list_page(
        db: Session, page: Optional[int] = None, limit: Optional[int] = None
    ) -> Tuple[List[QRCode], int]:
        page, limit = normalize_pagination(page, limit)
        offset = (page - 1) * limit

        with tracer.start_as_current_span("db.list_qr_codes") as span:
            span.set_attribute("page", page)
            span.set_attribute("limit", limit)

            items = (
                db.query(QRCode)
                .order_by(QRCode.created_at.asc(), QRCode.id.asc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            total = db.query(QRCode).count()

        logger.debug("Listed %d QR codes page=%s limit=%s total=%s", len(items), page, limit, total)
        return items, total

    @staticmethod
    def activate(
        db: Session,
        code_id: str,
        *,
        first_name: str,
        last_name: str,
        account_number: str,
    ) -> bool:
        """
        Bind identity fields to an unactivated code.

        One conditional UPDATE guarded on is_activated, so of two concurrent
        calls for the same id at most one changes a row. Returns True when
        this call performed the transition.
        """
        with tracer.start_as_current_span("db.activate_qr_code") as span:
            span.set_attribute("qr.id", code_id)

            stmt = (
                update(QRCode)
                .where(QRCode.id == code_id, QRCode.is_activated.is_(False))
                .values(
                    is_activated=True,
                    first_name=first_name,
                    last_name=last_name,
                    account_number=account_number,
                    activated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            result = db.execute(stmt)
            db.commit()
            changed = result.rowcount == 1
            span.set_attribute("qr.activated", changed)

        logger.info("Activation update for QR code id=%s changed=%s", code_id, changed)
        return changed

    @staticmethod
    def delete_all(db: Session) -> int:
        with tracer.start_as_current_span("db.delete_all_qr_codes"):
            deleted = db.query(QRCode).delete(synchronize_session=False)
            db.commit()

        logger.warning("Deleted %d QR codes", deleted)
        return deleted

    @staticmethod
    def existing_ids(db: Session, code_ids: Iterable[str]) -> Set[str]:
        code_ids = list(code_ids)
        if not code_ids:
            return set()

        rows = db.query(QRCode.id).filter(QRCode.id.in_(code_ids)).all()
        return {row[0] for row in rows}
