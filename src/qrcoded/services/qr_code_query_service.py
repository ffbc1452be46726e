# src/qrcoded/services/qr_code_query_service.py

import math
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from qrcoded.errors import NotFoundError
from qrcoded.models.qr_code import QRCode
from qrcoded.repositories.qr_code_repository import QRCodeRepository, normalize_pagination


@dataclass
class QRCodePage:
    items: List[QRCode]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


def get_qr_code(db: Session, code_id: Optional[str]) -> QRCode:
    qr_code = QRCodeRepository.get_by_id(db, code_id) if code_id else None
    if qr_code is None:
        raise NotFoundError("QR Code not found.")
    return qr_code


def list_qr_codes(db: Session, page: Optional[int] = None, limit: Optional[int] = None) -> QRCodePage:
    page, limit = normalize_pagination(page, limit)
    items, total = QRCodeRepository.list_page(db, page, limit)
    return QRCodePage(items=items, page=page, limit=limit, total=total)


def delete_all_qr_codes(db: Session) -> int:
    return QRCodeRepository.delete_all(db)
