# src/qrcoded/services/activation_service.py

"""
One-time binding of a generated QR code to a real-world identity.

States: unactivated -> activated (terminal). A second activation of the
same code is rejected with AlreadyActivatedError; identity fields are never
overwritten.
"""

import logging
from typing import Optional

from opentelemetry import trace
from sqlalchemy.orm import Session

from qrcoded import metrics
from qrcoded.errors import AlreadyActivatedError, NotFoundError, ValidationError
from qrcoded.models.qr_code import QRCode
from qrcoded.repositories.qr_code_repository import QRCodeRepository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

REQUIRED_FIELDS_MESSAGE = "All fields (id, firstName, lastName, accountNumber) are required."


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def activate_qr_code(
    db: Session,
    *,
    code_id: Optional[str],
    first_name: Optional[str],
    last_name: Optional[str],
    account_number: Optional[str],
) -> QRCode:
    code_id = _clean(code_id)
    first_name = _clean(first_name)
    last_name = _clean(last_name)
    account_number = _clean(account_number)

    if not (code_id and first_name and last_name and account_number):
        raise ValidationError(REQUIRED_FIELDS_MESSAGE)

    with tracer.start_as_current_span("qr.activate") as span:
        span.set_attribute("qr.id", code_id)

        changed = QRCodeRepository.activate(
            db,
            code_id,
            first_name=first_name,
            last_name=last_name,
            account_number=account_number,
        )

        qr_code = QRCodeRepository.get_by_id(db, code_id)
        if qr_code is None:
            raise NotFoundError("QR Code not found.")
        if not changed:
            logger.warning("Rejected re-activation of QR code id=%s", code_id)
            raise AlreadyActivatedError("QR Code is already activated.")

    metrics.qr_activations_total.inc()
    logger.info("Activated QR code id=%s", code_id)
    return qr_code
