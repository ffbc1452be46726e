# src/qrcoded/api/routes/qr_codes.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from qrcoded.api.dependencies.queue import get_generation_queue
from qrcoded.db.database import get_db
from qrcoded.errors import AlreadyActivatedError, NotFoundError, ValidationError
from qrcoded.models.qr_code import QRCode
from qrcoded.services.activation_service import activate_qr_code
from qrcoded.services.generation_queue import GenerationQueue
from qrcoded.services.qr_code_query_service import (
    delete_all_qr_codes,
    get_qr_code,
    list_qr_codes,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

router = APIRouter(tags=["QR Codes"])


# --- Pydantic models ---------------------------------------------------------

class GenerateRequest(BaseModel):
    count: Optional[int] = None


class ActivateRequest(BaseModel):
    id: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    accountNumber: Optional[str] = None


class InfoRequest(BaseModel):
    id: Optional[str] = None


# --- Helper serializers ------------------------------------------------------

def serialize_qr_code(qr_code: QRCode) -> Dict[str, Any]:
    return {
        "id": qr_code.id,
        "imageURL": qr_code.image_url,
        "firstName": qr_code.first_name or "",
        "lastName": qr_code.last_name or "",
        "accountNumber": qr_code.account_number or "",
        "isActivated": bool(qr_code.is_activated),
        "createdAt": qr_code.created_at.isoformat() if qr_code.created_at else None,
        "activatedAt": qr_code.activated_at.isoformat() if qr_code.activated_at else None,
    }


def _parse_int(value: Optional[str]) -> Optional[int]:
    # Garbage query values fall back to defaults instead of failing the request.
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


# --- Endpoints ---------------------------------------------------------------

@router.post("/generateQR", status_code=status.HTTP_202_ACCEPTED)
async def generate_qr_codes(
    payload: Optional[GenerateRequest] = None,
    gen_queue: GenerationQueue = Depends(get_generation_queue),
):
    """
    Queue QR code generation and return immediately.

    Individual job failures are not reported here; poll the listing or
    GET /generateQR/jobs to see how many codes were actually produced.
    """
    requested = payload.count if payload else None
    jobs = gen_queue.enqueue(requested)
    count = len(jobs)

    return {
        "message": f"{count} QR Code(s) generation in process",
        "count": count,
        "jobIds": [job.job_id for job in jobs],
    }


@router.get("/generateQR/jobs")
def generation_job_stats(gen_queue: GenerationQueue = Depends(get_generation_queue)):
    return gen_queue.stats()


@router.get("/generateQR")
def list_generated_qr_codes(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        result = list_qr_codes(db, _parse_int(page), _parse_int(limit))
    except SQLAlchemyError:
        logger.exception("Failed to list QR codes")
        raise HTTPException(status_code=500, detail="Server error")

    return {
        "currentPage": result.page,
        "limit": result.limit,
        "totalDocs": result.total,
        "totalPages": result.total_pages,
        "qr": [serialize_qr_code(q) for q in result.items],
    }


@router.post("/activate")
def activate(
    payload: Optional[ActivateRequest] = None,
    db: Session = Depends(get_db),
):
    payload = payload or ActivateRequest()

    with tracer.start_as_current_span("api.activate_qr_code") as span:
        span.set_attribute("qr.id", payload.id or "")
        try:
            qr_code = activate_qr_code(
                db,
                code_id=payload.id,
                first_name=payload.firstName,
                last_name=payload.lastName,
                account_number=payload.accountNumber,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except AlreadyActivatedError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except SQLAlchemyError:
            logger.exception("Error activating QR code %s", payload.id)
            raise HTTPException(status_code=500, detail="Server error")

    return {"message": "Activation successful", "qr": serialize_qr_code(qr_code)}


@router.post("/info")
def qr_code_info(
    payload: Optional[InfoRequest] = None,
    db: Session = Depends(get_db),
):
    code_id = payload.id if payload else None
    try:
        qr_code = get_qr_code(db, code_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    return serialize_qr_code(qr_code)


@router.delete("/qrCodes")
def delete_qr_codes(db: Session = Depends(get_db)):
    try:
        deleted = delete_all_qr_codes(db)
    except SQLAlchemyError:
        logger.exception("Error deleting all QR codes")
        raise HTTPException(status_code=500, detail="Server error")

    return {
        "message": "All QR codes deleted successfully.",
        "deletedCount": deleted,
    }
