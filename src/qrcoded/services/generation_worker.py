# src/qrcoded/services/generation_worker.py

"""
Generation worker: turns one queued job into one persisted QR code.

Pipeline per job: mint id -> build payload -> render -> upload -> persist.
Upload and persist are retried with exponential backoff; render failures
are terminal. A record is only written after the upload succeeded, and a
persist failure after a good upload is compensated by deleting the object
(or reported as an orphaned upload when that delete fails too).
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple, TypeVar

from opentelemetry import trace
from sqlalchemy.orm import Session
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from qrcoded import metrics
from qrcoded.db.database import SessionLocal
from qrcoded.errors import (
    DuplicateCodeError,
    GenerationError,
    PersistenceError,
    RenderError,
    UploadError,
)
from qrcoded.repositories.qr_code_repository import QRCodeRepository
from qrcoded.services import s3
from qrcoded.services.qr_renderer import render_qr_png

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PAYLOAD_BASE_URL = os.getenv("QR_PAYLOAD_BASE_URL", "https://swartjide.com")
S3_KEY_PREFIX = os.getenv("S3_KEY_PREFIX", "qr-codes")
MAX_ATTEMPTS = int(os.getenv("QR_JOB_MAX_ATTEMPTS", "3"))
RETRY_BACKOFF_SECONDS = float(os.getenv("QR_JOB_RETRY_BACKOFF_SECONDS", "0.5"))

T = TypeVar("T")


@dataclass
class GenerationJob:
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class GenerationResult:
    code_id: str
    image_url: str
    attempts: int = 1


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, GenerationError) and exc.retryable


def build_payload(code_id: str, base_url: str = PAYLOAD_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/?uuid={code_id}"


def build_image_key(code_id: str, prefix: str = S3_KEY_PREFIX) -> str:
    return f"{prefix.strip('/')}/{code_id}.png"


def code_id_from_key(key: str) -> Optional[str]:
    name = key.rsplit("/", 1)[-1]
    if not name.endswith(".png"):
        return None
    return name[: -len(".png")] or None


class GenerationWorker:
    """
    Runs the pipeline for a single job. Collaborators are injected so the
    queue can be exercised with fakes; defaults are the real renderer, S3
    and the SQLAlchemy session factory.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] = SessionLocal,
        render: Callable[[str], bytes] = render_qr_png,
        upload: Callable[[str, bytes], str] = s3.upload_png,
        delete_upload: Optional[Callable[[str], None]] = s3.delete_object,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        payload_base_url: str = PAYLOAD_BASE_URL,
        key_prefix: str = S3_KEY_PREFIX,
        max_attempts: int = MAX_ATTEMPTS,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.render = render
        self.upload = upload
        self.delete_upload = delete_upload
        self.id_factory = id_factory
        self.payload_base_url = payload_base_url
        self.key_prefix = key_prefix
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def process(self, job: GenerationJob) -> GenerationResult:
        with tracer.start_as_current_span("qr.generation_job") as span:
            span.set_attribute("job.id", job.job_id)

            code_id = self.id_factory()
            span.set_attribute("qr.id", code_id)
            payload = build_payload(code_id, self.payload_base_url)

            image = self._run_stage("render", lambda: self._render(payload, code_id))
            key = build_image_key(code_id, self.key_prefix)
            image_url, upload_attempts = self._retrying(
                job, code_id, "upload", lambda: self._upload(key, image, code_id)
            )

            try:
                _, persist_attempts = self._retrying(
                    job, code_id, "persist", lambda: self._persist(code_id, image_url)
                )
            except DuplicateCodeError:
                # The key belongs to the existing record and was rewritten
                # with the same payload, so it must not be deleted.
                logger.error("Job %s minted an existing QR code id=%s", job.job_id, code_id)
                raise
            except PersistenceError:
                self._compensate_upload(job, code_id, key)
                raise

        logger.info(
            "Generation job %s produced QR code id=%s url=%s", job.job_id, code_id, image_url
        )
        return GenerationResult(
            code_id=code_id,
            image_url=image_url,
            attempts=max(upload_attempts, persist_attempts),
        )

    # --- stages ---------------------------------------------------------------

    def _render(self, payload: str, code_id: str) -> bytes:
        try:
            return self.render(payload)
        except RenderError as exc:
            exc.code_id = code_id
            raise
        except Exception as exc:
            raise RenderError(f"Renderer failed: {exc}", code_id=code_id) from exc

    def _upload(self, key: str, image: bytes, code_id: str) -> str:
        try:
            url = self.upload(key, image)
        except UploadError as exc:
            exc.code_id = code_id
            raise
        except Exception as exc:
            raise UploadError(f"Uploader failed: {exc}", code_id=code_id) from exc

        if not url:
            raise UploadError(f"Uploader returned no URL for key={key}", code_id=code_id)
        return url

    def _persist(self, code_id: str, image_url: str) -> None:
        db = self.session_factory()
        try:
            QRCodeRepository.create(db, code_id=code_id, image_url=image_url)
        except PersistenceError as exc:
            exc.code_id = code_id
            raise
        finally:
            db.close()

    # --- plumbing -------------------------------------------------------------

    def _run_stage(self, stage: str, fn: Callable[[], T]) -> T:
        started = time.perf_counter()
        try:
            with tracer.start_as_current_span(f"qr.stage.{stage}"):
                return fn()
        finally:
            metrics.qr_stage_duration_seconds.labels(stage=stage).observe(
                time.perf_counter() - started
            )

    def _retrying(
        self, job: GenerationJob, code_id: str, stage: str, fn: Callable[[], T]
    ) -> Tuple[T, int]:
        """Run one stage, retrying retryable GenerationErrors with exponential backoff."""
        retryer = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds),
            retry=retry_if_exception(_is_retryable),
            sleep=self.sleep,
            before_sleep=self._before_retry(job, code_id, stage),
            reraise=True,
        )
        for attempt in retryer:
            with attempt:
                result = self._run_stage(stage, fn)
        return result, attempt.retry_state.attempt_number

    def _before_retry(
        self, job: GenerationJob, code_id: str, stage: str
    ) -> Callable[[RetryCallState], None]:
        def log_and_count(retry_state: RetryCallState) -> None:
            logger.warning(
                "Job %s stage=%s attempt %d/%d failed for QR code id=%s: %s; retrying in %.2fs",
                job.job_id,
                stage,
                retry_state.attempt_number,
                self.max_attempts,
                code_id,
                retry_state.outcome.exception(),
                retry_state.next_action.sleep,
            )
            metrics.qr_job_retries_total.labels(stage=stage).inc()

        return log_and_count

    def _compensate_upload(self, job: GenerationJob, code_id: str, key: str) -> None:
        if self.delete_upload is not None:
            try:
                self.delete_upload(key)
                logger.warning(
                    "Job %s: removed uploaded image %s after persist failure for QR code id=%s",
                    job.job_id,
                    key,
                    code_id,
                )
                return
            except Exception as exc:
                logger.error("Job %s: compensating delete of %s failed: %s", job.job_id, key, exc)

        metrics.qr_orphaned_uploads_total.inc()
        logger.error(
            "Orphaned upload: key=%s code_id=%s job=%s has no persisted record; "
            "run scripts/reconcile_orphaned_uploads.py to clean up",
            key,
            code_id,
            job.job_id,
        )
