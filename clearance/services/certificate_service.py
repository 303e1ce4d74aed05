"""
Smart Clearance
Certificate Service — issues and verifies clearance certificates.

    generate_certificate(request_id)   idempotent; completed requests only
    get_certificate_for_request(id)
    verify_certificate(code)

Issuance renders the PDF, uploads ``<certificate_number>-<code>.pdf`` and inserts the
row. ``certificate_number`` (CERT-<year>-<6 digits>) carries a unique
constraint; a collision is retried with a fresh number up to
CERTIFICATE_NUMBER_MAX_ATTEMPTS times. Any render / upload / persistence
failure raises UpstreamError and leaves neither a row nor an uploaded blob.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from clearance.core.exceptions import InvalidTransitionError, NotFoundError, UpstreamError
from clearance.models import db
from clearance.models.certificate import ClearanceCertificate
from clearance.models.request import ClearanceRequest
from clearance.services.certificate_renderer import CertificateContent, render_certificate_pdf
from clearance.services.storage import get_storage
from clearance.utils.crypto import random_code, random_digits
from clearance.utils.helpers import utcnow

logger = logging.getLogger(__name__)

VERIFICATION_CODE_LENGTH = 8


def certificate_number() -> str:
    return f"CERT-{utcnow().year}-{random_digits(6)}"


def verification_url(code: str) -> str:
    base = current_app.config.get("CERTIFICATE_VERIFY_BASE_URL", "").rstrip("/")
    return f"{base}/{code}"


def _build_content(req: ClearanceRequest, number: str, code: str) -> CertificateContent:
    student = req.student
    return CertificateContent(
        certificate_number=number,
        verification_code=code,
        verification_url=verification_url(code),
        student_name=student.full_name if student else "Unknown Student",
        student_number=(student.student_number or "") if student else "",
        course_year=(student.course_year or "") if student else "",
        document_name=req.document_type.name if req.document_type else "Clearance",
        issued_on=utcnow().strftime("%B %d, %Y"),
    )


def _number_taken(number: str, code: str) -> bool:
    return ClearanceCertificate.query.filter(
        (ClearanceCertificate.certificate_number == number)
        | (ClearanceCertificate.verification_code == code)
    ).first() is not None


def _discard_blob(storage, key: str) -> None:
    if ClearanceCertificate.query.filter_by(storage_key=key).first():
        return
    try:
        storage.delete(key)
    except Exception as exc:
        logger.warning("Could not remove orphaned certificate blob %s: %s", key, exc)


def generate_certificate(request_id, generated_by=None) -> ClearanceCertificate:
    """Issue the certificate for a completed request, or return the existing one."""
    req = db.session.get(ClearanceRequest, request_id)
    if not req:
        raise NotFoundError("Request", request_id)

    existing = ClearanceCertificate.query.filter_by(request_id=req.id).first()
    if existing:
        return existing

    if req.current_status != "completed" or not req.is_completed:
        raise InvalidTransitionError("generate a certificate for", req.current_status,
                                     "request is not completed")

    storage = get_storage()
    max_attempts = max(1, int(current_app.config.get("CERTIFICATE_NUMBER_MAX_ATTEMPTS", 5)))

    for attempt in range(1, max_attempts + 1):
        number = certificate_number()
        code = random_code(VERIFICATION_CODE_LENGTH)
        if _number_taken(number, code):
            logger.info("Certificate number %s already issued, retrying (%d/%d)",
                        number, attempt, max_attempts)
            continue

        try:
            pdf_bytes = render_certificate_pdf(_build_content(req, number, code))
        except Exception as exc:
            logger.exception("Certificate render failed for request %s", req.id)
            raise UpstreamError(f"Certificate rendering failed: {exc}") from exc

        key = f"{number}-{code}.pdf"
        try:
            url = storage.put(key, pdf_bytes, "application/pdf")
        except Exception as exc:
            logger.exception("Certificate upload failed for request %s", req.id)
            raise UpstreamError(f"Certificate upload failed: {exc}") from exc

        cert = ClearanceCertificate(
            request_id=req.id,
            certificate_number=number,
            verification_code=code,
            certificate_url=url,
            storage_key=key,
            generated_by=generated_by,
        )
        db.session.add(cert)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            _discard_blob(storage, key)
            issued = ClearanceCertificate.query.filter_by(request_id=request_id).first()
            if issued:
                # Concurrent issuer won for the same request
                return issued
            logger.warning("Certificate number collision on %s, retrying (%d/%d)",
                           number, attempt, max_attempts)
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            _discard_blob(storage, key)
            raise UpstreamError(f"Failed to save certificate: {exc.__class__.__name__}") from exc

        logger.info("Certificate %s issued for request %s", number, request_id,
                    extra={"clearance_request_id": request_id})
        return cert

    raise UpstreamError(
        f"Could not allocate a unique certificate number after {max_attempts} attempts"
    )


def get_certificate_for_request(request_id) -> ClearanceCertificate:
    cert = ClearanceCertificate.query.filter_by(request_id=request_id).first()
    if not cert:
        raise NotFoundError("Certificate for request", request_id)
    return cert


def verify_certificate(code: str) -> dict:
    """Look up a certificate by its verification code for public verification."""
    code = (code or "").strip().upper()
    cert = ClearanceCertificate.query.filter_by(verification_code=code).first() if code else None
    if not cert:
        raise NotFoundError("Certificate")
    req = cert.request
    payload = cert.to_dict()
    payload["document_name"] = req.document_type.name if req and req.document_type else None
    payload["student"] = {
        "full_name": req.student.full_name,
        "student_number": req.student.student_number,
        "course_year": req.student.course_year,
    } if req and req.student else None
    return payload
