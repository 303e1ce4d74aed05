"""
Tests — certificate issuance, storage and public verification.
"""

from unittest.mock import MagicMock, patch

import pytest

from clearance.core.exceptions import InvalidTransitionError, NotFoundError, UpstreamError
from clearance.models import db
from clearance.models.certificate import ClearanceCertificate
from clearance.services import certificate_service, request_lifecycle
from clearance.services.storage import S3CertificateStorage, build_storage


@pytest.fixture()
def completed(actors, make_doc_type):
    doc_type = make_doc_type("Library Clearance", ["library"])
    req, _ = request_lifecycle.submit(actors["student"].id, doc_type.id)
    with patch.object(request_lifecycle, "_issue_certificate_safely", return_value=None):
        request_lifecycle.approve(req.id, actors["library_admin"].id)
    return req


class TestGenerate:
    def test_issues_pdf_and_row(self, completed, certificate_storage):
        cert = certificate_service.generate_certificate(completed.id, generated_by="registrar")

        assert cert.certificate_number.startswith("CERT-")
        assert len(cert.certificate_number.split("-")[-1]) == 6
        assert len(cert.verification_code) == 8
        assert cert.certificate_url == f"http://testserver/certificates/{cert.storage_key}"
        assert cert.storage_key.startswith(cert.certificate_number)
        pdf = certificate_storage.path_for(cert.storage_key).read_bytes()
        assert pdf.startswith(b"%PDF")

    def test_is_idempotent(self, completed):
        first = certificate_service.generate_certificate(completed.id)
        second = certificate_service.generate_certificate(completed.id)
        assert first.id == second.id
        assert first.verification_code == second.verification_code
        assert ClearanceCertificate.query.count() == 1

    def test_requires_completed_request(self, actors, make_doc_type):
        doc_type = make_doc_type()
        req, _ = request_lifecycle.submit(actors["student"].id, doc_type.id)
        with pytest.raises(InvalidTransitionError):
            certificate_service.generate_certificate(req.id)

    def test_missing_request(self):
        with pytest.raises(NotFoundError):
            certificate_service.generate_certificate(404)

    def test_number_collision_is_retried(self, completed, actors, make_doc_type):
        taken = certificate_service.generate_certificate(completed.id)

        doc_type = make_doc_type("Cashier Clearance", ["cashier"])
        other, _ = request_lifecycle.submit(actors["student"].id, doc_type.id)
        with patch.object(request_lifecycle, "_issue_certificate_safely", return_value=None):
            request_lifecycle.approve(other.id, actors["cashier_admin"].id)

        numbers = iter([taken.certificate_number, "CERT-2026-000002"])
        with patch.object(certificate_service, "certificate_number",
                          side_effect=lambda: next(numbers)):
            cert = certificate_service.generate_certificate(other.id)
        assert cert.certificate_number == "CERT-2026-000002"

    def test_gives_up_after_max_attempts(self, app, monkeypatch, completed, actors,
                                         make_doc_type):
        taken = certificate_service.generate_certificate(completed.id)
        doc_type = make_doc_type("Cashier Clearance", ["cashier"])
        other, _ = request_lifecycle.submit(actors["student"].id, doc_type.id)
        with patch.object(request_lifecycle, "_issue_certificate_safely", return_value=None):
            request_lifecycle.approve(other.id, actors["cashier_admin"].id)

        monkeypatch.setitem(app.config, "CERTIFICATE_NUMBER_MAX_ATTEMPTS", 3)
        with patch.object(certificate_service, "certificate_number",
                          return_value=taken.certificate_number):
            with pytest.raises(UpstreamError):
                certificate_service.generate_certificate(other.id)
        assert ClearanceCertificate.query.filter_by(request_id=other.id).count() == 0

    def test_integrity_race_retries_and_discards_blob(self, completed, actors, make_doc_type,
                                                      certificate_storage):
        taken = certificate_service.generate_certificate(completed.id)
        doc_type = make_doc_type("Cashier Clearance", ["cashier"])
        other, _ = request_lifecycle.submit(actors["student"].id, doc_type.id)
        with patch.object(request_lifecycle, "_issue_certificate_safely", return_value=None):
            request_lifecycle.approve(other.id, actors["cashier_admin"].id)

        # The pre-check misses the duplicate, so the unique constraint catches it.
        with patch.object(certificate_service, "_number_taken", return_value=False), \
                patch.object(certificate_service, "certificate_number",
                             side_effect=[taken.certificate_number, "CERT-2026-222222"]):
            cert = certificate_service.generate_certificate(other.id)

        assert cert.certificate_number == "CERT-2026-222222"
        stored = sorted(p.name for p in certificate_storage.path_for("x").parent.iterdir())
        assert stored == sorted([taken.storage_key, cert.storage_key])

    def test_upload_failure_leaves_no_row(self, app, completed):
        broken = MagicMock()
        broken.put.side_effect = OSError("disk full")
        app.extensions["certificate_storage"] = broken
        with pytest.raises(UpstreamError):
            certificate_service.generate_certificate(completed.id)
        assert ClearanceCertificate.query.count() == 0

    def test_render_failure_uploads_nothing(self, completed, certificate_storage):
        with patch.object(certificate_service, "render_certificate_pdf",
                          side_effect=ValueError("bad font")):
            with pytest.raises(UpstreamError):
                certificate_service.generate_certificate(completed.id)
        assert ClearanceCertificate.query.count() == 0
        assert not any(certificate_storage.path_for("x").parent.iterdir())


class TestVerify:
    def test_verify_by_code(self, completed, actors):
        cert = certificate_service.generate_certificate(completed.id)
        payload = certificate_service.verify_certificate(cert.verification_code.lower())
        assert payload["certificate_number"] == cert.certificate_number
        assert payload["document_name"] == "Library Clearance"
        assert payload["student"]["full_name"] == actors["student"].full_name

    def test_verify_endpoint(self, client, completed):
        cert = certificate_service.generate_certificate(completed.id)
        res = client.get(f"/api/certificates/verify/{cert.verification_code}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["valid"] is True
        assert body["certificate"]["request_id"] == completed.id

    def test_verify_unknown_code(self, client):
        res = client.get("/api/certificates/verify/NOPE1234")
        assert res.status_code == 404
        assert res.get_json()["valid"] is False

    def test_generate_endpoint_is_idempotent(self, client, completed):
        first = client.post(f"/api/certificates/generate/{completed.id}").get_json()
        second = client.post(f"/api/certificates/generate/{completed.id}").get_json()
        assert first["certificate"]["id"] == second["certificate"]["id"]

    def test_certificate_for_request_without_one(self, client, completed):
        res = client.get(f"/api/certificates/request/{completed.id}")
        assert res.status_code == 404


class TestStorageBackends:
    def test_s3_put_builds_public_url(self):
        s3 = MagicMock()
        storage = S3CertificateStorage("clearance-bucket", prefix="certs", region="eu-west-1",
                                       client=s3)
        url = storage.put("CERT-2026-000001.pdf", b"%PDF-1.4")
        s3.put_object.assert_called_once()
        kwargs = s3.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "clearance-bucket"
        assert kwargs["Key"] == "certs/CERT-2026-000001.pdf"
        assert kwargs["ContentType"] == "application/pdf"
        assert url.endswith("/certs/CERT-2026-000001.pdf")

    def test_unknown_backend(self):
        with pytest.raises(RuntimeError):
            build_storage({"CERTIFICATE_STORAGE": "ftp"})
