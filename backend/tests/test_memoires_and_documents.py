import io

import docx
from PIL import Image

from thesis_api.utils.pdf_export import render_memoire_pdf


def _make_png() -> bytes:
    img = Image.new("RGB", (60, 40), "white")
    bio = io.BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


def _make_docx(text: str) -> bytes:
    document = docx.Document()
    document.add_paragraph(text)
    bio = io.BytesIO()
    document.save(bio)
    return bio.getvalue()


def _make_pdf() -> bytes:
    return render_memoire_pdf("Chapitre 1", "<p>Introduction</p><p>Suite</p>", "Awa Sarr", "UCAD")


def _coached_student(client, admin, register):
    _, admin_headers = admin
    student, student_headers = register()
    coach, coach_headers = register(role="ACCOMPAGNATEUR")
    r = client.post(f"/api/users/{student['id']}/assign-coach", json={"coachId": coach["id"]}, headers=admin_headers)
    assert r.status_code == 200
    return student, student_headers, coach, coach_headers


def test_memoire_visibility_by_role(client, admin, register):
    _, admin_headers = admin
    student, student_headers, coach, coach_headers = _coached_student(client, admin, register)

    mine = client.get("/api/memoires", headers=student_headers).json()["memoire"]
    assert mine["accompagnateur"]["id"] == coach["id"]

    coached = client.get("/api/memoires", headers=coach_headers).json()["memoires"]
    assert [m["student"]["id"] for m in coached] == [student["id"]]

    assert client.get("/api/memoires", headers=admin_headers).status_code == 403


def test_memoire_updates_respect_ownership(client, admin, register):
    _, admin_headers = admin
    _, student_headers, _, coach_headers = _coached_student(client, admin, register)
    _, stranger_headers = register()
    memoire_id = client.get("/api/memoires", headers=student_headers).json()["memoire"]["id"]

    r = client.patch(f"/api/memoires/{memoire_id}", json={"phase": "OUTLINE", "progressPercent": 20},
                     headers=student_headers)
    assert r.status_code == 200
    assert r.json()["memoire"]["phase"] == "OUTLINE"

    r = client.patch(f"/api/memoires/{memoire_id}", json={"notes": "Bon plan"}, headers=coach_headers)
    assert r.json()["memoire"]["notes"] == "Bon plan"
    assert r.json()["memoire"]["progress_percent"] == 20

    assert client.patch(f"/api/memoires/{memoire_id}", json={"notes": "x"}, headers=stranger_headers).status_code == 403
    assert client.patch(f"/api/memoires/{memoire_id}", json={"progressPercent": 140},
                        headers=admin_headers).status_code == 422
    assert client.patch("/api/memoires/missing", json={"notes": "x"}, headers=admin_headers).status_code == 404


def test_document_upload_versions_and_metadata(client, register, settings):
    _, headers = register()
    files = {"file": ("chapitre1.docx", _make_docx("Un deux trois quatre"), "application/octet-stream")}
    r = client.post("/api/documents/upload", files=files, data={"category": "chapter1"}, headers=headers)
    assert r.status_code == 201, r.text
    first = r.json()["document"]
    assert first["kind"] == "docx"
    assert first["word_count"] == 4
    assert first["version"] == 1
    assert first["category"] == "CHAPTER1"
    assert first["memoire_id"] is not None

    files = {"file": ("chapitre1.pdf", _make_pdf(), "application/pdf")}
    r = client.post("/api/documents/upload", files=files, data={"category": "CHAPTER1"}, headers=headers)
    second = r.json()["document"]
    assert second["kind"] == "pdf"
    assert second["page_count"] == 2
    assert second["version"] == 2

    files = {"file": ("scan.png", _make_png(), "image/png")}
    r = client.post("/api/documents/upload", files=files, headers=headers)
    assert r.json()["document"]["version"] == 1

    stored = r.json()["document"]["file_path"]
    assert stored.startswith("/uploads/documents/")
    assert client.get(stored).status_code == 200

    docs = client.get("/api/documents", headers=headers).json()["documents"]
    assert len(docs) == 3


def test_document_upload_rejects_unsupported_content(client, register):
    _, headers = register()
    files = {"file": ("notes.txt", b"just some text", "text/plain")}
    r = client.post("/api/documents/upload", files=files, headers=headers)
    assert r.status_code == 415
    files = {"file": ("fake.pdf", b"%PDF-1.4 broken", "application/pdf")}
    assert client.post("/api/documents/upload", files=files, headers=headers).status_code == 415


def test_document_upload_enforces_size_limit(client, register, settings):
    _, headers = register()
    payload = b"\x00" * (settings.MAX_UPLOAD_BYTES + 1)
    files = {"file": ("big.pdf", payload, "application/pdf")}
    r = client.post("/api/documents/upload", files=files, headers=headers)
    assert r.status_code == 400
    assert r.json()["detail"] == "file too large"


def test_only_students_upload(client, register):
    _, coach_headers = register(role="ACCOMPAGNATEUR")
    files = {"file": ("scan.png", _make_png(), "image/png")}
    assert client.post("/api/documents/upload", files=files, headers=coach_headers).status_code == 403


def test_document_review_by_assigned_coach(client, admin, register):
    _, admin_headers = admin
    _, student_headers, _, coach_headers = _coached_student(client, admin, register)
    _, other_coach_headers = register(role="ACCOMPAGNATEUR")
    files = {"file": ("scan.png", _make_png(), "image/png")}
    doc = client.post("/api/documents/upload", files=files, headers=student_headers).json()["document"]

    assert [d["id"] for d in client.get("/api/documents", headers=coach_headers).json()["documents"]] == [doc["id"]]
    assert client.get("/api/documents", headers=other_coach_headers).json()["documents"] == []

    review = {"status": "NEEDS_REVISION", "feedback": "Revoir la bibliographie"}
    assert client.patch(f"/api/documents/{doc['id']}/review", json=review,
                        headers=other_coach_headers).status_code == 403
    assert client.patch(f"/api/documents/{doc['id']}/review", json=review,
                        headers=student_headers).status_code == 403

    r = client.patch(f"/api/documents/{doc['id']}/review", json=review, headers=coach_headers)
    assert r.status_code == 200
    assert r.json()["document"]["status"] == "NEEDS_REVISION"
    assert r.json()["document"]["feedback"] == "Revoir la bibliographie"

    notifications = client.get("/api/notifications", headers=student_headers).json()["notifications"]
    assert notifications[0]["type"] == "document"

    r = client.patch(f"/api/documents/{doc['id']}/review", json={"status": "APPROVED"}, headers=admin_headers)
    assert r.json()["document"]["status"] == "APPROVED"
    assert client.patch("/api/documents/missing/review", json={"status": "APPROVED"},
                        headers=admin_headers).status_code == 404
