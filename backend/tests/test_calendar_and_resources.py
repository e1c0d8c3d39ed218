import io
from datetime import datetime, timedelta, timezone

import docx


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def test_calendar_events_are_private_and_ordered(client, register):
    _, headers = register()
    _, other_headers = register()
    now = datetime.now(timezone.utc)
    later = client.post("/api/calendar", json={"title": "Soutenance", "date": _iso(now + timedelta(days=30)),
                                               "type": "DEFENSE"}, headers=headers)
    assert later.status_code == 201
    sooner = client.post("/api/calendar", json={"title": "RDV coach", "date": _iso(now + timedelta(days=2)),
                                                "type": "MEETING"}, headers=headers).json()["event"]
    client.post("/api/calendar", json={"title": "Passé", "date": _iso(now - timedelta(days=2))}, headers=headers)

    events = client.get("/api/calendar", headers=headers).json()["events"]
    assert [e["title"] for e in events] == ["Passé", "RDV coach", "Soutenance"]
    assert events[0]["type"] == "REMINDER"
    assert client.get("/api/calendar", headers=other_headers).json()["events"] == []

    assert client.get("/api/calendar/next", headers=headers).json()["event"]["id"] == sooner["id"]

    r = client.patch(f"/api/calendar/{sooner['id']}/toggle", headers=headers)
    assert r.json()["event"]["is_completed"] is True
    assert client.get("/api/calendar/next", headers=headers).json()["event"]["title"] == "Soutenance"

    assert client.patch(f"/api/calendar/{sooner['id']}/toggle", headers=other_headers).status_code == 404
    assert client.delete(f"/api/calendar/{sooner['id']}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/calendar/{sooner['id']}", headers=headers).status_code == 200
    assert len(client.get("/api/calendar", headers=headers).json()["events"]) == 2


def test_event_dates_are_normalized_to_utc(client, register):
    _, headers = register()
    r = client.post("/api/calendar", json={"title": "Dakar", "date": "2030-05-01T10:00:00+02:00"}, headers=headers)
    assert r.json()["event"]["date"].startswith("2030-05-01T08:00:00")


def test_next_event_is_null_without_upcoming_events(client, register):
    _, headers = register()
    assert client.get("/api/calendar/next", headers=headers).json() == {"event": None}


def test_resources_from_links_and_files(client, admin, register):
    _, admin_headers = admin
    _, student_headers = register()

    r = client.post("/api/resources", data={"title": "Guide APA", "linkUrl": "https://example.com/apa",
                                            "category": "METHODOLOGY"}, headers=admin_headers)
    assert r.status_code == 201
    link = r.json()["resource"]
    assert link["file_type"] == "LINK"

    document = docx.Document()
    document.add_paragraph("Modèle")
    bio = io.BytesIO()
    document.save(bio)
    files = {"file": ("modele.docx", bio.getvalue(), "application/vnd.openxmlformats-officedocument.wordprocessingml.document")}
    r = client.post("/api/resources", data={"title": "Modèle de mémoire"}, files=files, headers=admin_headers)
    assert r.status_code == 201
    template = r.json()["resource"]
    assert template["file_type"] == "DOCX"
    assert template["category"] == "GENERAL"
    assert client.get(template["file_url"]).status_code == 200

    files = {"file": ("notes.txt", b"plain text", "text/plain")}
    r = client.post("/api/resources", data={"title": "Notes"}, files=files, headers=admin_headers)
    assert r.json()["resource"]["file_type"] == "OTHER"

    everything = client.get("/api/resources", headers=student_headers).json()["resources"]
    assert len(everything) == 3
    methodology = client.get("/api/resources", params={"category": "METHODOLOGY"},
                             headers=student_headers).json()["resources"]
    assert [res["id"] for res in methodology] == [link["id"]]

    assert client.delete(f"/api/resources/{template['id']}", headers=student_headers).status_code == 403
    assert client.delete(f"/api/resources/{template['id']}", headers=admin_headers).status_code == 200
    assert client.get(template["file_url"]).status_code == 404
    assert client.delete(f"/api/resources/{template['id']}", headers=admin_headers).status_code == 404


def test_resource_requires_file_or_link(client, admin):
    _, admin_headers = admin
    r = client.post("/api/resources", data={"title": "Vide"}, headers=admin_headers)
    assert r.status_code == 400
