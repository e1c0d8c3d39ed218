from thesis_api.models import Role
from thesis_api.permissions import Capability, can_message, has_capability


def test_can_message_rules():
    assert can_message(Role.ADMIN, Role.STUDENT)
    assert can_message(Role.ADMIN, Role.ADMIN)
    assert can_message(Role.STUDENT, Role.ACCOMPAGNATEUR)
    assert can_message(Role.ACCOMPAGNATEUR, Role.STUDENT)
    assert can_message(Role.STUDENT, Role.ADMIN)
    assert can_message(Role.ACCOMPAGNATEUR, Role.ADMIN)
    assert not can_message(Role.STUDENT, Role.STUDENT)
    assert not can_message(Role.ACCOMPAGNATEUR, Role.ACCOMPAGNATEUR)


def test_capabilities_are_role_scoped():
    assert has_capability(Role.STUDENT, Capability.SUBSCRIBE)
    assert not has_capability(Role.ADMIN, Capability.SUBSCRIBE)
    assert has_capability(Role.ACCOMPAGNATEUR, Capability.REVIEW_DOCUMENTS)
    assert not has_capability(Role.ACCOMPAGNATEUR, Capability.CONFIRM_PAYMENTS)
    assert has_capability("ADMIN", Capability.CONFIRM_PAYMENTS)


def test_partners_follow_coaching_assignments(client, admin, register):
    admin_user, admin_headers = admin
    student, student_headers = register()
    coach, coach_headers = register(role="ACCOMPAGNATEUR")
    register()

    ids = {p["id"] for p in client.get("/api/messaging/partners", headers=student_headers).json()["partners"]}
    assert ids == {admin_user["id"]}

    client.post(f"/api/users/{student['id']}/assign-coach", json={"coachId": coach["id"]}, headers=admin_headers)
    ids = {p["id"] for p in client.get("/api/messaging/partners", headers=student_headers).json()["partners"]}
    assert ids == {admin_user["id"], coach["id"]}
    ids = {p["id"] for p in client.get("/api/messaging/partners", headers=coach_headers).json()["partners"]}
    assert ids == {admin_user["id"], student["id"]}

    everyone = client.get("/api/messaging/partners", headers=admin_headers).json()["partners"]
    assert len(everyone) == 3
    assert admin_user["id"] not in {p["id"] for p in everyone}


def test_conversation_flow_with_unread_counts(client, register):
    student, student_headers = register()
    coach, coach_headers = register(role="ACCOMPAGNATEUR")

    r = client.post("/api/messaging/send", json={"receiverId": coach["id"], "content": "Bonjour"},
                    headers=student_headers)
    assert r.status_code == 201
    first = r.json()["message"]
    client.post("/api/messaging/send", json={"receiverId": coach["id"], "content": "Vous êtes là ?"},
                headers=student_headers)

    convs = client.get("/api/messaging/conversations", headers=coach_headers).json()["conversations"]
    assert len(convs) == 1
    assert convs[0]["unread_count"] == 2
    assert convs[0]["participant"]["id"] == student["id"]
    assert convs[0]["last_message"]["content"] == "Vous êtes là ?"
    assert convs[0]["id"] == first["conversation_id"]

    # the reply reuses the same conversation
    r = client.post("/api/messaging/send", json={"receiverId": student["id"], "content": "Oui"}, headers=coach_headers)
    assert r.json()["message"]["conversation_id"] == first["conversation_id"]

    messages = client.get(f"/api/messaging/conversations/{first['conversation_id']}/messages",
                          headers=coach_headers).json()["messages"]
    assert [m["content"] for m in messages] == ["Bonjour", "Vous êtes là ?", "Oui"]
    convs = client.get("/api/messaging/conversations", headers=coach_headers).json()["conversations"]
    assert convs[0]["unread_count"] == 0
    convs = client.get("/api/messaging/conversations", headers=student_headers).json()["conversations"]
    assert convs[0]["unread_count"] == 1


def test_messaging_eligibility_and_access(client, register):
    s1, s1_headers = register()
    s2, s2_headers = register()
    coach, _ = register(role="ACCOMPAGNATEUR")

    r = client.post("/api/messaging/send", json={"receiverId": s2["id"], "content": "salut"}, headers=s1_headers)
    assert r.status_code == 403
    r = client.post("/api/messaging/send", json={"receiverId": "missing", "content": "salut"}, headers=s1_headers)
    assert r.status_code == 404
    r = client.post("/api/messaging/send", json={"receiverId": coach["id"], "content": ""}, headers=s1_headers)
    assert r.status_code == 422

    conv_id = client.post("/api/messaging/send", json={"receiverId": coach["id"], "content": "hello"},
                          headers=s1_headers).json()["message"]["conversation_id"]
    r = client.get(f"/api/messaging/conversations/{conv_id}/messages", headers=s2_headers)
    assert r.status_code == 403


def test_notifications_lifecycle(client, register):
    student, student_headers = register()
    coach, coach_headers = register(role="ACCOMPAGNATEUR")
    for text in ("un", "deux"):
        client.post("/api/messaging/send", json={"receiverId": coach["id"], "content": text}, headers=student_headers)

    assert client.get("/api/notifications/unread-count", headers=coach_headers).json() == {"count": 2}
    notifications = client.get("/api/notifications", headers=coach_headers).json()["notifications"]
    assert notifications[0]["title"] == "Nouveau message"
    assert notifications[0]["content"] == "Étudiant vous a envoyé un message"

    r = client.patch(f"/api/notifications/{notifications[0]['id']}/read", headers=coach_headers)
    assert r.json()["notification"]["is_read"] is True
    assert client.get("/api/notifications/unread-count", headers=coach_headers).json() == {"count": 1}

    # someone else's notification is invisible
    assert client.patch(f"/api/notifications/{notifications[1]['id']}/read",
                        headers=student_headers).status_code == 404

    r = client.patch("/api/notifications/read-all", headers=coach_headers)
    assert r.json()["updated"] == 1
    assert client.get("/api/notifications/unread-count", headers=coach_headers).json() == {"count": 0}
