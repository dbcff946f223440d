import pytest

from conftest import auth_header, make_user
from coursehub.models.orm import Course


@pytest.fixture
def targeted(db):
    db.add_all([
        Course(title="Everyone", course_target="both"),
        Course(title="Staff only", course_target="employee"),
        Course(title="Clients only", course_target="client"),
    ])
    db.commit()
    return {c.title: c for c in db.query(Course).all()}


def titles(response):
    return sorted(c["title"] for c in response.json())


def test_catalog_filtered_by_user_type(client, db, learner_hdr, targeted):
    client_hdr = auth_header(make_user(db, "buyer@example.com", user_type="client"))
    assert titles(client.get("/api/courses", headers=learner_hdr)) == ["Everyone", "Staff only"]
    assert titles(client.get("/api/courses", headers=client_hdr)) == ["Clients only", "Everyone"]
    assert len(client.get("/api/courses").json()) == 3


def test_course_detail(client, course):
    body = client.get(f"/api/courses/{course.id}").json()
    assert body["title"] == "Onboarding"
    assert [m["title"] for m in body["modules"]] == ["Week 1"]
    assert [lesson["title"] for lesson in body["modules"][0]["lessons"]] == ["Intro", "Tools"]
    assert body["finalExam"]["isFinalExam"] is True


def test_missing_course(client):
    r = client.get("/api/courses/999")
    assert r.status_code == 404
    assert r.json() == {"error": "Course not found"}


def test_admin_builds_catalog(client, admin_hdr, learner_hdr):
    assert client.post("/api/courses", headers=learner_hdr, json={"title": "X"}).status_code == 403

    course = client.post("/api/courses", headers=admin_hdr, json={"title": "Safety", "courseTarget": "employee"})
    assert course.status_code == 201
    course_id = course.json()["id"]

    module = client.post("/api/modules", headers=admin_hdr, json={"courseId": course_id, "title": "M1"}).json()
    lesson = client.post("/api/lessons", headers=admin_hdr, json={"moduleId": module["id"], "title": "L1"})
    assert lesson.status_code == 201
    assert lesson.json()["courseId"] == course_id

    renamed = client.put(f"/api/courses/{course_id}", headers=admin_hdr, json={"title": "Safety 101"})
    assert renamed.json()["title"] == "Safety 101"
    assert [lsn["title"] for lsn in client.get(f"/api/lessons/course/{course_id}").json()] == ["L1"]

    assert client.delete(f"/api/courses/{course_id}", headers=admin_hdr).status_code == 200
    assert client.get(f"/api/modules/{module['id']}").status_code == 404


def test_lesson_needs_an_owner(client, admin_hdr):
    r = client.post("/api/lessons", headers=admin_hdr, json={"title": "Floating"})
    assert r.status_code == 400


def test_enroll_once(client, learner_hdr, course):
    first = client.post("/api/enrollments", headers=learner_hdr, json={"courseId": course.id})
    assert first.status_code == 201
    assert first.json()["course"]["title"] == "Onboarding"

    again = client.post("/api/enrollments", headers=learner_hdr, json={"courseId": course.id})
    assert again.status_code == 400
    assert again.json() == {"error": "Already enrolled in this course"}

    mine = client.get("/api/enrollments/me", headers=learner_hdr).json()
    assert [e["courseId"] for e in mine] == [course.id]


def test_enroll_respects_course_target(client, learner_hdr, targeted):
    r = client.post("/api/enrollments", headers=learner_hdr, json={"courseId": targeted["Clients only"].id})
    assert r.status_code == 403
    assert r.json() == {"error": "No access to this course"}


def test_enroll_unknown_course(client, learner_hdr):
    assert client.post("/api/enrollments", headers=learner_hdr, json={"courseId": 321}).status_code == 404


def test_admin_enrollment_views(client, learner_hdr, admin_hdr, course):
    enrollment = client.post("/api/enrollments", headers=learner_hdr, json={"courseId": course.id}).json()
    assert client.get("/api/enrollments", headers=learner_hdr).status_code == 403
    assert len(client.get(f"/api/enrollments/course/{course.id}", headers=admin_hdr).json()) == 1
    assert client.delete(f"/api/enrollments/{enrollment['id']}", headers=admin_hdr).status_code == 200
    assert client.get("/api/enrollments", headers=admin_hdr).json() == []


def test_stored_access_rules_override_course_target(client, learner_hdr, admin_hdr, course):
    assert client.post(f"/api/courses/{course.id}/access", headers=learner_hdr,
                       json={"userTypes": ["client"]}).status_code == 403

    r = client.post(f"/api/courses/{course.id}/access", headers=admin_hdr, json={"userTypes": ["client"]})
    assert r.status_code == 200
    assert r.json() == {"message": "Access rules updated", "count": 1, "userTypes": ["client"]}

    assert course.id not in [c["id"] for c in client.get("/api/courses", headers=learner_hdr).json()]
    r = client.post("/api/enrollments", headers=learner_hdr, json={"courseId": course.id})
    assert r.status_code == 403
    assert r.json() == {"error": "No access to this course"}

    client.post(f"/api/courses/{course.id}/access", headers=admin_hdr, json={"userTypes": ["client", "employee"]})
    assert client.get(f"/api/courses/{course.id}").json()["accessUserTypes"] == ["client", "employee"]
    assert client.post("/api/enrollments", headers=learner_hdr, json={"courseId": course.id}).status_code == 201
