import re
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from conftest import answer_sheet, auth_header, make_user
from coursehub.models.orm import Certificate, Course, Lesson
from coursehub.services import certificates as certificate_service
from coursehub.services.certificates import generate_certificate_number, to_base36


def finish_course(client, hdr, lessons, final_exam=None):
    for lesson in lessons:
        client.post("/api/progress/complete", headers=hdr, json={"lessonId": lesson.id})
    if final_exam is not None:
        client.post(f"/api/quizzes/{final_exam.id}/submit", headers=hdr, json=answer_sheet(final_exam, 2))


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"


def test_certificate_number_format():
    number = generate_certificate_number(datetime(2026, 3, 1, tzinfo=timezone.utc))
    assert re.fullmatch(r"CERT-2026-[0-9A-Z]{6}-[0-9A-Z]+", number)


def test_requires_final_exam_pass(client, learner_hdr, course, lessons, final_exam):
    finish_course(client, learner_hdr, lessons)
    r = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": course.id})
    assert r.status_code == 400
    assert r.json() == {"error": "Must pass final exam to receive certificate"}


def test_requires_all_lessons(client, learner_hdr, course, lessons, final_exam):
    finish_course(client, learner_hdr, lessons[:1])
    client.post(f"/api/quizzes/{final_exam.id}/submit", headers=learner_hdr, json=answer_sheet(final_exam, 2))
    r = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": course.id})
    assert r.status_code == 400
    assert r.json() == {"error": "Must complete all lessons to receive certificate"}


def test_unknown_course(client, learner_hdr):
    r = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": 404})
    assert r.status_code == 404


def test_course_without_final_exam_needs_only_lessons(client, db, learner_hdr):
    course = Course(title="Short")
    db.add(course)
    db.flush()
    lesson = Lesson(course_id=course.id, title="Only lesson")
    db.add(lesson)
    db.commit()

    finish_course(client, learner_hdr, [lesson])
    r = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": course.id})
    assert r.status_code == 201
    assert r.json()["alreadyExists"] is False


def test_issue_is_idempotent(client, db, learner_hdr, course, lessons, final_exam):
    finish_course(client, learner_hdr, lessons, final_exam)
    first = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": course.id})
    second = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": course.id})

    assert first.status_code == 200  # already issued by the final exam pass
    assert second.status_code == 200
    assert first.json()["alreadyExists"] is True
    assert first.json()["certificate"]["certificateNumber"] == second.json()["certificate"]["certificateNumber"]
    assert db.scalar(select(func.count(Certificate.id))) == 1


def test_my_certificates_and_verify(client, learner_hdr, course, lessons, final_exam):
    finish_course(client, learner_hdr, lessons, final_exam)
    mine = client.get("/api/certificates/me", headers=learner_hdr).json()
    assert len(mine) == 1
    assert mine[0]["course"]["title"] == "Onboarding"

    r = client.get(f"/api/certificates/verify/{mine[0]['certificateNumber']}")
    assert r.status_code == 200
    body = r.json()
    assert body["valid"] is True
    assert body["certificate"]["courseName"] == "Onboarding"
    assert body["certificate"]["studentName"] == "Learner"


def test_verify_unknown_number(client):
    r = client.get("/api/certificates/verify/CERT-2026-NOPE00-0")
    assert r.status_code == 404
    assert r.json() == {"valid": False, "error": "Certificate not found"}


@pytest.fixture
def issued(client, learner_hdr, lessons, final_exam):
    finish_course(client, learner_hdr, lessons, final_exam)
    return client.get("/api/certificates/me", headers=learner_hdr).json()[0]


def test_certificate_visible_to_owner_and_admin_only(client, db, learner_hdr, admin_hdr, issued):
    stranger = auth_header(make_user(db, "stranger@example.com"))
    assert client.get(f"/api/certificates/{issued['id']}", headers=learner_hdr).status_code == 200
    assert client.get(f"/api/certificates/{issued['id']}", headers=admin_hdr).status_code == 200
    r = client.get(f"/api/certificates/{issued['id']}", headers=stranger)
    assert r.status_code == 403
    assert r.json() == {"error": "Access denied"}


def test_admin_lists_and_deletes(client, learner_hdr, admin_hdr, issued):
    assert client.get("/api/certificates", headers=learner_hdr).status_code == 403
    assert len(client.get("/api/certificates", headers=admin_hdr).json()) == 1
    assert client.delete(f"/api/certificates/{issued['id']}", headers=admin_hdr).status_code == 200
    assert client.get("/api/certificates/me", headers=learner_hdr).json() == []


@pytest.fixture
def qualified(client, db, learner_hdr, editor):
    """A lesson-only course the learner has finished, plus a certificate holding CERT-TAKEN."""
    course = Course(title="Short")
    db.add(course)
    db.flush()
    lesson = Lesson(course_id=course.id, title="Only lesson")
    db.add_all([lesson, Certificate(user_id=editor.id, course_id=course.id, certificate_number="CERT-TAKEN")])
    db.commit()
    finish_course(client, learner_hdr, [lesson])
    return course


def test_number_collision_is_regenerated(client, monkeypatch, learner_hdr, qualified):
    numbers = iter(["CERT-TAKEN", "CERT-FRESH"])
    monkeypatch.setattr(certificate_service, "generate_certificate_number", lambda: next(numbers))

    r = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": qualified.id})
    assert r.status_code == 201
    assert r.json()["certificate"]["certificateNumber"] == "CERT-FRESH"


def test_exhausted_number_retries_is_a_conflict(client, db, monkeypatch, learner, learner_hdr, qualified):
    monkeypatch.setattr(certificate_service, "generate_certificate_number", lambda: "CERT-TAKEN")

    r = client.post("/api/certificates/check-and-issue", headers=learner_hdr, json={"courseId": qualified.id})
    assert r.status_code == 409
    assert r.json() == {"error": "Could not allocate a unique certificate number"}
    assert db.scalar(select(func.count(Certificate.id)).where(Certificate.user_id == learner.id)) == 0
