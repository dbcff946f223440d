from sqlalchemy import func, select

from coursehub.models.orm import UserProgress


def test_complete_lesson_is_idempotent(client, db, learner_hdr, lessons):
    first = client.post("/api/progress/complete", headers=learner_hdr, json={"lessonId": lessons[0].id})
    second = client.post("/api/progress/complete", headers=learner_hdr, json={"lessonId": lessons[0].id})
    assert first.status_code == 201
    assert second.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    assert second.json()["completed"] is True
    assert db.scalar(select(func.count(UserProgress.id))) == 1


def test_complete_unknown_lesson(client, learner_hdr):
    r = client.post("/api/progress/complete", headers=learner_hdr, json={"lessonId": 12345})
    assert r.status_code == 404
    assert r.json() == {"error": "Lesson not found"}


def test_course_progress_percentage(client, learner_hdr, course, lessons):
    empty = client.get(f"/api/progress/course/{course.id}", headers=learner_hdr).json()
    assert empty == {"progress": [], "completedCount": 0, "totalLessons": 2, "percentage": 0}

    client.post("/api/progress/complete", headers=learner_hdr, json={"lessonId": lessons[0].id})
    half = client.get(f"/api/progress/course/{course.id}", headers=learner_hdr).json()
    assert half["completedCount"] == 1
    assert half["percentage"] == 50


def test_my_progress_includes_lesson(client, learner_hdr, lessons):
    client.post("/api/progress/complete", headers=learner_hdr, json={"lessonId": lessons[1].id})
    rows = client.get("/api/progress/me", headers=learner_hdr).json()
    assert len(rows) == 1
    assert rows[0]["lesson"]["title"] == "Tools"


def test_reset_module_progress(client, learner_hdr, course, module, lessons):
    for lesson in lessons:
        client.post("/api/progress/complete", headers=learner_hdr, json={"lessonId": lesson.id})
    r = client.delete(f"/api/progress/module/{module.id}", headers=learner_hdr)
    assert r.status_code == 200
    assert r.json() == {"message": "Progress reset successfully"}
    assert client.get(f"/api/progress/course/{course.id}", headers=learner_hdr).json()["completedCount"] == 0


def test_reset_unknown_module(client, learner_hdr):
    assert client.delete("/api/progress/module/777", headers=learner_hdr).status_code == 404


def test_admin_progress_views(client, learner, learner_hdr, admin_hdr, lessons):
    client.post("/api/progress/complete", headers=learner_hdr, json={"lessonId": lessons[0].id})
    assert client.get(f"/api/progress/user/{learner.id}", headers=learner_hdr).status_code == 403
    assert len(client.get(f"/api/progress/user/{learner.id}", headers=admin_hdr).json()) == 1
    assert len(client.get("/api/progress", headers=admin_hdr).json()) == 1
