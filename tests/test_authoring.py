import pytest


def question(text, correct=0, n=3):
    return {"question": text, "answers": [{"answer": f"{text}-{i}", "isCorrect": i == correct} for i in range(n)]}


@pytest.fixture
def quiz_id(client, editor_hdr, module):
    payload = {"title": "Checkpoint", "moduleId": module.id, "questions": [question("a"), question("b", correct=2)]}
    r = client.post("/api/quizzes", headers=editor_hdr, json=payload)
    assert r.status_code == 201
    return r.json()["id"]


def test_create_quiz_defaults(client, editor_hdr, quiz_id):
    body = client.get(f"/api/quizzes/{quiz_id}", headers=editor_hdr).json()
    assert body["passingScore"] == 70
    assert body["isFinalExam"] is False
    assert [q["orderIndex"] for q in body["questions"]] == [0, 1]
    assert [a["isCorrect"] for a in body["questions"][1]["answers"]] == [False, False, True]


def test_question_needs_exactly_one_correct_answer(client, editor_hdr, module):
    bad = {"question": "both", "answers": [{"answer": "x", "isCorrect": True}, {"answer": "y", "isCorrect": True}]}
    r = client.post("/api/quizzes", headers=editor_hdr, json={"title": "T", "moduleId": module.id, "questions": [bad]})
    assert r.status_code == 400
    assert "exactly one correct answer" in r.json()["error"]


def test_quiz_needs_exactly_one_owner(client, editor_hdr, course, module):
    r = client.post("/api/quizzes", headers=editor_hdr,
                    json={"title": "T", "courseId": course.id, "moduleId": module.id})
    assert r.status_code == 400


def test_final_exam_must_belong_to_course(client, editor_hdr, module):
    r = client.post("/api/quizzes", headers=editor_hdr, json={"title": "T", "moduleId": module.id, "isFinalExam": True})
    assert r.status_code == 400
    assert r.json() == {"error": "A final exam must belong to a course"}


def test_owner_must_exist(client, editor_hdr):
    r = client.post("/api/quizzes", headers=editor_hdr, json={"title": "T", "lessonId": 999})
    assert r.status_code == 404
    assert r.json() == {"error": "Lesson not found"}


def test_passing_score_bounds(client, editor_hdr, module):
    r = client.post("/api/quizzes", headers=editor_hdr, json={"title": "T", "moduleId": module.id, "passingScore": 101})
    assert r.status_code == 422


def test_add_and_edit_questions(client, editor_hdr, quiz_id):
    added = client.post(f"/api/quizzes/{quiz_id}/questions", headers=editor_hdr, json=question("c", correct=1))
    assert added.status_code == 201
    assert added.json()["orderIndex"] == 2

    qid = added.json()["id"]
    edited = client.put(f"/api/quizzes/questions/{qid}", headers=editor_hdr, json={"question": "c?"})
    assert edited.json()["question"] == "c?"

    assert client.delete(f"/api/quizzes/questions/{qid}", headers=editor_hdr).status_code == 200
    assert len(client.get(f"/api/quizzes/{quiz_id}", headers=editor_hdr).json()["questions"]) == 2


def test_answer_edit_keeps_single_key(client, editor_hdr, quiz_id):
    answers = client.get(f"/api/quizzes/{quiz_id}", headers=editor_hdr).json()["questions"][0]["answers"]
    right, wrong = answers[0], answers[1]

    r = client.put(f"/api/quizzes/answers/{wrong['id']}", headers=editor_hdr, json={"isCorrect": True})
    assert r.status_code == 400

    r = client.put(f"/api/quizzes/answers/{right['id']}", headers=editor_hdr, json={"answer": "reworded"})
    assert r.status_code == 200
    assert r.json()["answer"] == "reworded"
    assert r.json()["isCorrect"] is True


def test_update_and_delete_quiz(client, editor_hdr, quiz_id, module):
    r = client.put(f"/api/quizzes/{quiz_id}", headers=editor_hdr, json={"passingScore": 50})
    assert r.json()["passingScore"] == 50
    assert client.put(f"/api/quizzes/{quiz_id}", headers=editor_hdr, json={"isFinalExam": True}).status_code == 400

    assert client.get(f"/api/quizzes/module/{module.id}").status_code == 200
    assert client.delete(f"/api/quizzes/{quiz_id}", headers=editor_hdr).status_code == 200
    assert client.get(f"/api/quizzes/{quiz_id}").status_code == 404


def test_final_exam_lookup(client, course, final_exam):
    body = client.get(f"/api/quizzes/course/{course.id}/final").json()
    assert body["id"] == final_exam.id
    assert client.get("/api/quizzes/course/999/final").json() == {"error": "Final exam not found"}


def test_course_has_one_final_exam(client, editor_hdr, course, final_exam):
    r = client.post("/api/quizzes", headers=editor_hdr,
                    json={"title": "Second final", "courseId": course.id, "isFinalExam": True})
    assert r.status_code == 400
    assert r.json() == {"error": "Course already has a final exam"}

    review = client.post("/api/quizzes", headers=editor_hdr, json={"title": "Review", "courseId": course.id})
    assert review.status_code == 201
    r = client.put(f"/api/quizzes/{review.json()['id']}", headers=editor_hdr, json={"isFinalExam": True})
    assert r.status_code == 400
    assert r.json() == {"error": "Course already has a final exam"}

    # editing the existing final exam is still allowed
    r = client.put(f"/api/quizzes/{final_exam.id}", headers=editor_hdr, json={"isFinalExam": True, "passingScore": 80})
    assert r.status_code == 200
