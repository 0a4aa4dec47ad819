import asyncio

import pytest

from academy.core.errors import AccessDeniedError, LimitExceededError, NotFoundError
from academy.quiz import service
from academy.quiz.models import QuizUpdate

ALL_RIGHT = [
    {"question_id": "q1", "user_answer": "4"},
    {"question_id": "q2", "user_answer": True},
    {"question_id": "q3", "user_answer": " paris "},
]


async def test_create_quiz_assigns_ids_and_total_points(quiz):
    assert [q["id"] for q in quiz["questions"]] == ["q1", "q2", "q3"]
    assert quiz["total_points"] == 4
    assert quiz["quiz_id"].startswith("QUZ_")


async def test_update_quiz_recomputes_total_points(db, quiz):
    questions = [
        {"question": "One", "type": "true-false", "correct_answer": False, "points": 5},
        {"question": "Two", "type": "true-false", "correct_answer": True},
    ]
    updated = await service.update_quiz(db, quiz["quiz_id"], QuizUpdate(questions=questions, title="Renamed"))
    assert updated["total_points"] == 6
    assert updated["title"] == "Renamed"


async def test_update_missing_quiz(db):
    with pytest.raises(NotFoundError):
        await service.update_quiz(db, "QUZ_NOPE", QuizUpdate(title="x"))


async def test_start_attempt_hides_answers(db, quiz, student):
    started = await service.start_attempt(db, quiz["quiz_id"], student)
    assert started["current_attempt"] == 1
    assert started["max_attempts"] == 3
    for question in started["quiz"]["questions"]:
        assert "correct_answer" not in question
        assert "explanation" not in question


async def test_start_attempt_randomizes_order(db, make_quiz, student):
    quiz = await make_quiz(randomize_questions=True)
    seen = set()
    for _ in range(30):
        started = await service.start_attempt(db, quiz["quiz_id"], student)
        seen.add(tuple(q["id"] for q in started["quiz"]["questions"]))
    assert all(sorted(order) == ["q1", "q2", "q3"] for order in seen)
    assert len(seen) > 1


async def test_unpublished_quiz_only_for_creator(db, make_quiz, student, admin):
    draft = await make_quiz(is_published=False)
    with pytest.raises(AccessDeniedError):
        await service.start_attempt(db, draft["quiz_id"], student)
    started = await service.start_attempt(db, draft["quiz_id"], admin)
    assert started["current_attempt"] == 1


async def test_start_attempt_requires_purchase(db, quiz, outsider):
    with pytest.raises(AccessDeniedError):
        await service.start_attempt(db, quiz["quiz_id"], outsider)


async def test_attempt_cap_blocks_start(db, make_quiz, student):
    quiz = await make_quiz(attempts=2)
    for _ in range(2):
        await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], ALL_RIGHT)
    with pytest.raises(LimitExceededError):
        await service.start_attempt(db, quiz["quiz_id"], student)


async def test_unlimited_attempts_never_capped(db, make_quiz, student):
    quiz = await make_quiz(attempts=-1)
    for _ in range(6):
        await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], [])
    started = await service.start_attempt(db, quiz["quiz_id"], student)
    assert started["current_attempt"] == 7
    assert started["max_attempts"] == -1


async def test_submit_scores_and_numbers_attempts(db, quiz, student):
    first = await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], ALL_RIGHT, 120)
    second = await service.submit_attempt(
        db, quiz["quiz_id"], student["user_id"], [{"question_id": "q1", "user_answer": "4"}]
    )
    assert (first["score"], first["percentage"], first["passed"]) == (4, 100, True)
    assert (second["score"], second["percentage"], second["passed"]) == (2, 50, False)
    assert [first["attempt_number"], second["attempt_number"]] == [1, 2]

    stored = await db.quiz_attempts.find_one({"attempt_id": first["attempt_id"]})
    assert stored["time_spent"] == 120
    assert stored["course_id"] == quiz["course_id"]


async def test_submit_accepts_legacy_answer_key(db, quiz, student):
    result = await service.submit_attempt(
        db, quiz["quiz_id"], student["user_id"], [{"question_id": "q3", "answer": "PARIS"}]
    )
    assert result["score"] == 1


async def test_submit_reveals_answers_only_when_allowed(db, make_quiz, student):
    open_quiz = await make_quiz()
    result = await service.submit_attempt(db, open_quiz["quiz_id"], student["user_id"], ALL_RIGHT)
    assert result["results"]["answers"][0]["correct_answer"] == "4"
    assert result["results"]["answers"][0]["explanation"] == "Basic addition"

    no_answers = await make_quiz(show_correct_answers=False)
    result = await service.submit_attempt(db, no_answers["quiz_id"], student["user_id"], ALL_RIGHT)
    assert "correct_answer" not in result["results"]["answers"][0]
    assert result["results"]["answers"][0]["is_correct"] is True

    hidden = await make_quiz(show_results=False)
    result = await service.submit_attempt(db, hidden["quiz_id"], student["user_id"], ALL_RIGHT)
    assert "results" not in result
    assert result["percentage"] == 100


async def test_concurrent_submits_get_distinct_attempt_numbers(db, quiz, student):
    results = await asyncio.gather(*[
        service.submit_attempt(db, quiz["quiz_id"], student["user_id"], ALL_RIGHT)
        for _ in range(10)
    ])
    numbers = sorted(r["attempt_number"] for r in results)
    assert numbers == list(range(1, 11))


async def test_submit_missing_quiz(db, student):
    with pytest.raises(NotFoundError):
        await service.submit_attempt(db, "QUZ_NOPE", student["user_id"], ALL_RIGHT)


async def test_list_course_quizzes_hides_foreign_drafts(db, make_quiz, student, outsider):
    await make_quiz(title="Live")
    await make_quiz(title="Draft", is_published=False)

    quizzes = await service.list_course_quizzes(db, "CRS_PY101", student)
    assert [q["title"] for q in quizzes] == ["Live"]
    assert "correct_answer" not in quizzes[0]["questions"][0]
    assert quizzes[0]["user_attempts"] == 0

    with pytest.raises(AccessDeniedError):
        await service.list_course_quizzes(db, "CRS_PY101", outsider)


async def test_list_user_attempts_newest_first(db, make_quiz, student):
    quiz = await make_quiz(title="Week 1")
    await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], [])
    await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], ALL_RIGHT)

    attempts = await service.list_user_attempts(db, "CRS_PY101", student["user_id"])
    assert [a["attempt_number"] for a in attempts] == [2, 1]
    assert attempts[0]["quiz_title"] == "Week 1"


async def test_results_analytics(db, quiz, student, make_user):
    other = await make_user("other", purchased=["CRS_PY101"])
    await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], ALL_RIGHT, 100)
    await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], [], 50)
    await service.submit_attempt(db, quiz["quiz_id"], other["user_id"], ALL_RIGHT[:1], 61)

    report = await service.compute_results_analytics(db, quiz["quiz_id"])
    analytics = report["analytics"]
    assert analytics["total_participants"] == 2
    assert analytics["total_attempts"] == 3
    assert analytics["average_score"] == 50.0
    assert analytics["pass_rate"] == 33.3
    assert analytics["average_time"] == 70
    assert analytics["highest_score"] == 100
    assert analytics["lowest_score"] == 0
    names = {a["student_name"] for a in report["attempts"]}
    assert names == {"Student Tester", "Other Tester"}
    assert {a["student_email"] for a in report["attempts"]} == {"student@example.com", "other@example.com"}


async def test_results_analytics_without_attempts(db, quiz):
    analytics = (await service.compute_results_analytics(db, quiz["quiz_id"]))["analytics"]
    assert analytics["total_attempts"] == 0
    assert analytics["highest_score"] == 0
    assert analytics["lowest_score"] == 0
    assert analytics["pass_rate"] == 0


async def test_delete_quiz_removes_attempts_and_counters(db, quiz, student):
    await service.submit_attempt(db, quiz["quiz_id"], student["user_id"], ALL_RIGHT)
    removed = await service.delete_quiz(db, quiz["quiz_id"])
    assert removed == 1
    assert await db.quiz_attempts.count_documents({"quiz_id": quiz["quiz_id"]}) == 0
    assert await db.quiz_attempt_counters.count_documents({"quiz_id": quiz["quiz_id"]}) == 0
    with pytest.raises(NotFoundError):
        await service.get_quiz(db, quiz["quiz_id"])


async def test_set_published_and_list_all(db, quiz, student):
    await service.set_published(db, quiz["quiz_id"], False)
    with pytest.raises(AccessDeniedError):
        await service.start_attempt(db, quiz["quiz_id"], student)

    listed = await service.list_all_quizzes(db)
    assert listed[0]["question_count"] == 3
    assert listed[0]["attempt_count"] == 0
