"""
Unit tests for training data access.
"""

import pytest

from src.core.session.models import USERS
from src.core.training.repository import EXERCISES, FEEDBACKS, WORKOUTS

pytestmark = pytest.mark.anyio


async def sign_in(auth, email: str) -> None:
    result = await auth.login(email, "secret1")
    assert result.success, result.error


class TestStudents:

    async def test_my_students_and_list_repair(self, auth, store, training, make_trainer, make_student):
        trainer_uid = make_trainer()
        student_uid = make_student(personal_id=trainer_uid)
        await sign_in(auth, "coach@example.com")

        students = await training.get_my_students()

        assert [s["uid"] for s in students] == [student_uid]
        assert store.peek(USERS, trainer_uid)["students"] == [student_uid]

    async def test_signed_out_has_no_students(self, training):
        assert await training.get_my_students() == []

    async def test_current_user_data(self, auth, training, make_student):
        uid = make_student()
        await sign_in(auth, "ana@example.com")

        profile = await training.get_current_user_data()

        assert profile["id"] == uid
        assert profile["name"] == "Ana"


class TestExercises:

    async def test_create_and_list(self, auth, training, make_trainer):
        make_trainer()
        await sign_in(auth, "coach@example.com")

        created = await training.create_exercise(
            "Squat", video_url="https://www.youtube.com/watch?v=abc123"
        )
        exercises = await training.get_personal_exercises()

        assert created.success
        assert [e["name"] for e in exercises] == ["Squat"]
        assert exercises[0]["videoUrl"] == "https://www.youtube.com/embed/abc123"

    async def test_legacy_exercises_found_by_personal_id(self, auth, store, training, make_trainer):
        trainer_uid = make_trainer()
        store.seed(EXERCISES, "old", {"name": "Lunge", "personalId": trainer_uid})
        await sign_in(auth, "coach@example.com")

        exercises = await training.get_personal_exercises()

        assert [e["name"] for e in exercises] == ["Lunge"]

    async def test_create_requires_session(self, training):
        result = await training.create_exercise("Squat")

        assert not result.success
        assert result.error


class TestWorkouts:

    async def test_assigned_workout_reaches_student(self, auth, training, make_trainer, make_student):
        trainer_uid = make_trainer()
        student_uid = make_student(personal_id=trainer_uid)
        await sign_in(auth, "coach@example.com")

        created = await training.create_workout("Leg day", student_id=student_uid)
        await auth.logout()
        await sign_in(auth, "ana@example.com")
        workouts = await training.get_student_workouts()

        assert [w["id"] for w in workouts] == [created.id]

    async def test_falls_back_to_query_without_assigned_list(self, auth, store, training, make_trainer, make_student):
        trainer_uid = make_trainer()
        student_uid = make_student(personal_id=trainer_uid)
        store.seed(WORKOUTS, "w-old", {"name": "Old plan", "studentId": student_uid, "personalId": trainer_uid})
        await sign_in(auth, "coach@example.com")

        workouts = await training.get_student_workouts(student_uid)

        assert [w["id"] for w in workouts] == ["w-old"]

    async def test_assignment_failure_is_logged(self, auth, training, make_trainer):
        make_trainer()
        await sign_in(auth, "coach@example.com")

        result = await training.create_workout("Leg day", student_id="ghost")

        assert result.success
        assert [f.step for f in auth.reconciliation.failures()] == ["assign_workout"]

    async def test_update_and_delete(self, auth, store, training, make_trainer, make_student):
        trainer_uid = make_trainer()
        student_uid = make_student(personal_id=trainer_uid)
        await sign_in(auth, "coach@example.com")
        created = await training.create_workout("Leg day", student_id=student_uid)

        assert (await training.update_workout(created.id, {"name": "Legs"})).success
        assert (await training.get_workout(created.id))["name"] == "Legs"

        assert (await training.delete_workout(created.id)).success
        assert store.peek(WORKOUTS, created.id) is None
        assert store.peek(USERS, student_uid)["assignedWorkouts"] == []


class TestFeedbacks:

    async def test_one_feedback_per_day_and_week(self, auth, training, make_student):
        make_student()
        await sign_in(auth, "ana@example.com")

        first = await training.create_feedback("w1", day="monday", week="2024-7", effort_level=8)
        second = await training.create_feedback("w1", day="monday", week="2024-7")

        assert first.success
        assert not second.success
        assert "already" in second.error
        assert await training.has_feedback_for_day("w1", "monday", week="2024-7")
        assert not await training.has_feedback_for_day("w1", "tuesday", week="2024-7")

    async def test_trainer_sees_feedback_on_own_workouts(self, auth, store, training, make_trainer, make_student):
        trainer_uid = make_trainer()
        make_student(personal_id=trainer_uid)
        store.seed(WORKOUTS, "w1", {"name": "Leg day", "personalId": trainer_uid})
        store.seed(WORKOUTS, "w2", {"name": "Other", "personalId": "someone-else"})
        store.seed(FEEDBACKS, "f1", {"workoutId": "w1", "effortLevel": 7})
        store.seed(FEEDBACKS, "f2", {"workoutId": "w2", "effortLevel": 3})
        await sign_in(auth, "coach@example.com")

        feedbacks = await training.get_personal_feedbacks()

        assert [f["effortLevel"] for f in feedbacks] == [7]
