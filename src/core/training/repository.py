"""
Training data access: students, exercises, workouts and feedback.

Plain request/response glue over the document store, scoped to whoever is
signed in. Reads never raise: a failed read is logged and comes back as
an empty list or None, because pages render what they can. Writes report
a TrainingResult so the page can show a message.

Secondary bookkeeping (a student's assigned-workout list, a trainer's
student list) is best-effort and goes through the reconciliation log.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..session.auth import AuthManager, DocumentStore
from ..session.models import USERS, Identity, Role, utcnow
from .helpers import convert_youtube_url, day_of_week, feedback_key, newest_first, week_identifier

logger = logging.getLogger(__name__)

EXERCISES = "exercises"
WORKOUTS = "workouts"
FEEDBACKS = "feedbacks"


class NotAuthenticatedError(Exception):
    """Raised when a scoped operation runs without a session."""
    pass


@dataclass
class TrainingResult:
    """Outcome of a training write."""
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None


class TrainingRepository:
    """
    Document-store access for the training side of the application.

    Each method corresponds to something a page needs. Records come back
    as dicts with their document key under ``id``.
    """

    def __init__(self, store: DocumentStore, auth: AuthManager) -> None:
        self._store = store
        self._auth = auth

    def _require_identity(self) -> Identity:
        identity = self._auth.current_identity
        if identity is None:
            raise NotAuthenticatedError("User not authenticated")
        return identity

    # -- Users ----------------------------------------------------------------

    async def get_current_user_data(self) -> Optional[dict[str, Any]]:
        identity = self._auth.current_identity
        if identity is None:
            return None
        return await self.get_user_data(identity.uid)

    async def get_user_data(self, uid: str) -> Optional[dict[str, Any]]:
        try:
            document = await self._store.get(USERS, uid)
        except Exception as e:
            logger.error("Failed to get user data", extra={"uid": uid, "error": str(e)})
            return None
        return {"id": uid, **document} if document is not None else None

    async def get_my_students(self) -> list[dict[str, Any]]:
        """
        Students linked to the signed-in trainer.

        The query result is authoritative; the trainer's own `students`
        list is rewritten from it when it has drifted (read repair).
        """
        identity = self._auth.current_identity
        if identity is None:
            return []

        try:
            found = await self._store.query(
                USERS, personalId=identity.uid, userType=Role.STUDENT.value
            )
        except Exception as e:
            logger.error("Failed to fetch students", extra={"uid": identity.uid, "error": str(e)})
            return []

        students = [{**doc, "uid": key} for key, doc in found.items()]
        logger.debug("Students found", extra={"uid": identity.uid, "count": len(students)})

        if students:
            student_ids = [s["uid"] for s in students]
            await self._auth.reconciliation.run_step(
                "get_my_students",
                "repair_student_list",
                identity.uid,
                lambda: self._store.update(USERS, identity.uid, {"students": student_ids}),
            )

        return students

    # -- Exercises ------------------------------------------------------------

    async def create_exercise(
        self,
        name: str,
        description: str = "",
        video_url: str = "",
        muscle_group: str = "",
    ) -> TrainingResult:
        try:
            identity = self._require_identity()
            exercise_id = self._store.new_key(EXERCISES)
            await self._store.set(EXERCISES, exercise_id, {
                "id": exercise_id,
                "name": name,
                "description": description or "",
                "muscleGroup": muscle_group or "",
                "videoUrl": convert_youtube_url(video_url),
                "personalId": identity.uid,
                "createdBy": identity.uid,
                "createdAt": utcnow(),
            })
            logger.info("Exercise created", extra={"exercise_id": exercise_id})
            return TrainingResult(success=True, id=exercise_id)
        except Exception as e:
            logger.error("Failed to create exercise", extra={"error": str(e)})
            return TrainingResult(success=False, error=str(e))

    async def get_personal_exercises(self) -> list[dict[str, Any]]:
        """Exercises owned by the trainer, newest first."""
        try:
            identity = self._require_identity()
            found = await self._store.query(EXERCISES, createdBy=identity.uid)
            if not found:
                # Older records only carry personalId.
                found = await self._store.query(EXERCISES, personalId=identity.uid)
            return newest_first(found.values())
        except Exception as e:
            logger.error("Failed to fetch exercises", extra={"error": str(e)})
            return []

    async def get_exercise(self, exercise_id: str) -> Optional[dict[str, Any]]:
        try:
            return await self._store.get(EXERCISES, exercise_id)
        except Exception as e:
            logger.error("Failed to get exercise", extra={"exercise_id": exercise_id, "error": str(e)})
            return None

    async def delete_exercise(self, exercise_id: str) -> TrainingResult:
        try:
            await self._store.delete(EXERCISES, exercise_id)
            return TrainingResult(success=True, id=exercise_id)
        except Exception as e:
            logger.error("Failed to delete exercise", extra={"exercise_id": exercise_id, "error": str(e)})
            return TrainingResult(success=False, error=str(e))

    # -- Workouts -------------------------------------------------------------

    async def create_workout(
        self,
        name: str,
        description: str = "",
        days: Optional[dict[str, Any]] = None,
        student_id: Optional[str] = None,
    ) -> TrainingResult:
        try:
            identity = self._require_identity()
            workout_id = self._store.new_key(WORKOUTS)
            await self._store.set(WORKOUTS, workout_id, {
                "id": workout_id,
                "name": name,
                "description": description or "",
                "personalId": identity.uid,
                "studentId": student_id or None,
                "days": days or {},
                "createdAt": utcnow(),
            })

            if student_id:
                await self._auth.reconciliation.run_step(
                    "create_workout",
                    "assign_workout",
                    student_id,
                    lambda: self._store.array_union(USERS, student_id, "assignedWorkouts", [workout_id]),
                )

            logger.info("Workout created", extra={"workout_id": workout_id, "student_id": student_id})
            return TrainingResult(success=True, id=workout_id)
        except Exception as e:
            logger.error("Failed to create workout", extra={"error": str(e)})
            return TrainingResult(success=False, error=str(e))

    async def get_personal_workouts(self) -> list[dict[str, Any]]:
        try:
            identity = self._require_identity()
            found = await self._store.query(WORKOUTS, personalId=identity.uid)
            return newest_first(found.values())
        except Exception as e:
            logger.error("Failed to fetch trainer workouts", extra={"error": str(e)})
            return []

    async def get_student_workouts(self, student_id: Optional[str] = None) -> list[dict[str, Any]]:
        """
        Workouts assigned to a student (the signed-in one by default).

        Reads the student's `assignedWorkouts` and fetches each workout
        directly; falls back to a query by `studentId` when the list is
        empty.
        """
        try:
            identity = self._require_identity()
            target_id = student_id or identity.uid

            profile = await self._store.get(USERS, target_id)
            assigned = (profile or {}).get("assignedWorkouts") or []

            if assigned:
                workouts = []
                for workout_id in assigned:
                    workout = await self.get_workout(workout_id)
                    if workout is not None:
                        workouts.append(workout)
                return newest_first(workouts)

            logger.debug("No assigned workouts, querying by student", extra={"student_id": target_id})
            found = await self._store.query(WORKOUTS, studentId=target_id)
            return newest_first({**doc, "id": key} for key, doc in found.items())
        except Exception as e:
            logger.error("Failed to fetch student workouts", extra={"error": str(e)})
            return []

    async def get_workout(self, workout_id: str) -> Optional[dict[str, Any]]:
        try:
            document = await self._store.get(WORKOUTS, workout_id)
        except Exception as e:
            logger.error("Failed to get workout", extra={"workout_id": workout_id, "error": str(e)})
            return None
        return {**document, "id": workout_id} if document is not None else None

    async def update_workout(self, workout_id: str, updates: dict[str, Any]) -> TrainingResult:
        try:
            await self._store.update(WORKOUTS, workout_id, updates)
            return TrainingResult(success=True, id=workout_id)
        except Exception as e:
            logger.error("Failed to update workout", extra={"workout_id": workout_id, "error": str(e)})
            return TrainingResult(success=False, error=str(e))

    async def delete_workout(self, workout_id: str) -> TrainingResult:
        try:
            workout = await self.get_workout(workout_id)
            student_id = workout.get("studentId") if workout else None
            if student_id:
                await self._auth.reconciliation.run_step(
                    "delete_workout",
                    "unassign_workout",
                    student_id,
                    lambda: self._store.array_remove(USERS, student_id, "assignedWorkouts", [workout_id]),
                )
            await self._store.delete(WORKOUTS, workout_id)
            return TrainingResult(success=True, id=workout_id)
        except Exception as e:
            logger.error("Failed to delete workout", extra={"workout_id": workout_id, "error": str(e)})
            return TrainingResult(success=False, error=str(e))

    # -- Feedbacks ------------------------------------------------------------

    async def create_feedback(
        self,
        workout_id: str,
        day: Optional[str] = None,
        effort_level: int = 5,
        sensation: str = "ideal",
        has_pain: bool = False,
        pain_location: str = "",
        comment: str = "",
        week: Optional[str] = None,
        workout_name: str = "",
    ) -> TrainingResult:
        """
        Record a student's feedback on a workout day.

        Keyed by student, workout, week and day; a second submission for
        the same day and week is rejected.
        """
        try:
            identity = self._require_identity()
            now = utcnow()
            week = week or week_identifier(now)
            day = day or day_of_week(now)
            key = feedback_key(identity.uid, workout_id, week, day)

            if await self._store.get(FEEDBACKS, key) is not None:
                return TrainingResult(
                    success=False,
                    error="Feedback already sent for this day this week",
                )

            await self._store.set(FEEDBACKS, key, {
                "id": key,
                "studentId": identity.uid,
                "workoutId": workout_id,
                "workoutName": workout_name,
                "weekIdentifier": week,
                "dayOfWeek": day,
                "effortLevel": effort_level,
                "sensation": sensation,
                "hasPain": has_pain,
                "painLocation": pain_location if has_pain else "",
                "comment": comment or "",
                "createdAt": now,
            })
            logger.info("Feedback recorded", extra={"feedback_id": key})
            return TrainingResult(success=True, id=key)
        except Exception as e:
            logger.error("Failed to create feedback", extra={"error": str(e)})
            return TrainingResult(success=False, error=str(e))

    async def has_feedback_for_day(
        self,
        workout_id: str,
        day: str,
        week: Optional[str] = None,
    ) -> bool:
        identity = self._auth.current_identity
        if identity is None:
            return False
        key = feedback_key(identity.uid, workout_id, week or week_identifier(utcnow()), day)
        try:
            return await self._store.get(FEEDBACKS, key) is not None
        except Exception as e:
            logger.error("Failed to check feedback", extra={"feedback_id": key, "error": str(e)})
            return False

    async def get_student_feedbacks(self, student_id: Optional[str] = None) -> list[dict[str, Any]]:
        try:
            identity = self._require_identity()
            found = await self._store.query(FEEDBACKS, studentId=student_id or identity.uid)
            return newest_first(found.values())
        except Exception as e:
            logger.error("Failed to fetch student feedbacks", extra={"error": str(e)})
            return []

    async def get_personal_feedbacks(self) -> list[dict[str, Any]]:
        """Feedback on every workout the trainer created."""
        try:
            identity = self._require_identity()
            workouts = await self._store.query(WORKOUTS, personalId=identity.uid)
        except Exception as e:
            logger.error("Failed to fetch trainer feedbacks", extra={"error": str(e)})
            return []

        feedbacks: list[dict[str, Any]] = []
        for workout_id in workouts:
            try:
                found = await self._store.query(FEEDBACKS, workoutId=workout_id)
            except Exception as e:
                logger.warning(
                    "Failed to fetch feedback for workout",
                    extra={"workout_id": workout_id, "error": str(e)},
                )
                continue
            feedbacks.extend(found.values())

        return newest_first(feedbacks)

    async def get_feedback(self, feedback_id: str) -> Optional[dict[str, Any]]:
        try:
            return await self._store.get(FEEDBACKS, feedback_id)
        except Exception as e:
            logger.error("Failed to get feedback", extra={"feedback_id": feedback_id, "error": str(e)})
            return None
