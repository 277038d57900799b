"""
Default page controllers.

One small function per page that loads what the page shows and puts it
in `display.data`. They run after the page template is mounted.
"""

import logging

from .pages import PageContext, PageControllerRegistry

logger = logging.getLogger(__name__)


async def load_personal_dashboard(ctx: PageContext) -> None:
    ctx.display.data["students"] = await ctx.training.get_my_students()
    ctx.display.data["workouts"] = await ctx.training.get_personal_workouts()


async def load_exercises(ctx: PageContext) -> None:
    ctx.display.data["exercises"] = await ctx.training.get_personal_exercises()


async def load_create_workout(ctx: PageContext) -> None:
    ctx.display.data["students"] = await ctx.training.get_my_students()
    ctx.display.data["exercises"] = await ctx.training.get_personal_exercises()


async def load_student_details(ctx: PageContext) -> None:
    student_id = ctx.params["id"]
    ctx.display.data["student"] = await ctx.training.get_user_data(student_id)
    ctx.display.data["workouts"] = await ctx.training.get_student_workouts(student_id)


async def load_volume_analysis(ctx: PageContext) -> None:
    student_id = ctx.params["id"]
    ctx.display.data["student"] = await ctx.training.get_user_data(student_id)
    ctx.display.data["feedbacks"] = await ctx.training.get_student_feedbacks(student_id)


async def load_personal_feedbacks(ctx: PageContext) -> None:
    ctx.display.data["feedbacks"] = await ctx.training.get_personal_feedbacks()


async def load_student_workouts(ctx: PageContext) -> None:
    ctx.display.data["profile"] = await ctx.training.get_current_user_data()
    ctx.display.data["workouts"] = await ctx.training.get_student_workouts()


def build_default_registry() -> PageControllerRegistry:
    """Registry wiring every page resource to its controllers."""
    registry = PageControllerRegistry()
    registry.register("pages/personal/dashboard.html", load_personal_dashboard)
    registry.register("pages/personal/exercises.html", load_exercises)
    registry.register("pages/personal/create-workout.html", load_create_workout)
    registry.register("pages/personal/student-details.html", load_student_details)
    registry.register("pages/personal/volume-analysis.html", load_volume_analysis)
    registry.register("pages/personal/feedbacks.html", load_personal_feedbacks)
    registry.register("pages/student/dashboard.html", load_student_workouts)
    registry.register("pages/student/view-workout.html", load_student_workouts)
    logger.debug("Built default page controller registry")
    return registry
