"""
Training data: students, exercises, workouts and feedback.
"""

from .helpers import convert_youtube_url, feedback_key, week_identifier
from .repository import NotAuthenticatedError, TrainingRepository, TrainingResult

__all__ = [
    "convert_youtube_url",
    "feedback_key",
    "week_identifier",
    "NotAuthenticatedError",
    "TrainingRepository",
    "TrainingResult",
]
