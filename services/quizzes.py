"""
Quiz moderation dashboard: visibility split and publish requests.
"""

from datetime import datetime

from db import BackendError, Filter
from log import get_logger
from services.aggregation import participant_count, safe_average, tally
from services.timerange import resolve_time_range

logger = get_logger(__name__)

QUIZ_COLUMNS = ("id", "is_public", "request", "questions", "created_at")


def empty_quiz_dashboard() -> dict:
    return {
        "totalQuizzes": 0,
        "publicQuizzes": 0,
        "privateQuizzes": 0,
        "pendingQuizzes": 0,
        "avgQuestions": 0,
    }


def get_quiz_dashboard_stats(
    backend, time_range: str = "this_year", now: datetime | None = None
) -> dict:
    """Live quizzes created in the window, split by visibility.

    ``pendingQuizzes`` counts quizzes whose owner asked for publication.
    """
    window = resolve_time_range(time_range, now)
    try:
        quizzes = backend.fetch_all(
            "quizzes",
            QUIZ_COLUMNS,
            [Filter("deleted_at", "is_null"), *window.filters()],
        )
    except BackendError as exc:
        logger.error("Error fetching quiz dashboard stats: %s", exc)
        return empty_quiz_dashboard()

    visibility = tally(quizzes, lambda q: "public" if q.get("is_public") else "private")
    total = len(quizzes)
    total_questions = sum(participant_count(q, "questions") for q in quizzes)

    return {
        "totalQuizzes": total,
        "publicQuizzes": visibility["public"],
        "privateQuizzes": visibility["private"],
        "pendingQuizzes": sum(1 for q in quizzes if q.get("request") is True),
        "avgQuestions": safe_average(total_questions, total),
    }
