"""Pure helpers behind the attempt state machine. No I/O."""
import random
import time
import uuid
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from core.config import settings

T = TypeVar("T")

Clock = Callable[[], int]


def now_ms() -> int:
    """Server wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def generate_session_id() -> str:
    return f"{settings.SESSION_ID_PREFIX}{uuid.uuid4().hex}"


def shuffle_questions(items: Sequence[T], seed: Optional[int] = None) -> List[T]:
    """
    Fisher-Yates permutation of `items`; the input is left untouched.

    `seed` exists for tests only. Without it the OS entropy source is used,
    so two sessions of the same quiz diverge.
    """
    rng = random.Random(seed) if seed is not None else random.SystemRandom()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def question_deadline(start_time_ms: int, ordinal: int, time_per_question_ms: int) -> int:
    """Last server timestamp at which the answer at `ordinal` is accepted."""
    return start_time_ms + ordinal * time_per_question_ms + time_per_question_ms


def is_within_time_limit(server_timestamp: int, question_start_time: int, time_per_question_ms: int) -> bool:
    return server_timestamp - question_start_time <= time_per_question_ms


def is_answer_correct(selected_index: int, correct_index: int) -> bool:
    return selected_index == correct_index


def is_answer_already_submitted(answers: Iterable, question_id: str) -> bool:
    return any(_field(a, "question_id") == question_id for a in answers)


def has_existing_attempt(attempts: Iterable, wallet_address: str, quiz_id) -> bool:
    return any(
        _field(a, "wallet_address") == wallet_address and _field(a, "quiz_id") == quiz_id
        for a in attempts
    )


def has_reached_winner_limit(current_winners: int, winner_limit: int) -> bool:
    return current_winners >= winner_limit


def is_eligible_for_reward(
    answers: Sequence,
    questions: Sequence[dict],
    session_start_time: int,
    time_per_question_ms: int,
) -> bool:
    """
    Re-check a finished attempt from its recorded answers alone.

    Every question answered, every answer correct, and every server
    timestamp inside its own deadline.
    """
    if len(answers) != len(questions):
        return False

    by_id = {q["id"]: q for q in questions}
    for ordinal, answer in enumerate(answers):
        question = by_id.get(_field(answer, "question_id"))
        if question is None:
            return False
        if not is_answer_correct(_field(answer, "selected_index"), question["correctIndex"]):
            return False
        question_start = session_start_time + ordinal * time_per_question_ms
        if not is_within_time_limit(_field(answer, "server_timestamp"), question_start, time_per_question_ms):
            return False
    return True


def sort_winners_by_time(winners: Sequence) -> list:
    """Fastest first; earlier record wins a tie."""
    return sorted(
        winners,
        key=lambda w: (_field(w, "completion_time_ms"), _field(w, "created_at")),
    )


def _field(obj, name: str):
    if isinstance(obj, dict):
        return obj[name]
    return getattr(obj, name)
