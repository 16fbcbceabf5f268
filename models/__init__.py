from models.base import Base
from models.quiz import Quiz, QuizStatus
from models.session import Attempt, Answer, AttemptStatus, TIMEOUT_SENTINEL
from models.winner import Winner, RewardClaim, ClaimStatus

__all__ = [
    "Base",
    "Quiz",
    "QuizStatus",
    "Attempt",
    "Answer",
    "AttemptStatus",
    "TIMEOUT_SENTINEL",
    "Winner",
    "RewardClaim",
    "ClaimStatus",
]
