from typing import List, Optional

from pydantic import Field

from schemas.quiz import CamelModel, QuestionPublic


class StartSessionResponse(CamelModel):
    session_id: str
    questions: List[QuestionPublic] = Field(..., description="Shuffled order, answers stripped")
    time_per_question: int = Field(..., description="Seconds allowed per question")
    server_time: int = Field(..., description="Server clock in ms, for skew display only")


class SessionResult(CamelModel):
    session_id: str
    score: int
    total_questions: int
    completion_time_ms: int
    is_winner: bool = False
    reward_amount: Optional[str] = None
    rank: Optional[int] = None


class AnswerOutcome(CamelModel):
    """Response to one submitted answer.

    `correct` is None when the deadline had already passed; in that case
    `error` is TIME_EXPIRED and correctness is not revealed.
    """
    correct: Optional[bool] = None
    is_complete: bool
    status: str
    next_question: Optional[QuestionPublic] = None
    result: Optional[SessionResult] = None
    error: Optional[str] = None
