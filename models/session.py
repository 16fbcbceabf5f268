from sqlalchemy import Column, Integer, String, BigInteger, ForeignKey, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin


class AttemptStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    TERMINAL = (COMPLETED, FAILED, TIMEOUT)


# selected_index recorded when the deadline passed before the answer arrived
TIMEOUT_SENTINEL = -1


class Attempt(Base, TimestampMixin):
    __tablename__ = "attempts"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(64), unique=True, index=True, nullable=False)
    quiz_id = Column(Integer, ForeignKey("quizzes.id"), index=True, nullable=False)
    wallet_address = Column(String(64), index=True, nullable=False)

    # Server clock, epoch milliseconds. Set once; every deadline derives from it.
    start_time_ms = Column(BigInteger, nullable=False)
    end_time_ms = Column(BigInteger, nullable=True)

    # Question ids in the order served to this wallet, fixed at start
    question_order = Column(JSON, nullable=False)
    total_questions = Column(Integer, nullable=False)

    status = Column(String(20), default=AttemptStatus.ACTIVE, nullable=False)
    score = Column(Integer, default=0, nullable=False)
    completion_time_ms = Column(BigInteger, nullable=True)
    is_winner = Column(Boolean, default=False, nullable=False)

    answers = relationship(
        "Answer",
        back_populates="attempt",
        order_by="Answer.ordinal",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("quiz_id", "wallet_address", name="uq_attempt_quiz_wallet"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == AttemptStatus.ACTIVE


class Answer(Base, TimestampMixin):
    """One recorded answer. Rows are only ever inserted."""
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), index=True, nullable=False)
    ordinal = Column(Integer, nullable=False)
    question_id = Column(String(64), nullable=False)
    selected_index = Column(Integer, nullable=False)
    client_timestamp = Column(BigInteger, nullable=True)  # audit only
    server_timestamp = Column(BigInteger, nullable=False)

    attempt = relationship("Attempt", back_populates="answers")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
        UniqueConstraint("attempt_id", "ordinal", name="uq_answer_attempt_ordinal"),
    )
