from sqlalchemy import Column, Integer, String, JSON, Boolean, DateTime, Text, CheckConstraint
from models.base import Base, TimestampMixin


class QuizStatus:
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Quiz(Base, TimestampMixin):
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    creator_wallet = Column(String(64), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # {"questions": [{"id", "text", "options", "correctIndex"}], "version": 1}
    questions_json = Column(JSON, nullable=False)

    # Amounts are integers in the token's smallest unit, kept as decimal strings
    reward_token = Column(String(64), nullable=False)
    reward_amount = Column(String(78), nullable=False)
    winner_limit = Column(Integer, nullable=False)
    current_winners = Column(Integer, default=0, server_default="0", nullable=False)
    time_per_question = Column(Integer, default=15, nullable=False)

    # [{"tier", "name", "winnerCount", "percentage"}], ordered by tier
    reward_pools = Column(JSON, nullable=True)

    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    stake_token = Column(String(64), nullable=True)
    stake_amount = Column(String(78), nullable=True)
    nft_enabled = Column(Boolean, default=False, nullable=False)
    nft_artwork_url = Column(String(512), nullable=True)

    status = Column(String(20), default=QuizStatus.ACTIVE, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("current_winners <= winner_limit", name="ck_quiz_winners_within_limit"),
    )

    @property
    def questions(self) -> list:
        return (self.questions_json or {}).get("questions", [])
