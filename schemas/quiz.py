from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Stored and transported JSON is camelCase; Python code uses snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Question(CamelModel):
    """A single question with its answer. Never sent to a player."""
    id: str = Field(..., description="Stable question id, unique within the quiz")
    text: str = Field(..., description="The question text", examples=["What is 2+2?"])
    options: List[str] = Field(..., description="Answer options (2-6 items)")
    correct_index: int = Field(..., description="Index of the correct option (0-based)")


class QuestionPublic(CamelModel):
    """Question as served during play, without the correct index."""
    id: str
    text: str
    options: List[str]

    @classmethod
    def from_question(cls, question: dict) -> "QuestionPublic":
        return cls(id=question["id"], text=question["text"], options=list(question["options"]))


class RewardPool(CamelModel):
    tier: int = Field(..., description="Tier number, 1 is paid first")
    name: str = ""
    winner_count: int = Field(..., description="How many consecutive ranks this tier covers")
    percentage: int = Field(..., description="Share of the total reward, in percent")


class StakeRequirement(CamelModel):
    token: str
    amount: str


class QuizDocument(CamelModel):
    """Complete quiz record as exchanged with storage or other services."""
    id: int
    creator_wallet: str
    title: str
    description: str = ""
    questions: List[Question]
    reward_token: str
    reward_amount: str
    winner_limit: int
    time_per_question: int
    reward_pools: List[RewardPool] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    stake_requirement: Optional[StakeRequirement] = None
    nft_enabled: bool = False
    nft_artwork_url: Optional[str] = None
    status: str = "active"
    current_winners: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QuestionsDocument(CamelModel):
    """Storage format of `quizzes.questions_json`."""
    questions: List[Question]
    version: int = 1


class Answer(CamelModel):
    question_id: str
    selected_index: int
    timestamp: Optional[int] = Field(None, description="Client clock, audit only")
    server_timestamp: int
