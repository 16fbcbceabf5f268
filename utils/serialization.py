from typing import List

from pydantic import TypeAdapter

from models.quiz import Quiz
from models.session import Attempt
from schemas.quiz import Answer, QuizDocument, Question, QuestionsDocument, StakeRequirement

QUESTIONS_VERSION = 1

_ANSWER_LIST = TypeAdapter(List[Answer])


def serialize_quiz(quiz: QuizDocument) -> str:
    return quiz.model_dump_json(by_alias=True)


def deserialize_quiz(data: str) -> QuizDocument:
    return QuizDocument.model_validate_json(data)


def serialize_questions(questions: List[Question]) -> dict:
    """Storage document for `quizzes.questions_json`."""
    return QuestionsDocument(questions=questions, version=QUESTIONS_VERSION).model_dump(by_alias=True)


def deserialize_questions(data: dict) -> List[Question]:
    return QuestionsDocument.model_validate(data).questions


def quiz_to_document(quiz: Quiz) -> QuizDocument:
    stake = None
    if quiz.stake_token and quiz.stake_amount:
        stake = StakeRequirement(token=quiz.stake_token, amount=quiz.stake_amount)

    return QuizDocument(
        id=quiz.id,
        creator_wallet=quiz.creator_wallet,
        title=quiz.title,
        description=quiz.description or "",
        questions=deserialize_questions(quiz.questions_json),
        reward_token=quiz.reward_token,
        reward_amount=quiz.reward_amount,
        winner_limit=quiz.winner_limit,
        time_per_question=quiz.time_per_question,
        reward_pools=quiz.reward_pools or [],
        start_time=quiz.start_time,
        end_time=quiz.end_time,
        stake_requirement=stake,
        nft_enabled=quiz.nft_enabled,
        nft_artwork_url=quiz.nft_artwork_url,
        status=quiz.status,
        current_winners=quiz.current_winners,
        created_at=quiz.created_at,
        updated_at=quiz.updated_at,
    )


def attempt_answers(attempt: Attempt) -> List[Answer]:
    """Recorded answers in ordinal order, as the audit document carries them."""
    return [
        Answer(
            question_id=a.question_id,
            selected_index=a.selected_index,
            timestamp=a.client_timestamp,
            server_timestamp=a.server_timestamp,
        )
        for a in attempt.answers
    ]


def serialize_answers(answers: List[Answer]) -> str:
    return _ANSWER_LIST.dump_json(answers, by_alias=True).decode()


def deserialize_answers(data: str) -> List[Answer]:
    return _ANSWER_LIST.validate_json(data)
