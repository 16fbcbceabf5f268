import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import RedisError
from sqlalchemy import select

from core.config import settings
from core.exceptions import AuthorizationError, ConflictError, NotFoundError
from models.quiz import QuizStatus
from models.session import AttemptStatus, TIMEOUT_SENTINEL
from models.winner import ClaimStatus, RewardClaim, Winner
from services.answer_service import AnswerService, TIME_EXPIRED
from services.quiz_service import QuizService
from services.session_service import SessionService

from conftest import correct_index, wallet

SECOND = 1000


async def _start(db, clock, quiz, player):
    response = await SessionService(db, clock=clock).start_session(quiz.id, player, seed=5)
    return response.session_id, response.questions


async def _reload(db, session_id):
    return await SessionService(db).get_session(session_id, for_update=True)


@pytest.mark.asyncio
async def test_winning_run_at_two_seventeen_and_thirty_one_seconds(make_quiz, db, clock, sample_questions):
    quiz = await make_quiz(
        winnerLimit=2,
        rewardAmount="100",
        rewardPools=[{"tier": 1, "name": "Winners", "winnerCount": 2, "percentage": 100}],
    )
    started_at = clock.now
    session_id, served = await _start(db, clock, quiz, wallet(1))
    service = AnswerService(db, clock=clock)

    outcomes = []
    for offset, question in zip((2, 17, 31), served):
        clock.now = started_at + offset * SECOND
        outcomes.append(await service.submit_answer(
            session_id, wallet(1), question.id, correct_index(sample_questions, question.id)
        ))

    assert [o.correct for o in outcomes] == [True, True, True]
    assert outcomes[0].next_question.id == served[1].id
    assert outcomes[1].next_question.id == served[2].id

    final = outcomes[-1]
    assert final.is_complete
    assert final.status == AttemptStatus.COMPLETED
    assert final.result.score == 3
    assert final.result.completion_time_ms == 31000
    assert final.result.is_winner
    assert final.result.rank == 1
    assert final.result.reward_amount == "50"

    attempt = await _reload(db, session_id)
    assert attempt.status == AttemptStatus.COMPLETED
    assert attempt.completion_time_ms == 31000
    assert [a.ordinal for a in attempt.answers] == [0, 1, 2]

    winner = (await db.execute(select(Winner))).scalar_one()
    assert (winner.rank, winner.reward_amount, winner.completion_time_ms) == (1, "50", 31000)
    claim = (await db.execute(select(RewardClaim))).scalar_one()
    assert claim.status == ClaimStatus.PENDING
    assert (claim.pool_tier, claim.rank_in_pool) == (1, 1)


@pytest.mark.asyncio
async def test_wrong_answer_ends_attempt(make_quiz, db, clock, sample_questions):
    quiz = await make_quiz()
    session_id, served = await _start(db, clock, quiz, wallet(1))
    service = AnswerService(db, clock=clock)

    clock.advance(2 * SECOND)
    await service.submit_answer(session_id, wallet(1), served[0].id, correct_index(sample_questions, served[0].id))
    clock.advance(2 * SECOND)
    wrong = (correct_index(sample_questions, served[1].id) + 1) % 2
    outcome = await service.submit_answer(session_id, wallet(1), served[1].id, wrong)

    assert outcome.correct is False
    assert outcome.is_complete
    assert outcome.status == AttemptStatus.FAILED
    assert outcome.next_question is None
    assert outcome.result.score == 1
    assert not outcome.result.is_winner

    # Nothing more is accepted
    with pytest.raises(NotFoundError) as exc:
        await service.submit_answer(session_id, wallet(1), served[2].id, 0)
    assert exc.value.code == "SESSION_NOT_FOUND"
    assert len((await _reload(db, session_id)).answers) == 2


@pytest.mark.asyncio
async def test_retry_of_final_submission_reports_already_answered(make_quiz, db, clock, sample_questions):
    quiz = await make_quiz(questions=sample_questions[:1])
    session_id, served = await _start(db, clock, quiz, wallet(1))
    service = AnswerService(db, clock=clock)

    clock.advance(SECOND)
    await service.submit_answer(session_id, wallet(1), served[0].id, 0)
    with pytest.raises(ConflictError) as exc:
        await service.submit_answer(session_id, wallet(1), served[0].id, 1)
    assert exc.value.code == "ALREADY_ANSWERED"


@pytest.mark.asyncio
async def test_late_answer_times_out(make_quiz, db, clock, sample_questions):
    quiz = await make_quiz()
    started_at = clock.now
    session_id, served = await _start(db, clock, quiz, wallet(1))
    service = AnswerService(db, clock=clock)

    # Deadlines accumulate: the second answer is due by +30s, the third by +45s
    for offset, question in zip((14, 29), served):
        clock.now = started_at + offset * SECOND
        outcome = await service.submit_answer(
            session_id, wallet(1), question.id, correct_index(sample_questions, question.id)
        )
        assert outcome.correct is True

    clock.now = started_at + 45 * SECOND + 1
    outcome = await service.submit_answer(
        session_id, wallet(1), served[2].id, correct_index(sample_questions, served[2].id)
    )

    assert outcome.error == TIME_EXPIRED
    assert outcome.correct is None
    assert outcome.status == AttemptStatus.TIMEOUT
    attempt = await _reload(db, session_id)
    assert attempt.status == AttemptStatus.TIMEOUT
    assert attempt.score == 2
    assert attempt.answers[-1].selected_index == TIMEOUT_SENTINEL
    assert (await db.execute(select(Winner))).first() is None


@pytest.mark.asyncio
async def test_answer_on_the_deadline_is_accepted(make_quiz, db, clock, sample_questions):
    quiz = await make_quiz()
    started_at = clock.now
    session_id, served = await _start(db, clock, quiz, wallet(1))

    clock.now = started_at + 15 * SECOND
    outcome = await AnswerService(db, clock=clock).submit_answer(
        session_id, wallet(1), served[0].id, correct_index(sample_questions, served[0].id)
    )
    assert outcome.correct is True
    assert outcome.error is None


@pytest.mark.asyncio
async def test_duplicate_answer_is_rejected_and_not_overwritten(make_quiz, db, clock, sample_questions):
    quiz = await make_quiz()
    session_id, served = await _start(db, clock, quiz, wallet(1))
    service = AnswerService(db, clock=clock)
    right = correct_index(sample_questions, served[0].id)

    clock.advance(SECOND)
    await service.submit_answer(session_id, wallet(1), served[0].id, right)
    clock.advance(SECOND)
    with pytest.raises(ConflictError) as exc:
        await service.submit_answer(session_id, wallet(1), served[0].id, right + 1)
    assert exc.value.code == "ALREADY_ANSWERED"

    attempt = await _reload(db, session_id)
    assert attempt.status == AttemptStatus.ACTIVE
    assert [(a.question_id, a.selected_index) for a in attempt.answers] == [(served[0].id, right)]


@pytest.mark.asyncio
async def test_rejections_leave_no_trace(make_quiz, db, clock):
    quiz = await make_quiz()
    session_id, served = await _start(db, clock, quiz, wallet(1))
    service = AnswerService(db, clock=clock)
    clock.advance(SECOND)

    with pytest.raises(AuthorizationError):
        await service.submit_answer(session_id, wallet(2), served[0].id, 0)

    with pytest.raises(NotFoundError) as exc:
        await service.submit_answer(session_id, wallet(1), "not-a-question", 0)
    assert exc.value.code == "INVALID_QUESTION"

    with pytest.raises(NotFoundError) as exc:
        await service.submit_answer("session_missing", wallet(1), served[0].id, 0)
    assert exc.value.code == "SESSION_NOT_FOUND"

    attempt = await _reload(db, session_id)
    assert attempt.status == AttemptStatus.ACTIVE
    assert attempt.answers == []


@pytest.mark.asyncio
async def test_late_finishers_complete_without_reward(make_quiz, db, clock, sample_questions):
    quiz = await make_quiz(winnerLimit=2, rewardAmount="100")
    players = [wallet(n) for n in (1, 2, 3)]
    sessions = [await _start(db, clock, quiz, p) for p in players]
    service = AnswerService(db, clock=clock)

    finals = []
    for player, (session_id, served) in zip(players, sessions):
        for question in served:
            clock.advance(SECOND)
            outcome = await service.submit_answer(
                session_id, player, question.id, correct_index(sample_questions, question.id)
            )
        finals.append(outcome)

    assert [o.result.rank for o in finals] == [1, 2, None]
    assert [o.result.is_winner for o in finals] == [True, True, False]
    assert all(o.status == AttemptStatus.COMPLETED for o in finals)

    closed = await QuizService(db).get_quiz(quiz.id)
    assert closed.current_winners == 2
    assert closed.status == QuizStatus.COMPLETED


@pytest.mark.asyncio
async def test_winner_is_handed_to_settlement(make_quiz, db, clock):
    quiz = await make_quiz(questions=[{"id": "only", "text": "1+1?", "options": ["2", "3"], "correctIndex": 0}])
    session_id, _ = await _start(db, clock, quiz, wallet(1))
    redis = AsyncMock()

    clock.advance(SECOND)
    outcome = await AnswerService(db, redis=redis, clock=clock).submit_answer(session_id, wallet(1), "only", 0)

    assert outcome.result.rank == 1
    redis.rpush.assert_awaited_once()
    key, payload = redis.rpush.await_args.args
    assert key == settings.SETTLEMENT_QUEUE_KEY
    claim = (await db.execute(select(RewardClaim))).scalar_one()
    assert json.loads(payload) == {"claimId": claim.id, "rank": 1, "poolTier": 1, "rewardAmount": "50"}


@pytest.mark.asyncio
async def test_settlement_outage_keeps_the_win(make_quiz, db, clock):
    quiz = await make_quiz(questions=[{"id": "only", "text": "1+1?", "options": ["2", "3"], "correctIndex": 0}])
    session_id, _ = await _start(db, clock, quiz, wallet(1))
    redis = AsyncMock()
    redis.rpush.side_effect = RedisError("connection refused")

    clock.advance(SECOND)
    outcome = await AnswerService(db, redis=redis, clock=clock).submit_answer(session_id, wallet(1), "only", 0)

    assert outcome.result.is_winner
    claim = (await db.execute(select(RewardClaim))).scalar_one()
    assert claim.status == ClaimStatus.PENDING
