import pytest

from utils.validation import (
    is_valid_correct_index,
    is_valid_option_count,
    is_valid_token_address,
    validate_question,
    validate_quiz_config,
    validate_reward_pools,
)

TOKEN = "0x" + "a" * 40


def _config(**overrides):
    config = {
        "title": "Speed Round",
        "questions": [{"id": "q1", "text": "2+2?", "options": ["3", "4"], "correctIndex": 1}],
        "rewardToken": TOKEN,
        "rewardAmount": "1000",
        "winnerLimit": 4,
        "timePerQuestion": 15,
    }
    config.update(overrides)
    return config


class TestPrimitives:
    def test_option_count_bounds(self):
        assert not is_valid_option_count(1)
        assert is_valid_option_count(2)
        assert is_valid_option_count(6)
        assert not is_valid_option_count(7)

    def test_correct_index_bounds(self):
        assert is_valid_correct_index(0, 2)
        assert not is_valid_correct_index(2, 2)
        assert not is_valid_correct_index(-1, 2)

    @pytest.mark.parametrize("address,expected", [
        (TOKEN, True),
        ("0x" + "AbCdEf0123" * 4, True),
        ("0x123", False),
        ("a" * 42, False),
        ("", False),
        (None, False),
    ])
    def test_token_address(self, address, expected):
        assert is_valid_token_address(address) is expected


class TestValidateQuestion:
    def test_valid_question(self):
        result = validate_question({"text": "Q?", "options": ["a", "b"], "correctIndex": 0})
        assert result.is_valid
        assert result.errors == []

    def test_reports_every_problem(self):
        result = validate_question({"text": "  ", "options": ["a"], "correctIndex": 3})
        assert not result.is_valid
        assert "Question text is required" in result.errors
        assert "Question must have at least 2 options" in result.errors
        assert "Correct answer index must be within options range" in result.errors

    def test_missing_options_and_index(self):
        result = validate_question({"text": "Q?"})
        assert "Question must have options array" in result.errors
        assert "Correct answer index is required" in result.errors

    def test_too_many_and_blank_options(self):
        result = validate_question({"text": "Q?", "options": ["a", "b", "c", "d", "e", "f", ""], "correctIndex": 0})
        assert "Question must have at most 6 options" in result.errors
        assert "All options must have non-empty text" in result.errors

    def test_negative_index(self):
        result = validate_question({"text": "Q?", "options": ["a", "b"], "correctIndex": -1})
        assert result.errors == ["Correct answer index must be non-negative"]


class TestValidateQuizConfig:
    def test_valid_config(self):
        assert validate_quiz_config(_config()).is_valid

    def test_all_errors_collected(self):
        result = validate_quiz_config(_config(
            title="",
            questions=[],
            rewardToken="0x123",
            rewardAmount="0",
            winnerLimit=0,
            timePerQuestion=1,
        ))
        assert not result.is_valid
        assert "Quiz title is required" in result.errors
        assert "Quiz must have at least one question" in result.errors
        assert "Reward token must be a valid ERC-20 address" in result.errors
        assert "Reward amount must be positive" in result.errors
        assert "Winner limit must be at least 1" in result.errors
        assert "Time per question must be at least 5 seconds" in result.errors

    def test_title_length(self):
        result = validate_quiz_config(_config(title="x" * 101))
        assert result.errors == ["Quiz title must be 100 characters or less"]

    def test_question_errors_are_numbered(self):
        questions = [
            {"id": "q1", "text": "ok", "options": ["a", "b"], "correctIndex": 0},
            {"id": "q2", "text": "", "options": ["a", "b"], "correctIndex": 0},
        ]
        result = validate_quiz_config(_config(questions=questions))
        assert result.errors == ["Question 2: Question text is required"]

    def test_duplicate_question_ids(self):
        question = {"id": "q1", "text": "ok", "options": ["a", "b"], "correctIndex": 0}
        result = validate_quiz_config(_config(questions=[question, dict(question)]))
        assert "Question ids must be unique" in result.errors

    def test_fractional_amount_rejected(self):
        result = validate_quiz_config(_config(rewardAmount="10.5"))
        assert not result.is_valid

    def test_time_per_question_optional(self):
        config = _config()
        del config["timePerQuestion"]
        assert validate_quiz_config(config).is_valid

    def test_schedule_order(self):
        result = validate_quiz_config(_config(startTime="2026-02-01T10:00:00", endTime="2026-02-01T09:00:00"))
        assert result.errors == ["End time must be after start time"]

    def test_stake_requirement(self):
        result = validate_quiz_config(_config(stakeRequirement={"token": "nope", "amount": "-5"}))
        assert "Stake token must be a valid ERC-20 address" in result.errors
        assert "Stake amount must be positive" in result.errors


class TestRewardPools:
    def test_valid_pools(self):
        pools = [
            {"tier": 1, "winnerCount": 1, "percentage": 50},
            {"tier": 2, "winnerCount": 3, "percentage": 50},
        ]
        assert validate_reward_pools(pools, 4) == []

    def test_percentages_must_sum_to_100(self):
        pools = [{"tier": 1, "winnerCount": 4, "percentage": 90}]
        assert validate_reward_pools(pools, 4) == ["Reward pool percentages must add up to 100 (got 90)"]

    def test_counts_must_cover_winner_limit(self):
        pools = [{"tier": 1, "winnerCount": 3, "percentage": 100}]
        errors = validate_reward_pools(pools, 4)
        assert len(errors) == 1
        assert "winner limit" in errors[0]

    def test_duplicate_tier(self):
        pools = [
            {"tier": 1, "winnerCount": 2, "percentage": 50},
            {"tier": 1, "winnerCount": 2, "percentage": 50},
        ]
        assert validate_reward_pools(pools, 4) == ["Reward pool 2: tier 1 is defined twice"]

    def test_pool_errors_surface_in_config(self):
        result = validate_quiz_config(_config(rewardPools=[{"tier": 1, "winnerCount": 0, "percentage": 100}]))
        assert "Reward pool 1: winner count must be at least 1" in result.errors


class TestMalformedInput:
    def test_stake_requirement_must_be_an_object(self):
        result = validate_quiz_config(_config(stakeRequirement="0xabc"))
        assert result.errors == ["Stake requirement must be an object"]

    @pytest.mark.parametrize("question_id", [1, "", "   ", ["q1"]])
    def test_question_id_must_be_a_string(self, question_id):
        question = {"id": question_id, "text": "2+2?", "options": ["3", "4"], "correctIndex": 1}
        result = validate_quiz_config(_config(questions=[question]))
        assert result.errors == ["Question 1: Question id must be a non-empty string"]

    def test_missing_question_id_is_allowed(self):
        question = {"text": "2+2?", "options": ["3", "4"], "correctIndex": 1}
        assert validate_quiz_config(_config(questions=[question])).is_valid
