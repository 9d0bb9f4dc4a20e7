from dataclasses import FrozenInstanceError

import pytest

from campus_bot.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success("Иван")
        assert result.ok is True
        assert result.value == "Иван"
        assert result.error is None

    def test_success_with_tuple(self):
        assert Result.success((9, 30)).value == (9, 30)


class TestResultFailure:
    def test_failure_creates_not_ok_result(self):
        result = Result.failure("Возраст должен быть числом", "not_a_number")
        assert result.ok is False
        assert result.error == "Возраст должен быть числом"
        assert result.error_code == "not_a_number"
        assert result.value is None

    def test_failure_default_code(self):
        assert Result.failure("Ошибка").error_code == "invalid"


class TestResultUnwrapOr:
    def test_unwrap_or_returns_value_on_success(self):
        assert Result.success("20").unwrap_or("0") == "20"

    def test_unwrap_or_returns_default_on_failure(self):
        assert Result.failure("Ошибка", "code").unwrap_or("default") == "default"

    def test_unwrap_or_with_none_value(self):
        assert Result.success(None).unwrap_or("default") is None


class TestResultThen:
    def test_then_runs_next_check(self):
        result = Result.success("20").then(lambda v: Result.success(int(v) + 1))
        assert result.value == 21

    def test_failure_skips_next_check(self):
        calls = []
        result = Result.failure("Ошибка", "bad_format").then(lambda v: calls.append(v) or Result.success(v))
        assert calls == []
        assert result.ok is False
        assert result.error_code == "bad_format"

    def test_results_are_immutable(self):
        result = Result.success(1)
        with pytest.raises(FrozenInstanceError):
            result.value = 2
