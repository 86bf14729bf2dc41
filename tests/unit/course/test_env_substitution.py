"""Tests for ${VAR} placeholder expansion."""

import pytest

from helmcourse.course.env import MissingVariablesError, substitute_env_vars


class TestSubstituteEnvVars:
    def test_required_variable(self) -> None:
        assert substitute_env_vars("tag: ${TAG}", {"TAG": "1.0"}) == "tag: 1.0"

    def test_default_used_when_unset(self) -> None:
        assert substitute_env_vars("ns: ${NS:-apps}", {}) == "ns: apps"

    def test_default_ignored_when_set(self) -> None:
        assert substitute_env_vars("ns: ${NS:-apps}", {"NS": "prod"}) == "ns: prod"

    def test_empty_value_is_a_value(self) -> None:
        assert substitute_env_vars("x: '${EMPTY}'", {"EMPTY": ""}) == "x: ''"

    def test_escape_is_left_literal(self) -> None:
        assert substitute_env_vars("cmd: echo $${HOME}", {}) == "cmd: echo ${HOME}"

    def test_custom_error_message(self) -> None:
        with pytest.raises(MissingVariablesError) as excinfo:
            substitute_env_vars("token: ${TOKEN:?set the API token}", {})

        assert excinfo.value.problems == [
            "Required environment variable TOKEN: set the API token"
        ]

    def test_every_missing_variable_is_reported(self) -> None:
        text = "a: ${ONE}\nb: ${TWO}\nc: ${THREE:-ok}\nd: ${FOUR:?needed}\n"

        with pytest.raises(MissingVariablesError) as excinfo:
            substitute_env_vars(text, {})

        problems = excinfo.value.problems
        assert len(problems) == 3
        assert "ONE" in problems[0]
        assert "TWO" in problems[1]
        assert "FOUR" in problems[2]

    def test_uses_process_environment_by_default(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HELMCOURSE_TEST_VALUE", "from-env")

        assert substitute_env_vars("${HELMCOURSE_TEST_VALUE}") == "from-env"
