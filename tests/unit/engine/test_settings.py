"""Tests for run settings and version checks."""

import pytest

from helmcourse import __version__
from helmcourse.settings import Settings
from helmcourse.versions import satisfies_minimum, version_tuple


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings.from_env({})

        assert settings == Settings()
        assert settings.version == __version__
        assert settings.workers == 1
        assert settings.helm_binary == "helm"

    def test_environment_overrides(self) -> None:
        settings = Settings.from_env(
            {
                "HELMCOURSE_WORKERS": "4",
                "HELMCOURSE_FETCH_WORKERS": "2",
                "HELMCOURSE_HELM_BINARY": "/opt/helm3",
                "HELMCOURSE_HOOK_TIMEOUT": "300",
                "HELMCOURSE_LOG_LEVEL": "DEBUG",
            }
        )

        assert settings.workers == 4
        assert settings.fetch_workers == 2
        assert settings.helm_binary == "/opt/helm3"
        assert settings.hook_timeout == 300.0
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("raw", ["0", "none", "None"])
    def test_timeout_can_be_disabled(self, raw: str) -> None:
        assert Settings.from_env({"HELMCOURSE_GIT_TIMEOUT": raw}).git_timeout is None

    def test_empty_variable_is_ignored(self) -> None:
        assert Settings.from_env({"HELMCOURSE_WORKERS": ""}).workers == 1

    def test_version_cannot_be_overridden(self) -> None:
        assert Settings.from_env({"HELMCOURSE_VERSION": "9.9.9"}).version == __version__

    def test_invalid_number(self) -> None:
        with pytest.raises(ValueError, match="HELMCOURSE_WORKERS"):
            Settings.from_env({"HELMCOURSE_WORKERS": "many"})

    @pytest.mark.parametrize("field", ["workers", "fetch_workers"])
    def test_workers_must_be_positive(self, field: str) -> None:
        with pytest.raises(ValueError, match=f"{field} must be at least 1"):
            Settings(**{field: 0})


class TestVersions:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("v3.14.2+gc309b6f", (3, 14, 2)),
            ("3.10", (3, 10, 0)),
            ("0.1.0", (0, 1, 0)),
            ('version.BuildInfo{Version:"v3.12.1"}', (3, 12, 1)),
        ],
    )
    def test_version_tuple(self, raw: str, expected: tuple[int, int, int]) -> None:
        assert version_tuple(raw) == expected

    def test_not_a_version(self) -> None:
        with pytest.raises(ValueError, match="Not a version"):
            version_tuple("unknown")

    @pytest.mark.parametrize(
        ("actual", "minimum", "ok"),
        [
            ("v3.14.2", "3.10", True),
            ("v3.10.0", "3.10", True),
            ("v3.9.4", "3.10", False),
            ("0.1.0", "0.2", False),
            ("v4.0.0", "3.99.99", True),
        ],
    )
    def test_satisfies_minimum(self, actual: str, minimum: str, ok: bool) -> None:
        assert satisfies_minimum(actual, minimum) is ok
