"""Tests for the release client."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import yaml
from conftest import make_course, make_release

from helmcourse.course.model import ValuesSource
from helmcourse.errors import ErrorKind, HelmNotFoundError, ReleaseClientError
from helmcourse.release_client import CourseDefaults, ReleaseClient, classify_failure
from helmcourse.shell.types import CommandResult, HelmRelease
from helmcourse.sources import ResolvedSource


class TestClassifyFailure:
    @pytest.mark.parametrize(
        "stderr",
        [
            "Error: Kubernetes cluster unreachable: Get https://10.0.0.1/version",
            "dial tcp 10.0.0.1:443: connect: connection refused",
            "Error: UPGRADE FAILED: Unauthorized",
            'secrets is forbidden: User "dev" cannot list resource',
        ],
    )
    def test_cluster_errors(self, stderr: str) -> None:
        assert classify_failure(stderr) is ErrorKind.CLUSTER

    @pytest.mark.parametrize(
        "stderr",
        [
            'Error: chart "nope" not found in stable index',
            "Error: YAML parse error on app/templates/deploy.yaml",
            "Error: unknown flag: --bogus",
            "Error: execution error at (app/templates/x.yaml:3:4): image is required",
        ],
    )
    def test_user_input_errors(self, stderr: str) -> None:
        assert classify_failure(stderr) is ErrorKind.USER_INPUT

    def test_cluster_markers_win(self) -> None:
        stderr = "Error: Kubernetes cluster unreachable: resource not found"

        assert classify_failure(stderr) is ErrorKind.CLUSTER

    def test_unknown(self) -> None:
        assert classify_failure("something odd happened") is ErrorKind.UNKNOWN


class TestReleaseClient:
    @pytest.fixture
    def helm(self) -> MagicMock:
        helm = MagicMock()
        ok = CommandResult(success=True, stdout="kind: ConfigMap\n")
        helm.template.return_value = ok
        helm.upgrade_install.return_value = ok
        return helm

    @pytest.fixture
    def client(self, helm: MagicMock) -> ReleaseClient:
        return ReleaseClient(helm)

    @pytest.fixture
    def source(self) -> ResolvedSource:
        return ResolvedSource(chart="stable/app", version="1.2.3")

    def test_template_passes_release_settings(
        self, client: ReleaseClient, helm: MagicMock, source: ResolvedSource
    ) -> None:
        release = make_release(
            "web",
            Path("/charts/web"),
            "apps",
            set_values=(("a", "1"),),
            set_string_values=(("b", "2"),),
            helm_args=("--wait",),
        )

        manifest = client.template(release, source)

        assert manifest == "kind: ConfigMap\n"
        args, kwargs = helm.template.call_args
        assert args == ("web", "stable/app", "apps")
        assert kwargs["version"] == "1.2.3"
        assert kwargs["set_values"] == (("a", "1"),)
        assert kwargs["set_string_values"] == (("b", "2"),)
        assert kwargs["extra_args"] == ["--wait"]
        assert kwargs["kube_context"] is None
        assert kwargs["hooks"] is True

    def test_template_without_hooks(
        self, client: ReleaseClient, helm: MagicMock, source: ResolvedSource
    ) -> None:
        client.template(make_release("web", Path("/charts/web"), "apps"), source, hooks=False)

        assert helm.template.call_args.kwargs["hooks"] is False

    def test_course_defaults_come_first(
        self, client: ReleaseClient, helm: MagicMock, source: ResolvedSource
    ) -> None:
        course = make_course(
            make_release(
                "web",
                Path("/charts/web"),
                helm_args=("--wait",),
                values=(ValuesSource(path=Path("/course/web.yaml")),),
            ),
            context="prod",
            helm_args=("--atomic",),
            values=(ValuesSource(path=Path("/course/global.yaml")),),
        )
        client.for_course(course).install_or_upgrade(course.releases[0], source)

        kwargs = helm.upgrade_install.call_args.kwargs
        assert kwargs["kube_context"] == "prod"
        assert kwargs["extra_args"] == ["--atomic", "--wait"]
        assert kwargs["value_files"] == [
            Path("/course/global.yaml"),
            Path("/course/web.yaml"),
        ]

    def test_inline_values_become_files_in_position(
        self, helm: MagicMock, source: ResolvedSource
    ) -> None:
        seen: list[tuple[str, object]] = []

        def capture(*args, **kwargs):
            for path in kwargs["value_files"]:
                if path.name.startswith("web-"):
                    seen.append(("inline", yaml.safe_load(path.read_text())))
                else:
                    seen.append(("file", path))
            return CommandResult(success=True)

        helm.upgrade_install.side_effect = capture
        client = ReleaseClient(
            helm, CourseDefaults(values=(ValuesSource(inline={"region": "eu"}),))
        )
        release = make_release(
            "web",
            Path("/charts/web"),
            values=(
                ValuesSource(path=Path("/course/web.yaml")),
                ValuesSource(inline={"replicas": 2}),
            ),
        )

        client.install_or_upgrade(release, source)

        assert seen == [
            ("inline", {"region": "eu"}),
            ("file", Path("/course/web.yaml")),
            ("inline", {"replicas": 2}),
        ]
        # Temporary files are removed afterwards
        temp_files = [
            p for p in helm.upgrade_install.call_args.kwargs["value_files"]
            if p.name.startswith("web-")
        ]
        assert temp_files and not any(p.exists() for p in temp_files)

    def test_install_failure_is_classified(
        self, client: ReleaseClient, helm: MagicMock, source: ResolvedSource
    ) -> None:
        helm.upgrade_install.return_value = CommandResult(
            success=False,
            stderr="Error: Kubernetes cluster unreachable",
            returncode=1,
        )

        with pytest.raises(ReleaseClientError) as excinfo:
            client.install_or_upgrade(make_release("web", Path("/c")), source)

        assert excinfo.value.kind is ErrorKind.CLUSTER
        assert excinfo.value.returncode == 1
        assert "cluster unreachable" in excinfo.value.stderr
        assert excinfo.value.message == "Installing release 'web' failed"

    def test_get_manifest_of_missing_release_is_empty(
        self, client: ReleaseClient, helm: MagicMock
    ) -> None:
        helm.get_manifest.return_value = CommandResult(
            success=False, stderr="Error: release: not found", returncode=1
        )

        assert client.get_manifest(make_release("web", Path("/c"))) == ""

    def test_get_manifest_other_failure_raises(
        self, client: ReleaseClient, helm: MagicMock
    ) -> None:
        helm.get_manifest.return_value = CommandResult(
            success=False, stderr="Error: connection refused", returncode=1
        )

        with pytest.raises(ReleaseClientError):
            client.get_manifest(make_release("web", Path("/c")))

    def test_get_values(self, client: ReleaseClient, helm: MagicMock) -> None:
        helm.get_values.return_value = CommandResult(
            success=True, stdout="replicas: 2\nimage:\n  tag: '1.0'\n"
        )

        assert client.get_values("web", "apps") == {"replicas": 2, "image": {"tag": "1.0"}}

    def test_get_values_null(self, client: ReleaseClient, helm: MagicMock) -> None:
        helm.get_values.return_value = CommandResult(success=True, stdout="null\n")

        assert client.get_values("web", "apps") == {}

    def test_get_values_not_a_mapping(self, client: ReleaseClient, helm: MagicMock) -> None:
        helm.get_values.return_value = CommandResult(success=True, stdout="- a\n")

        with pytest.raises(ReleaseClientError, match="not a mapping"):
            client.get_values("web", "apps")

    def test_find_release_exact_match(self, client: ReleaseClient, helm: MagicMock) -> None:
        helm.list_releases.return_value = [
            HelmRelease("web-canary", "apps", "deployed", "1"),
            HelmRelease("web", "apps", "deployed", "4"),
        ]

        found = client.find_release("web", "apps")

        assert found is not None and found.revision == "4"
        assert helm.list_releases.call_args.kwargs["filter_pattern"] == "^web$"

    def test_find_release_missing(self, client: ReleaseClient, helm: MagicMock) -> None:
        helm.list_releases.return_value = []

        assert client.find_release("web", "apps") is None

    def test_list_releases_uses_course_context(self, helm: MagicMock) -> None:
        helm.list_releases.return_value = [HelmRelease("web", "apps", "deployed", "1")]
        client = ReleaseClient(helm, CourseDefaults(context="prod"))

        releases = client.list_releases("apps")

        assert [r.name for r in releases] == ["web"]
        helm.list_releases.assert_called_once_with("apps", kube_context="prod")

    def test_version(self, client: ReleaseClient, helm: MagicMock) -> None:
        helm.version.return_value = CommandResult(success=True, stdout="v3.14.2+gc309b6f\n")

        assert client.version() == "v3.14.2+gc309b6f"

    def test_repo_add_failure(self, client: ReleaseClient, helm: MagicMock) -> None:
        helm.repo_add.return_value = CommandResult(
            success=False, stderr=(
                "Error: looks like \"https://bad\" is not a valid chart repository: "
                "failed to fetch https://bad/index.yaml : 404 Not Found"
            )
        )

        with pytest.raises(ReleaseClientError) as excinfo:
            client.repo_add("stable", "https://bad")

        assert excinfo.value.kind is ErrorKind.USER_INPUT


class TestLocate:
    @patch("helmcourse.release_client.shutil.which")
    def test_found(self, mock_which: MagicMock) -> None:
        mock_which.return_value = "/usr/local/bin/helm"

        assert ReleaseClient.locate("helm") == "/usr/local/bin/helm"

    @patch("helmcourse.release_client.shutil.which")
    def test_missing(self, mock_which: MagicMock) -> None:
        mock_which.return_value = None

        with pytest.raises(HelmNotFoundError) as excinfo:
            ReleaseClient.locate("helm3")

        assert excinfo.value.binary == "helm3"
