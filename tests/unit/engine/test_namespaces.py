"""Tests for namespace ensure/reconcile."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from conftest import FakeKubernetesController

from helmcourse.course.model import Namespace
from helmcourse.errors import NamespaceError
from helmcourse.infra.k8s.controller import KubernetesControllerSync, NamespaceState
from helmcourse.namespaces import NamespaceAction, NamespaceManager, missing_metadata


class TestNamespaceManager:
    @pytest.fixture
    def manager(self, controller_sync: KubernetesControllerSync) -> NamespaceManager:
        return NamespaceManager(controller_sync)

    def test_creates_missing_namespace_with_metadata(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        namespace = Namespace("apps", labels={"team": "web"}, annotations={"a": "1"})

        outcome = manager.ensure(namespace)

        assert outcome.action is NamespaceAction.CREATED
        assert fake_controller.namespaces["apps"] == NamespaceState(
            "apps", {"team": "web"}, {"a": "1"}
        )

    def test_refuses_to_create_when_disabled(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        with pytest.raises(NamespaceError, match="creation is disabled"):
            manager.ensure(Namespace("apps", create=False))

        assert fake_controller.count("create") == 0

    def test_existing_namespace_up_to_date(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        fake_controller.namespaces["apps"] = NamespaceState("apps", {"team": "web"})

        outcome = manager.ensure(Namespace("apps", labels={"team": "web"}))

        assert outcome.action is NamespaceAction.UNCHANGED
        assert fake_controller.count("patch") == 0

    def test_merge_is_additive(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        fake_controller.namespaces["apps"] = NamespaceState(
            "apps", {"owner": "ops", "team": "old"}
        )

        outcome = manager.ensure(Namespace("apps", labels={"team": "web", "tier": "1"}))

        assert outcome.action is NamespaceAction.UPDATED
        # Undeclared keys are never removed
        assert fake_controller.namespaces["apps"].labels == {
            "owner": "ops",
            "team": "web",
            "tier": "1",
        }

    def test_no_overwrite_only_adds_missing_keys(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        fake_controller.namespaces["apps"] = NamespaceState("apps", {"team": "old"})

        manager.ensure(
            Namespace("apps", labels={"team": "web", "tier": "1"}, overwrite=False)
        )

        assert fake_controller.namespaces["apps"].labels == {"team": "old", "tier": "1"}

    def test_ensure_is_idempotent_across_runs(
        self,
        controller_sync: KubernetesControllerSync,
        fake_controller: FakeKubernetesController,
    ) -> None:
        namespace = Namespace("apps", labels={"team": "web"})

        first = NamespaceManager(controller_sync).ensure(namespace)
        second = NamespaceManager(controller_sync).ensure(namespace)

        assert first.action is NamespaceAction.CREATED
        assert second.action is NamespaceAction.UNCHANGED
        assert fake_controller.count("create") == 1
        assert fake_controller.count("patch") == 0

    def test_outcome_is_remembered_for_the_run(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        manager.ensure(Namespace("apps"))
        manager.ensure(Namespace("apps"))

        assert fake_controller.count("get", "apps") == 1

    def test_concurrent_ensure_creates_once(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        namespace = Namespace("apps")

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(lambda _: manager.ensure(namespace), range(16)))

        assert fake_controller.count("create", "apps") == 1
        assert {o.action for o in outcomes} == {NamespaceAction.CREATED}

    def test_api_failure_is_wrapped_and_remembered(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        fake_controller.fail_on.add("broken")

        with pytest.raises(NamespaceError) as first:
            manager.ensure(Namespace("broken"))
        with pytest.raises(NamespaceError) as second:
            manager.ensure(Namespace("broken"))

        assert first.value is second.value
        assert first.value.namespace == "broken"
        assert "API error for broken" in first.value.details
        assert fake_controller.count("get", "broken") == 1

    def test_one_failed_namespace_does_not_affect_others(
        self, manager: NamespaceManager, fake_controller: FakeKubernetesController
    ) -> None:
        fake_controller.fail_on.add("broken")

        with pytest.raises(NamespaceError):
            manager.ensure(Namespace("broken"))

        assert manager.ensure(Namespace("fine")).action is NamespaceAction.CREATED


class TestMissingMetadata:
    def test_overwrite(self) -> None:
        assert missing_metadata({"a": "1", "b": "2"}, {"a": "0", "b": "2"}, True) == {
            "a": "1"
        }

    def test_no_overwrite(self) -> None:
        assert missing_metadata({"a": "1", "c": "3"}, {"a": "0"}, False) == {"c": "3"}
