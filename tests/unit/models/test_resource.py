"""Unit tests for resource identity models.

Tests for ResourceRef, split_api_version and TargetResource.
"""

import pytest
from gitopsctl.models.resource import ResourceRef, TargetResource, split_api_version


class TestResourceRef:
    """Tests for ResourceRef."""

    def test_equality_uses_all_components(self) -> None:
        """References differing in any component are distinct."""
        base = ResourceRef("apps", "v1", "Deployment", "default", "web")

        assert base == ResourceRef("apps", "v1", "Deployment", "default", "web")
        assert base != ResourceRef("apps", "v1", "Deployment", "prod", "web")
        assert base != ResourceRef("apps", "v1beta1", "Deployment", "default", "web")
        assert len({base, ResourceRef("apps", "v1", "Deployment", "default", "web")}) == 1

    def test_api_version(self) -> None:
        """apiVersion joins group and version; the core group has none."""
        assert ResourceRef("apps", "v1", "Deployment", "d", "w").api_version == "apps/v1"
        assert ResourceRef("", "v1", "Service", "d", "s").api_version == "v1"

    def test_from_api_version(self) -> None:
        """from_api_version splits the group out."""
        ref = ResourceRef.from_api_version("networking.k8s.io/v1", "Ingress", "default", "web")

        assert ref.group == "networking.k8s.io"
        assert ref.version == "v1"

    def test_str(self) -> None:
        """String form is readable."""
        ref = ResourceRef("", "v1", "Service", "default", "web")
        assert str(ref) == "v1/Service default/web"

    @pytest.mark.parametrize(("kind", "name"), [("", "web"), ("Service", "")])
    def test_requires_kind_and_name(self, kind: str, name: str) -> None:
        """Kind and name cannot be empty."""
        with pytest.raises(ValueError):
            ResourceRef("", "v1", kind, "default", name)


@pytest.mark.parametrize(
    ("api_version", "expected"),
    [("apps/v1", ("apps", "v1")), ("v1", ("", "v1")), ("", ("", ""))],
)
def test_split_api_version(api_version: str, expected: tuple[str, str]) -> None:
    """split_api_version handles grouped and core versions."""
    assert split_api_version(api_version) == expected


class TestTargetResource:
    """Tests for TargetResource."""

    @pytest.fixture
    def target(self) -> TargetResource:
        """A Deployment without a namespace."""
        return TargetResource(
            body={"apiVersion": "apps/v1", "kind": "Deployment", "metadata": {"name": "web"}},
            origin="apps/foo/a.yaml",
        )

    def test_accessors(self, target: TargetResource) -> None:
        """Identity fields are read from the body."""
        assert (target.group, target.version, target.kind, target.name) == (
            "apps",
            "v1",
            "Deployment",
            "web",
        )
        assert target.namespace == ""

    def test_with_namespace_copies(self, target: TargetResource) -> None:
        """with_namespace leaves the original untouched."""
        scoped = target.with_namespace("default")

        assert scoped.namespace == "default"
        assert target.namespace == ""
        assert scoped.origin == target.origin

    def test_ref(self, target: TargetResource) -> None:
        """ref builds the identity."""
        assert target.with_namespace("prod").ref() == ResourceRef(
            "apps", "v1", "Deployment", "prod", "web"
        )

    def test_origin_not_compared(self) -> None:
        """Two targets with the same body are equal regardless of origin."""
        body = {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "s"}}
        assert TargetResource(body=body, origin="a") == TargetResource(body=body, origin="b")
