"""Tests for the templating-controller `reconcile` command."""

from pathlib import Path

import pytest
import yaml

from templating_controller import command, kustomize
from templating_controller.tool.reconcile import ReconcileAction

from helpers import requires_kustomize

from . import run_command

RENDERED = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: blog-settings
data:
  title: My Blog
"""


@pytest.fixture(autouse=True)
def fake_kustomize(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_run(task: command.Command) -> str:
        return RENDERED

    monkeypatch.setattr(kustomize.command, "run", fake_run)


def by_kind(path: Path) -> dict[str, list[dict]]:
    result: dict[str, list[dict]] = {}
    for doc in yaml.safe_load_all(path.read_text()):
        result.setdefault(doc["kind"], []).append(doc)
    return result


async def test_reconcile_all(
    stack_definition: Path, resources_dir: Path, parents: Path, tmp_path: Path
) -> None:
    """Test running the controller until all parents are reconciled."""
    output = tmp_path / "out.yaml"
    await ReconcileAction().run(
        files=[parents],
        stack_definition=stack_definition,
        resources_dir=resources_dir,
        parent_name=None,
        parent_namespace=None,
        output_file=str(output),
    )

    docs = by_kind(output)
    assert [doc["metadata"]["name"] for doc in docs["Namespace"]] == ["web"]
    [parent] = docs["WordpressInstance"]
    assert parent["metadata"]["finalizers"] == ["templating-controller.crossplane.io"]
    [condition] = parent["status"]["conditions"]
    assert condition["type"] == "Synced"
    assert condition["status"] == "True"
    [child] = docs["ConfigMap"]
    assert child["metadata"]["name"] == "blog-settings"
    assert child["metadata"]["namespace"] == "web"
    assert child["metadata"]["ownerReferences"][0]["uid"] == parent["metadata"]["uid"]


async def test_reconcile_single_parent(
    stack_definition: Path, resources_dir: Path, parents: Path, tmp_path: Path
) -> None:
    """Test reconciling one parent once."""
    output = tmp_path / "out.yaml"
    await ReconcileAction().run(
        files=[parents],
        stack_definition=stack_definition,
        resources_dir=resources_dir,
        parent_name="blog",
        parent_namespace="web",
        output_file=str(output),
    )
    docs = by_kind(output)
    assert [doc["metadata"]["name"] for doc in docs["ConfigMap"]] == ["blog-settings"]


async def test_reconcile_missing_parent(
    stack_definition: Path, resources_dir: Path, parents: Path, tmp_path: Path
) -> None:
    """Test that a missing parent leaves the store unchanged."""
    output = tmp_path / "out.yaml"
    await ReconcileAction().run(
        files=[parents],
        stack_definition=stack_definition,
        resources_dir=resources_dir,
        parent_name="other",
        parent_namespace="web",
        output_file=str(output),
    )
    assert "ConfigMap" not in by_kind(output)


@requires_kustomize
async def test_reconcile_command(
    stack_definition: Path, resources_dir: Path, parents: Path
) -> None:
    """Test reconciling with the kustomize binary."""
    result = await run_command(
        [
            "reconcile",
            str(parents),
            "--stack-definition",
            str(stack_definition),
            "--resources-dir",
            str(resources_dir),
        ]
    )
    docs = list(yaml.safe_load_all(result))
    [child] = [doc for doc in docs if doc["kind"] == "ConfigMap"]
    assert child["metadata"]["name"] == "blog-settings"
    assert child["data"] == {"title": "My Blog"}
