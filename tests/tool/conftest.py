"""Fixtures with a StackDefinition, its resources and parent resources."""

from pathlib import Path

import pytest

STACK_DEFINITION = """\
apiVersion: stacks.crossplane.io/v1alpha1
kind: StackDefinition
metadata:
  name: wordpress
spec:
  behavior:
    crd:
      apiVersion: stacks.example.org/v1alpha1
      kind: WordpressInstance
    engine:
      type: {engine}
      kustomize:
        overlays:
        - apiVersion: v1
          kind: ConfigMap
          name: settings
          bindings:
          - from: spec.title
            to: data.title
"""

SETTINGS = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: settings
data:
  title: default
"""

PARENTS = """\
apiVersion: stacks.example.org/v1alpha1
kind: WordpressInstance
metadata:
  name: blog
  namespace: web
spec:
  title: My Blog
---
apiVersion: v1
kind: Namespace
metadata:
  name: web
"""


@pytest.fixture(name="stack_definition")
def stack_definition_fixture(tmp_path: Path) -> Path:
    path = tmp_path / "stack-definition.yaml"
    path.write_text(STACK_DEFINITION.format(engine="kustomize"))
    return path


@pytest.fixture(name="resources_dir")
def resources_dir_fixture(tmp_path: Path) -> Path:
    path = tmp_path / "resources"
    path.mkdir()
    (path / "settings.yaml").write_text(SETTINGS)
    (path / "kustomization.yaml").write_text("resources:\n- settings.yaml\n")
    return path


@pytest.fixture(name="parents")
def parents_fixture(tmp_path: Path) -> Path:
    path = tmp_path / "parents.yaml"
    path.write_text(PARENTS)
    return path
