"""Library for rendering child resources with `kustomize build`.

The kustomize engine treats a directory of plain manifests as the base and
generates a top level `kustomization.yaml` for every parent resource. The
generated kustomization starts from a template, is customized by a list of
kustomization patchers (e.g. to prefix all names with the parent name), and
may include strategic merge patches generated from fields of the parent.

This example renders the children of a parent resource:
```python
from templating_controller import kustomize

engine = kustomize.KustomizeEngine(
    resource_path=Path("/resources"),
    overlay_generators=[kustomize.PatchOverlayGenerator(overlays)],
)
children = await engine.run(parent)
for child in children:
    print(f"Rendered {child.kind} {child.name}")
```
"""

from abc import ABC, abstractmethod
import copy
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import tempfile
from typing import Any

import aiofiles
import yaml

from . import command
from .engine import TemplatingEngine, parse_rendered
from .exceptions import InputException, KustomizeException, TemplatingException
from .manifest import (
    GroupVersionKind,
    Overlay,
    Unstructured,
    nested_field,
    set_nested_field,
)

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "KustomizeEngine",
    "KustomizationPatcher",
    "NamePrefixer",
    "NamespaceNamePrefixer",
    "VarReferenceFiller",
    "OverlayGenerator",
    "PatchOverlayGenerator",
]

KUSTOMIZE_BIN = "kustomize"
KUSTOMIZATION_FILE_NAME = "kustomization.yaml"
OVERLAY_PATCH_FILE_NAME = "overlaypatch.yaml"
DEFAULT_RESOURCE_PATH = Path("resources")


class KustomizationPatcher(ABC):
    """Modifies the generated kustomization before every build."""

    @abstractmethod
    def patch(self, parent: Unstructured, kustomization: dict[str, Any]) -> None:
        """Update the kustomization in place for the parent resource."""


class NamePrefixer(KustomizationPatcher):
    """Prefixes all rendered names with the name of the parent."""

    def patch(self, parent: Unstructured, kustomization: dict[str, Any]) -> None:
        kustomization["namePrefix"] = f"{parent.name}-"


class NamespaceNamePrefixer(KustomizationPatcher):
    """Prefixes all rendered names with the namespace and name of the parent.

    Used for cluster scoped children of namespaced parents, where the name
    alone is not unique.
    """

    def patch(self, parent: Unstructured, kustomization: dict[str, Any]) -> None:
        kustomization["namePrefix"] = f"{parent.namespace}-{parent.name}-"


class VarReferenceFiller(KustomizationPatcher):
    """Points the kustomize vars that reference the parent type at the parent."""

    def patch(self, parent: Unstructured, kustomization: dict[str, Any]) -> None:
        gvk = parent.group_version_kind
        for var in kustomization.get("vars") or []:
            if not isinstance(var, dict):
                raise InputException(f"Invalid kustomization var: {var}")
            objref = var.get("objref") or {}
            ref_gvk = GroupVersionKind.from_api_version(
                objref.get("apiVersion", ""), objref.get("kind", "")
            )
            if ref_gvk != gvk:
                continue
            objref["name"] = parent.name
            objref["namespace"] = parent.namespace
            var["objref"] = objref


class KustomizationPatcherChain(KustomizationPatcher):
    """Runs the patchers in order."""

    def __init__(self, patchers: list[KustomizationPatcher]) -> None:
        self._patchers = patchers

    def patch(self, parent: Unstructured, kustomization: dict[str, Any]) -> None:
        for patcher in self._patchers:
            patcher.patch(parent, kustomization)


@dataclass(frozen=True)
class OverlayFile:
    """A file written next to the generated kustomization."""

    name: str
    """File name relative to the kustomization directory."""

    data: str
    """The file contents."""


class OverlayGenerator(ABC):
    """Generates extra files that the kustomization refers to."""

    @abstractmethod
    def generate(
        self, parent: Unstructured, kustomization: dict[str, Any]
    ) -> list[OverlayFile]:
        """Return the files to write, updating the kustomization to use them."""


class PatchOverlayGenerator(OverlayGenerator):
    """Generates strategic merge patches from fields of the parent resource."""

    def __init__(self, overlays: list[Overlay]) -> None:
        self._overlays = overlays

    def generate(
        self, parent: Unstructured, kustomization: dict[str, Any]
    ) -> list[OverlayFile]:
        if not self._overlays:
            return []
        parent_doc = parent.to_dict()
        docs = []
        for overlay in self._overlays:
            obj: dict[str, Any] = {
                "apiVersion": overlay.api_version,
                "kind": overlay.kind,
                "metadata": {"name": overlay.name},
            }
            for binding in overlay.bindings:
                value, found = nested_field(parent_doc, binding.source)
                if not found:
                    continue
                try:
                    set_nested_field(obj, binding.target, value)
                except InputException as err:
                    raise InputException(
                        f"cannot set nested field {binding.target}: {err}"
                    ) from err
            docs.append(obj)
        patches = kustomization.setdefault("patchesStrategicMerge", [])
        if OVERLAY_PATCH_FILE_NAME not in patches:
            patches.append(OVERLAY_PATCH_FILE_NAME)
        data = yaml.dump_all(docs, sort_keys=False, explicit_start=True)
        return [OverlayFile(name=OVERLAY_PATCH_FILE_NAME, data=data)]


class OverlayGeneratorChain(OverlayGenerator):
    """Runs the generators in order and collects all of their files."""

    def __init__(self, generators: list[OverlayGenerator]) -> None:
        self._generators = generators

    def generate(
        self, parent: Unstructured, kustomization: dict[str, Any]
    ) -> list[OverlayFile]:
        files: list[OverlayFile] = []
        for generator in self._generators:
            files.extend(generator.generate(parent, kustomization))
        return files


class KustomizeEngine(TemplatingEngine):
    """Renders the children of a parent resource with `kustomize build`."""

    def __init__(
        self,
        resource_path: Path = DEFAULT_RESOURCE_PATH,
        kustomization: dict[str, Any] | None = None,
        patchers: list[KustomizationPatcher] | None = None,
        overlay_generators: list[OverlayGenerator] | None = None,
    ) -> None:
        """Initialize KustomizeEngine.

        The kustomization template is copied and never modified. When no
        patchers are given the rendered names are prefixed with the parent
        name.
        """
        self._resource_path = resource_path
        self._kustomization = copy.deepcopy(kustomization or {})
        self._patcher = KustomizationPatcherChain(
            patchers if patchers is not None else [NamePrefixer()]
        )
        self._generator = OverlayGeneratorChain(overlay_generators or [])

    async def run(self, parent: Unstructured) -> list[Unstructured]:
        """Render the children of the parent resource."""
        kustomization = copy.deepcopy(self._kustomization)
        try:
            self._patcher.patch(parent, kustomization)
        except InputException as err:
            raise TemplatingException(f"patch call failed: {err}") from err
        try:
            files = self._generator.generate(parent, kustomization)
        except InputException as err:
            raise TemplatingException(f"overlay generation failed: {err}") from err

        with tempfile.TemporaryDirectory() as tmp_dir:
            try:
                await self._write_overlay(Path(tmp_dir), kustomization, files)
            except OSError as err:
                raise TemplatingException(
                    f"overlay preparation failed: {err}"
                ) from err
            cmd = command.Command(
                [KUSTOMIZE_BIN, "build", tmp_dir], exc=KustomizeException
            )
            try:
                out = await command.run(cmd)
            except KustomizeException as err:
                raise TemplatingException(f"kustomize call failed: {err}") from err
        children = parse_rendered(out, KUSTOMIZE_BIN)
        _LOGGER.debug("Rendered %d children for %s", len(children), parent.key)
        return children

    async def _write_overlay(
        self,
        tmp_dir: Path,
        kustomization: dict[str, Any],
        files: list[OverlayFile],
    ) -> None:
        """Write the kustomization and its overlay files into the directory."""
        resource = os.path.relpath(self._resource_path.absolute(), tmp_dir)
        resources = kustomization.setdefault("resources", [])
        if resource not in resources:
            resources.append(resource)
        content = yaml.dump(kustomization, sort_keys=False)
        async with aiofiles.open(tmp_dir / KUSTOMIZATION_FILE_NAME, mode="w") as f:
            await f.write(content)
        for overlay_file in files:
            async with aiofiles.open(tmp_dir / overlay_file.name, mode="w") as f:
                await f.write(overlay_file.data)
