"""Library for rendering child resources with `helm template`.

The helm engine renders a local chart once per parent resource, using the
`spec` of the parent resource as the chart values. The parent name is used as
the release name and the parent namespace as the release namespace.

This is an example that renders the children of a parent resource:
```python
from templating_controller.helm import Helm3Engine

engine = Helm3Engine(Path("/charts/my-chart"))
children = await engine.run(parent)
for child in children:
    print(f"Rendered {child.kind} {child.name}")
```
"""

from dataclasses import dataclass
import logging
from pathlib import Path
import tempfile

import aiofiles
import yaml

from . import command
from .engine import TemplatingEngine, parse_rendered
from .exceptions import HelmException, TemplatingException
from .manifest import Unstructured

__all__ = [
    "Helm3Engine",
    "Options",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"
VALUES_FILE_NAME = "values.yaml"


@dataclass
class Options:
    """Options to use when inflating a Helm chart.

    These translate into command line flags of `helm template`.
    """

    skip_tests: bool = True
    """Don't render helm tests in the output."""

    no_hooks: bool = True
    """Don't render hooks, which are not part of a release manifest."""

    kube_version: str | None = None
    """Value of the helm --kube-version flag."""

    api_versions: str | None = None
    """Value of the helm --api-versions flag."""

    @property
    def template_args(self) -> list[str]:
        """Helm template CLI arguments built from the options."""
        args = []
        if self.skip_tests:
            args.append("--skip-tests")
        if self.no_hooks:
            args.append("--no-hooks")
        if self.kube_version:
            args.extend(["--kube-version", self.kube_version])
        if self.api_versions:
            args.extend(["--api-versions", self.api_versions])
        return args


class Helm3Engine(TemplatingEngine):
    """Renders the children of a parent resource with `helm template`."""

    def __init__(self, resource_path: Path, options: Options | None = None) -> None:
        """Initialize Helm3Engine with the path of a local chart."""
        self._resource_path = resource_path
        self._options = options or Options()

    async def run(self, parent: Unstructured) -> list[Unstructured]:
        """Render the children of the parent resource."""
        values = parent.to_dict().get("spec") or {}
        if not isinstance(values, dict):
            raise TemplatingException("spec could not be parsed into a map")

        with tempfile.TemporaryDirectory() as tmp_dir:
            values_path = Path(tmp_dir) / VALUES_FILE_NAME
            try:
                async with aiofiles.open(values_path, mode="w") as values_file:
                    await values_file.write(yaml.dump(values, sort_keys=False))
            except OSError as err:
                raise TemplatingException(
                    f"values file could not be written: {err}"
                ) from err
            args: list[str] = [
                HELM_BIN,
                "template",
                parent.name,
                str(self._resource_path),
                "--values",
                str(values_path),
            ]
            if parent.namespace:
                args.extend(["--namespace", parent.namespace])
            args.extend(self._options.template_args)
            try:
                out = await command.run(command.Command(args, exc=HelmException))
            except HelmException as err:
                raise TemplatingException(f"helm call failed: {err}") from err
        children = parse_rendered(out, HELM_BIN)
        _LOGGER.debug("Rendered %d children for %s", len(children), parent.key)
        return children
