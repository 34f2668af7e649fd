"""Library for common flags and the objects built from them."""

from argparse import ArgumentParser
import logging
import pathlib

from templating_controller import helm, kustomize
from templating_controller.engine import TemplatingEngine
from templating_controller.exceptions import EngineConfigurationException
from templating_controller.manifest import (
    HELM3_ENGINE,
    KUSTOMIZE_ENGINE,
    StackDefinition,
    read_stack_definition,
)

_LOGGER = logging.getLogger(__name__)


def add_common_flags(args: ArgumentParser) -> None:
    """Add flags selecting the stack definition and its resources."""
    args.add_argument(
        "--stack-definition",
        help="Path to the YAML file with the StackDefinition object",
        type=pathlib.Path,
        required=True,
    )
    args.add_argument(
        "--resources-dir",
        help="Directory of the resources used as input to the templating engine",
        type=pathlib.Path,
        required=True,
    )


def add_helm_options_flags(args: ArgumentParser) -> None:
    """Add common helm template options flags to the arguments object."""
    args.add_argument(
        "--kube-version",
        help="Kubernetes version used for Capabilities.KubeVersion",
    )
    args.add_argument(
        "--api-versions",
        "-a",
        help="Kubernetes api versions used for helm Capabilities.APIVersions",
    )


def build_helm_options(**kwargs) -> helm.Options:  # type: ignore[no-untyped-def]
    """Build a helm Options object from the flags."""
    return helm.Options(
        kube_version=kwargs.get("kube_version"),
        api_versions=kwargs.get("api_versions"),
    )


def build_engine(
    definition: StackDefinition,
    resources_dir: pathlib.Path,
    helm_options: helm.Options | None = None,
) -> TemplatingEngine:
    """Return the templating engine selected by the StackDefinition."""
    engine = definition.behavior.engine
    if engine.type == KUSTOMIZE_ENGINE:
        generators: list[kustomize.OverlayGenerator] = []
        kustomization = None
        if engine.kustomize is not None:
            generators.append(kustomize.PatchOverlayGenerator(engine.kustomize.overlays))
            kustomization = engine.kustomize.kustomization
        return kustomize.KustomizeEngine(
            resource_path=resources_dir,
            kustomization=kustomization,
            overlay_generators=generators,
        )
    if engine.type == HELM3_ENGINE:
        return helm.Helm3Engine(resources_dir, options=helm_options)
    raise EngineConfigurationException(
        f"the engine type {engine.type} is not supported"
    )


async def load_engine(  # type: ignore[no-untyped-def]
    stack_definition: pathlib.Path, resources_dir: pathlib.Path, **kwargs
) -> tuple[StackDefinition, TemplatingEngine]:
    """Read the StackDefinition and build its engine from the flags."""
    definition = await read_stack_definition(stack_definition)
    _LOGGER.debug(
        "Using %s engine for %s",
        definition.behavior.engine.type,
        definition.behavior.crd.group_version_kind,
    )
    engine = build_engine(definition, resources_dir, build_helm_options(**kwargs))
    return definition, engine
