"""Templating-controller render action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from templating_controller.exceptions import InputException
from templating_controller.manifest import dump_documents, read_documents
from templating_controller.patcher import ChildResourcePatcherChain, default_patchers

from . import selector

_LOGGER = logging.getLogger(__name__)


class RenderAction:
    """Templating-controller render action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "render",
                help="Render the child resources of parent resources",
                description="""Runs the templating engine of the StackDefinition
                    and the default child resource patchers for every parent
                    resource in the file, without writing anything.""",
            ),
        )
        args.add_argument(
            "parent_file",
            type=pathlib.Path,
            help="YAML file with the parent resources",
        )
        args.add_argument(
            "--output-file",
            type=str,
            default="/dev/stdout",
            help="Output file for the results of the command",
        )
        selector.add_common_flags(args)
        selector.add_helm_options_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        parent_file: pathlib.Path,
        stack_definition: pathlib.Path,
        resources_dir: pathlib.Path,
        output_file: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        definition, engine = await selector.load_engine(
            stack_definition, resources_dir, **kwargs
        )
        gvk = definition.behavior.crd.group_version_kind
        parents = [
            doc
            for doc in await read_documents(parent_file)
            if doc.group_version_kind == gvk
        ]
        if not parents:
            raise InputException(f"No parent resources of type {gvk} in {parent_file}")

        patcher = ChildResourcePatcherChain(default_patchers())
        children = []
        for parent in parents:
            _LOGGER.debug("Rendering children of %s", parent.key)
            children.extend(patcher.patch(parent, await engine.run(parent)))

        with open(output_file, "w") as file:
            file.write(dump_documents(children))
