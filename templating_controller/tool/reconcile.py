"""Templating-controller reconcile action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from templating_controller.controller import TemplatingController
from templating_controller.manifest import (
    NamedResource,
    dump_documents,
    read_documents,
)
from templating_controller.reconciler import Reconciler
from templating_controller.store import InMemoryStore
from templating_controller.task import task_service_context

from . import selector

_LOGGER = logging.getLogger(__name__)


class ReconcileAction:
    """Templating-controller reconcile action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "reconcile",
                help="Reconcile parent resources against an in memory store",
                description="""Loads all objects from the files into an in memory
                    store and reconciles the parent resources, then prints the
                    contents of the store. With --parent-name a single parent is
                    reconciled once, otherwise the controller reconciles every
                    parent until there is nothing left to do.""",
            ),
        )
        args.add_argument(
            "files",
            type=pathlib.Path,
            nargs="+",
            help="YAML files with the objects to load into the store",
        )
        args.add_argument(
            "--parent-name",
            help="Name of the single parent resource to reconcile",
        )
        args.add_argument(
            "--parent-namespace",
            help="Namespace of the parent resource",
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
        files: list[pathlib.Path],
        stack_definition: pathlib.Path,
        resources_dir: pathlib.Path,
        parent_name: str | None,
        parent_namespace: str | None,
        output_file: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        definition, engine = await selector.load_engine(
            stack_definition, resources_dir, **kwargs
        )
        gvk = definition.behavior.crd.group_version_kind
        store = InMemoryStore()
        for path in files:
            for doc in await read_documents(path):
                await store.create(doc)

        reconciler = Reconciler(store, gvk, engine=engine)
        if parent_name:
            resource_id = NamedResource(
                group=gvk.group,
                kind=gvk.kind,
                namespace=parent_namespace or None,
                name=parent_name,
            )
            result = await reconciler.reconcile(resource_id)
            _LOGGER.info("Reconciled %s: %s", resource_id, result)
        else:
            with task_service_context():
                controller = TemplatingController(store, reconciler)
                await controller.start()
                await controller.block_till_done()
                await controller.close()

        objects = sorted(await store.list_objects(), key=lambda obj: str(obj.key))
        with open(output_file, "w") as file:
            file.write(dump_documents(objects))
