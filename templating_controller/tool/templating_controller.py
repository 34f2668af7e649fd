"""Command line tool for rendering and reconciling templated child resources."""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Any

import yaml

from templating_controller.exceptions import TemplatingControllerException
from . import reconcile, render

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Templating controller for parent resources rendered into child resources.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging, same as --log-level DEBUG",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    render.RenderAction.register(subparsers)
    reconcile.ReconcileAction.register(subparsers)
    return parser


def main() -> None:
    """Templating-controller command line tool main entry point."""

    def str_presenter(dumper: yaml.Dumper, data: Any) -> Any:
        """Represent multi-line yaml strings as you'd expect.

        See https://github.com/yaml/pyyaml/issues/240
        """
        return dumper.represent_scalar(
            "tag:yaml.org,2002:str", data, style="|" if data.count("\n") > 0 else None
        )

    yaml.add_representer(str, str_presenter)

    parser = _make_parser()
    args = parser.parse_args()

    if args.debug:
        args.log_level = "DEBUG"
    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except TemplatingControllerException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("templating-controller error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
