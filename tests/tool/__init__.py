"""Test helpers for templating-controller tools."""

from templating_controller.command import Command, run

TEMPLATING_CONTROLLER_BIN = "templating-controller"


async def run_command(args: list[str], env: dict[str, str] | None = None) -> str:
    return await run(Command([TEMPLATING_CONTROLLER_BIN] + args, env=env))
