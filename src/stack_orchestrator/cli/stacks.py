"""Stack management commands."""

import asyncio
from typing import Any

import click

from ..config import OrchestratorConfig
from ..core.compose import ComposeCli
from ..core.orchestrator import StackOrchestrator
from ..core.stack import get_stack, get_stack_list
from ..core.terminal_service import TerminalService
from ..terminal.registry import SessionRegistry, SessionSettings
from ..utils.logging import LogContext, get_logger
from .console import ConsoleTransport
from .utils import error_handler, load_cli_config, output_json, output_table, success_message

logger = get_logger(__name__, LogContext.CLI)


@click.group()
def stacks() -> None:
    """Manage compose stacks."""
    pass


async def run_operation(
    config: OrchestratorConfig, stack_name: str, operation: str, *args: Any, **kwargs: Any
) -> int:
    """Run one orchestrator operation with its output streamed to the console."""
    transport = ConsoleTransport()
    registry = SessionRegistry(
        transport=transport, settings=SessionSettings.from_config(config)
    )
    orchestrator = TerminalService(registry, config).orchestrator(stack_name)

    try:
        return await getattr(orchestrator, operation)(
            *args, viewer_id=transport.viewer_id, **kwargs
        )
    finally:
        await registry.close_all()


@stacks.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
@error_handler
def list_stacks(ctx: click.Context, as_json: bool) -> None:
    """List stacks and their status."""
    config = load_cli_config(ctx)
    compose = ComposeCli(config.compose_binary)
    stack_list = asyncio.run(get_stack_list(config.stacks_path, compose))

    if as_json:
        output_json([stack.to_simple_dict("") for stack in stack_list.values()])
        return

    output_table(
        ["Name", "Status", "Managed", "Compose file"],
        [
            [
                stack.name,
                stack.status.name.lower(),
                "yes" if stack.is_managed else "no",
                stack.compose_file_name,
            ]
            for stack in stack_list.values()
        ],
    )


@stacks.command()
@click.argument("stack_name")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
@error_handler
def status(ctx: click.Context, stack_name: str, as_json: bool) -> None:
    """Show the status of one stack and its services."""
    config = load_cli_config(ctx)
    compose = ComposeCli(config.compose_binary)

    async def _status() -> dict[str, Any]:
        stack = await get_stack(config.stacks_path, stack_name, compose)
        orchestrator = StackOrchestrator(stack, SessionRegistry(), compose=compose)
        await orchestrator.update_status()
        return {
            **stack.to_simple_dict(""),
            "services": await orchestrator.get_service_status_list(),
        }

    data = asyncio.run(_status())

    if as_json:
        output_json(data)
        return

    click.echo(f"Stack: {data['name']}")
    click.echo(f"Status: {data['status']}")
    for service_name, containers in data["services"].items():
        for container in containers:
            click.echo(f"  {service_name}: {container['name']} ({container['status']})")


@stacks.command()
@click.argument("stack_name")
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.pass_context
@error_handler
def services(ctx: click.Context, stack_name: str, as_json: bool) -> None:
    """List the containers of each service of a stack."""
    config = load_cli_config(ctx)
    compose = ComposeCli(config.compose_binary)

    async def _services() -> dict[str, list[dict[str, Any]]]:
        stack = await get_stack(config.stacks_path, stack_name, compose)
        orchestrator = StackOrchestrator(stack, SessionRegistry(), compose=compose)
        return await orchestrator.get_service_status_list()

    status_list = asyncio.run(_services())

    if as_json:
        output_json(status_list)
        return

    output_table(
        ["Service", "Container", "Status"],
        [
            [service_name, container["name"], container["status"]]
            for service_name, containers in status_list.items()
            for container in containers
        ],
    )


def _lifecycle_command(operation: str, done: str, help_text: str) -> click.Command:
    @click.command(name=operation.replace("_", "-"), help=help_text)
    @click.argument("stack_name")
    @click.pass_context
    @error_handler
    def command(ctx: click.Context, stack_name: str) -> None:
        config = load_cli_config(ctx)
        asyncio.run(run_operation(config, stack_name, operation))
        success_message(f"{done} {stack_name}")

    return command


for _operation, _done, _help in (
    ("deploy", "Deployed", "Validate a stack and bring it up."),
    ("start", "Started", "Start a stack."),
    ("stop", "Stopped", "Stop a stack."),
    ("restart", "Restarted", "Restart a stack."),
    ("down", "Downed", "Take a stack down."),
    ("update", "Updated", "Pull images and recreate a running stack."),
    ("force_delete", "Deleted", "Take a stack down with its volumes and delete it."),
):
    stacks.add_command(_lifecycle_command(_operation, _done, _help))


@stacks.command()
@click.argument("stack_name")
@click.option("--keep-files", is_flag=True, help="Keep the stack directory")
@click.pass_context
@error_handler
def delete(ctx: click.Context, stack_name: str, keep_files: bool) -> None:
    """Take a stack down and delete its directory."""
    config = load_cli_config(ctx)
    asyncio.run(
        run_operation(config, stack_name, "delete", delete_files=not keep_files)
    )
    success_message(f"Deleted {stack_name}")
