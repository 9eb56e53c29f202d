"""Read-only queries against the docker compose command line."""

import json
from pathlib import Path

from pydantic import ValidationError as ModelValidationError

from ..utils.logging import LogContext, SpawnError, get_logger
from ..utils.process import CommandResult, run_command
from .enums import StackStatus
from .status import (
    ComposeProjectEntry,
    ContainerEntry,
    parse_compose_list,
    parse_json_lines,
    status_convert,
)

logger = get_logger(__name__, LogContext.STACK)

PROJECT_LABEL = "com.docker.compose.project"


class ComposeCli:
    """Runs short-lived compose queries and parses their JSON output."""

    def __init__(self, binary: str = "docker") -> None:
        self.binary = binary

    async def _run(self, args: list[str], cwd: Path | None = None) -> CommandResult | None:
        try:
            result = await run_command(self.binary, args, cwd)
        except SpawnError as e:
            logger.error("Compose query could not be started", error=e.message)
            return None

        if not result.ok:
            logger.warning(
                "Compose query failed",
                command=result.command,
                exit_code=result.return_code,
                stderr=result.stderr.strip(),
            )
            return None
        return result

    async def list_projects(self) -> list[ComposeProjectEntry]:
        """List every compose project known to the engine."""
        result = await self._run(["compose", "ls", "--all", "--format", "json"])
        if result is None:
            return []

        try:
            return parse_compose_list(result.stdout)
        except (json.JSONDecodeError, ModelValidationError) as e:
            logger.error("Failed to parse compose project list", error=str(e))
            return []

    async def project_containers(self, project_name: str) -> list[ContainerEntry] | None:
        """List every container of a project, or None if it cannot be determined."""
        result = await self._run(
            [
                "ps",
                "-a",
                "--filter",
                f"label={PROJECT_LABEL}={project_name}",
                "--format",
                "json",
            ]
        )
        if result is None or not result.stdout.strip():
            return None

        try:
            return parse_json_lines(result.stdout, ContainerEntry)
        except (json.JSONDecodeError, ModelValidationError) as e:
            logger.debug(
                "Failed to parse container list", project=project_name, error=str(e)
            )
            return None

    async def ps(self, compose_args: list[str], cwd: Path) -> list[ContainerEntry]:
        """Run ``compose ps --format json`` with prepared compose arguments."""
        result = await self._run(compose_args, cwd)
        if result is None or not result.stdout.strip():
            return []

        try:
            return parse_json_lines(result.stdout, ContainerEntry)
        except (json.JSONDecodeError, ModelValidationError) as e:
            logger.error("Failed to parse compose ps output", error=str(e))
            return []

    async def get_status_list(self) -> dict[str, StackStatus]:
        """Classify every listed project."""
        return {
            entry.name: await status_convert(entry, self.project_containers)
            for entry in await self.list_projects()
        }
