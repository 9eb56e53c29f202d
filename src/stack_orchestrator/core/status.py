"""
Stack status classification.

``docker compose ls`` reports an aggregate status such as ``running(3)`` or
``exited(2)`` per project. The aggregate alone cannot tell containers that
exited cleanly on purpose (one-shot init containers) from crashed ones, so an
exited project is cross-checked against its individual containers.
"""

import json
import re
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .enums import StackStatus

_EXPECTED_EXITED_PATTERN = re.compile(r"exited\((\d+)\)")
_CONTAINER_EXIT_PATTERN = re.compile(r"^exited\s*\((-?\d+)\)", re.IGNORECASE)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ComposeProjectEntry(BaseModel):
    """One project as listed by ``docker compose ls --format json``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(alias="Name")
    status: str = Field(default="", alias="Status")
    config_files: str = Field(default="", alias="ConfigFiles")


class ContainerEntry(BaseModel):
    """One container as listed by ``docker ps``/``docker compose ps`` in JSON."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(default="", alias="Name")
    names: str = Field(default="", alias="Names")
    service: str = Field(default="", alias="Service")
    state: str = Field(default="", alias="State")
    status: str = Field(default="", alias="Status")
    health: str = Field(default="", alias="Health")

    @property
    def display_name(self) -> str:
        return self.name or self.names

    @property
    def has_exited(self) -> bool:
        return self.status.strip().lower().startswith("exited")

    @property
    def exit_code(self) -> int | None:
        """Exit code from an ``Exited (N) ...`` status, None if not exited."""
        match = _CONTAINER_EXIT_PATTERN.match(self.status.strip())
        return int(match.group(1)) if match else None


def parse_json_lines(output: str, model: type[ModelT]) -> list[ModelT]:
    """Parse newline-delimited JSON objects into models."""
    return [
        model.model_validate(json.loads(line))
        for line in output.splitlines()
        if line.strip()
    ]


def parse_compose_list(output: str) -> list[ComposeProjectEntry]:
    """Parse ``docker compose ls --format json`` output (a JSON array)."""
    if not output.strip():
        return []
    return [ComposeProjectEntry.model_validate(item) for item in json.loads(output)]


def expected_exited_count(compose_status: str) -> int | None:
    """Number of exited containers announced by an aggregate status."""
    match = _EXPECTED_EXITED_PATTERN.search(compose_status)
    return int(match.group(1)) if match else None


def classify_exited(
    compose_status: str, containers: list[ContainerEntry] | None
) -> StackStatus:
    """Decide whether an exited project is healthy.

    Any container that exited with a non-zero code makes the project EXITED.
    The project counts as RUNNING only when the number of clean exits matches
    the count announced by the aggregate status.
    """
    expected = expected_exited_count(compose_status)
    if expected is None or containers is None:
        return StackStatus.EXITED

    clean_exits = 0
    for container in containers:
        if not container.has_exited:
            continue
        # An exited status without a readable code is not a clean exit
        if container.exit_code != 0:
            return StackStatus.EXITED
        clean_exits += 1

    return StackStatus.RUNNING if clean_exits == expected else StackStatus.EXITED


def classify_status(
    compose_status: str, containers: list[ContainerEntry] | None = None
) -> StackStatus:
    """Map an aggregate compose status to a StackStatus.

    ``containers`` is only consulted for exited projects; None means the
    per-container list could not be obtained.
    """
    status = compose_status.strip()
    if status.startswith("created"):
        return StackStatus.CREATED_STACK
    if status.startswith("running"):
        return StackStatus.RUNNING
    if status.startswith("exited"):
        return classify_exited(status, containers)
    return StackStatus.UNKNOWN


async def status_convert(
    entry: ComposeProjectEntry,
    fetch_containers: Callable[[str], Awaitable[list[ContainerEntry] | None]],
) -> StackStatus:
    """Classify a listed project, fetching its containers only when needed."""
    if entry.status.strip().startswith("exited"):
        containers = await fetch_containers(entry.name)
        return classify_status(entry.status, containers)
    return classify_status(entry.status)
