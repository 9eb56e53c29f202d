"""
Compose stacks.

A stack is a named compose project living in its own directory below the
stacks directory. The directory holds up to three text artifacts: the compose
definition, an optional compose override and an optional ``.env`` file.
"""

import re
import shutil
from pathlib import Path
from typing import Any

import yaml

from ..utils.logging import LogContext, ValidationError, get_logger
from .compose import ComposeCli
from .enums import StackStatus
from .status import status_convert

logger = get_logger(__name__, LogContext.STACK)

ACCEPTED_COMPOSE_FILE_NAMES = [
    "compose.yaml",
    "docker-compose.yaml",
    "docker-compose.yml",
    "compose.yml",
]
ACCEPTED_COMPOSE_OVERRIDE_FILE_NAMES = [
    "compose.override.yaml",
    "compose.override.yml",
    "docker-compose.override.yaml",
    "docker-compose.override.yml",
]
ENV_FILE_NAME = ".env"
GLOBAL_ENV_FILE_NAME = "global.env"

STACK_NAME_PATTERN = re.compile(r"^[a-z0-9_-]+$")


class Stack:
    """A compose project and the files that define it."""

    def __init__(
        self,
        stacks_dir: Path,
        name: str,
        compose_yaml: str | None = None,
        compose_env: str | None = None,
        compose_override_yaml: str | None = None,
        skip_fs_operations: bool = False,
    ) -> None:
        self.stacks_dir = Path(stacks_dir)
        self.name = name
        self.status = StackStatus.UNKNOWN
        self.config_file_path: str | None = None

        self._file_cache: dict[str, str] = {}
        if compose_yaml is not None:
            self._file_cache["compose"] = compose_yaml
        if compose_env is not None:
            self._file_cache["env"] = compose_env
        if compose_override_yaml is not None:
            self._file_cache["override"] = compose_override_yaml

        self.compose_file_name = ACCEPTED_COMPOSE_FILE_NAMES[0]
        self.compose_override_file_name = ACCEPTED_COMPOSE_OVERRIDE_FILE_NAMES[0]
        if not skip_fs_operations:
            self.compose_file_name = self._find_file_name(ACCEPTED_COMPOSE_FILE_NAMES)
            self.compose_override_file_name = self._find_file_name(
                ACCEPTED_COMPOSE_OVERRIDE_FILE_NAMES
            )

    def __repr__(self) -> str:
        return f"Stack(name={self.name!r}, status={self.status.name})"

    def _find_file_name(self, candidates: list[str]) -> str:
        for file_name in candidates:
            if (self.path / file_name).exists():
                return file_name
        return candidates[0]

    @property
    def path(self) -> Path:
        return self.stacks_dir / self.name

    @property
    def is_managed(self) -> bool:
        """Whether the stack has a directory below the stacks directory."""
        return self.path.is_dir()

    # ------------------------------------------------------------------
    # Files

    def _read_file(self, file_name: str, cache_key: str) -> str:
        if cache_key not in self._file_cache:
            try:
                self._file_cache[cache_key] = (self.path / file_name).read_text(
                    encoding="utf-8"
                )
            except OSError:
                self._file_cache[cache_key] = ""
        return self._file_cache[cache_key]

    @property
    def compose_yaml(self) -> str:
        return self._read_file(self.compose_file_name, "compose")

    @property
    def compose_env(self) -> str:
        return self._read_file(ENV_FILE_NAME, "env")

    @property
    def compose_override_yaml(self) -> str:
        return self._read_file(self.compose_override_file_name, "override")

    def validate(self) -> None:
        """Check the name and the syntax of every artifact.

        Raises:
            ValidationError: If anything is malformed
        """
        if not STACK_NAME_PATTERN.match(self.name):
            raise ValidationError("Stack name can only contain [a-z][0-9] _ - only")

        try:
            yaml.safe_load(self.compose_yaml)
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid compose YAML: {e}") from e

        if self.compose_override_yaml.strip():
            try:
                yaml.safe_load(self.compose_override_yaml)
            except yaml.YAMLError as e:
                raise ValidationError(f"Invalid compose override YAML: {e}") from e

        self._validate_env_format()

    def _validate_env_format(self) -> None:
        # A single non-empty line without "=" is rejected by compose
        lines = self.compose_env.split("\n")
        if len(lines) == 1 and lines[0] and "=" not in lines[0]:
            raise ValidationError("Invalid .env format")

    def save(self, is_add: bool) -> None:
        """Validate and write the stack files.

        Args:
            is_add: Create a new stack directory instead of editing an existing one

        Raises:
            ValidationError: If validation fails or the directory state is wrong
        """
        self.validate()

        if is_add:
            if self.path.exists():
                raise ValidationError("Stack name already exists")
            self.path.mkdir(parents=True)
        elif not self.path.is_dir():
            raise ValidationError("Stack not found")

        compose_yaml = self.compose_yaml
        compose_env = self.compose_env
        compose_override_yaml = self.compose_override_yaml

        (self.path / self.compose_file_name).write_text(compose_yaml, encoding="utf-8")
        self._write_if_exists_or_not_empty(self.path / ENV_FILE_NAME, compose_env)
        self._write_if_exists_or_not_empty(
            self.path / self.compose_override_file_name, compose_override_yaml
        )

        self._file_cache.clear()
        logger.info("Stack saved", stack=self.name, is_add=is_add)

    @staticmethod
    def _write_if_exists_or_not_empty(file_path: Path, content: str) -> None:
        if file_path.exists() or content.strip():
            file_path.write_text(content, encoding="utf-8")

    def remove_files(self) -> None:
        """Delete the stack directory."""
        shutil.rmtree(self.path, ignore_errors=True)
        logger.info("Stack directory removed", stack=self.name)

    # ------------------------------------------------------------------
    # Compose invocation

    def compose_options(self, command: str, *extra_options: str) -> list[str]:
        """Build the compose argument vector for ``command``.

        When a global env file exists next to the stacks, it is passed
        explicitly, preceded by the stack's own ``.env`` if there is one.
        """
        options = ["compose", command, *extra_options]

        if (self.stacks_dir / GLOBAL_ENV_FILE_NAME).exists():
            env_files = ["--env-file", f"../{GLOBAL_ENV_FILE_NAME}"]
            if (self.path / ENV_FILE_NAME).exists():
                env_files = ["--env-file", f"./{ENV_FILE_NAME}", *env_files]
            options[1:1] = env_files

        return options

    def to_simple_dict(self, endpoint: str) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": int(self.status),
            "tags": [],
            "isManaged": self.is_managed,
            "composeFileName": self.compose_file_name,
            "composeOverrideFileName": self.compose_override_file_name,
            "endpoint": endpoint,
        }

    def to_dict(self, endpoint: str) -> dict[str, Any]:
        return {
            **self.to_simple_dict(endpoint),
            "composeYAML": self.compose_yaml,
            "composeENV": self.compose_env,
            "composeOverrideYAML": self.compose_override_yaml,
        }

    @staticmethod
    def compose_file_exists(stacks_dir: Path, name: str) -> bool:
        """Whether ``stacks_dir/name`` contains any accepted compose file."""
        return any(
            (stacks_dir / name / file_name).exists()
            for file_name in ACCEPTED_COMPOSE_FILE_NAMES
        )


def scan_stacks_directory(stacks_dir: Path) -> dict[str, Stack]:
    """Find every directory of the stacks directory holding a compose file."""
    stack_list: dict[str, Stack] = {}

    try:
        entries = sorted(stacks_dir.iterdir())
    except OSError as e:
        logger.error("Failed to read stacks directory", error=str(e))
        return stack_list

    for entry in entries:
        if not entry.is_dir() or not Stack.compose_file_exists(stacks_dir, entry.name):
            continue
        stack = Stack(stacks_dir, entry.name)
        stack.status = StackStatus.CREATED_FILE
        stack_list[entry.name] = stack

    return stack_list


async def get_stack_list(
    stacks_dir: Path, compose: ComposeCli, exclude: set[str] | None = None
) -> dict[str, Stack]:
    """Merge the stacks directory with the projects the compose engine knows.

    Args:
        stacks_dir: Directory holding one folder per stack
        compose: Compose query helper
        exclude: Project names never listed (e.g. the orchestrator's own)
    """
    stack_list = scan_stacks_directory(stacks_dir)
    exclude = exclude or set()

    for entry in await compose.list_projects():
        stack = stack_list.get(entry.name)
        if stack is None:
            if entry.name in exclude:
                continue
            stack = Stack(stacks_dir, entry.name)
            stack_list[entry.name] = stack

        stack.status = await status_convert(entry, compose.project_containers)
        stack.config_file_path = entry.config_files

    return stack_list


async def get_stack(stacks_dir: Path, name: str, compose: ComposeCli) -> Stack:
    """Load one stack, falling back to compose projects without a directory.

    Raises:
        ValidationError: If the stack is neither on disk nor known to compose
    """
    path = stacks_dir / name
    if not path.is_dir():
        stack = (await get_stack_list(stacks_dir, compose)).get(name)
        if stack is None:
            raise ValidationError(f"Stack not found {name}")
        return stack

    stack = Stack(stacks_dir, name)
    stack.config_file_path = str(path.resolve())
    return stack
