"""Deterministic terminal session names.

A session name is derived from the operation family, the endpoint the stack
belongs to, the stack name and, for container terminals, the service name and
an index.
"""

COMPOSE = "compose"
COMBINED = "combined"
CONTAINER_EXEC = "container-exec"
CONTAINER_ATTACH = "container-attach"
CONSOLE = "console"


def session_name(
    family: str,
    endpoint: str,
    stack_name: str | None = None,
    service_name: str | None = None,
    index: int | None = None,
) -> str:
    """Build a session name from its components."""
    parts = [family, endpoint]
    for part in (stack_name, service_name, index):
        if part is not None:
            parts.append(str(part))
    return "-".join(parts)


def compose_session_name(endpoint: str, stack_name: str) -> str:
    """Name of the progress session running compose operations for a stack."""
    return session_name(COMPOSE, endpoint, stack_name)


def combined_session_name(endpoint: str, stack_name: str) -> str:
    """Name of the session following the combined logs of a stack."""
    return session_name(COMBINED, endpoint, stack_name)


def container_exec_session_name(
    endpoint: str, stack_name: str, service_name: str, index: int = 0
) -> str:
    """Name of an interactive shell inside a service container."""
    return session_name(CONTAINER_EXEC, endpoint, stack_name, service_name, index)


def container_attach_session_name(
    endpoint: str, stack_name: str, service_name: str
) -> str:
    """Name of a session attached to a service's main process."""
    return session_name(CONTAINER_ATTACH, endpoint, stack_name, service_name)


def console_session_name(endpoint: str) -> str:
    """Name of the main console of an endpoint."""
    return session_name(CONSOLE, endpoint)
