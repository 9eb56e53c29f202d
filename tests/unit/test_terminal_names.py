"""Unit tests for session naming."""

from stack_orchestrator.terminal.names import (
    combined_session_name,
    compose_session_name,
    console_session_name,
    container_attach_session_name,
    container_exec_session_name,
    session_name,
)


class TestSessionNames:
    """Test deterministic session names."""

    def test_compose_session_name(self):
        assert compose_session_name("", "web") == "compose--web"
        assert compose_session_name("remote:5001", "web") == "compose-remote:5001-web"

    def test_combined_session_name(self):
        assert combined_session_name("", "web") == "combined--web"

    def test_container_exec_session_name(self):
        assert container_exec_session_name("", "web", "nginx") == "container-exec--web-nginx-0"
        assert (
            container_exec_session_name("", "web", "nginx", 2)
            == "container-exec--web-nginx-2"
        )

    def test_container_attach_session_name(self):
        assert (
            container_attach_session_name("", "web", "nginx")
            == "container-attach--web-nginx"
        )

    def test_console_session_name(self):
        assert console_session_name("") == "console-"

    def test_names_are_deterministic(self):
        assert session_name("compose", "e", "s") == session_name("compose", "e", "s")
        assert compose_session_name("", "a") != compose_session_name("", "b")
