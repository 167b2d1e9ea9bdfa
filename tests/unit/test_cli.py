"""Tests unitaires: ligne de commande `opencode-mcp`."""

import pytest

from opencode_mcp.__main__ import build_parser


@pytest.mark.unit
def test_default_command_is_http_server():
    args = build_parser().parse_args(["--port", "7000"])
    assert args.command is None
    assert args.port == 7000
    assert args.host is None
    assert args.reload is False


@pytest.mark.unit
@pytest.mark.parametrize(
    "argv",
    [
        ["--target", "/bin/opencode", "stdio"],
        ["stdio", "--target", "/bin/opencode"],
    ],
)
def test_target_before_or_after_subcommand(argv):
    args = build_parser().parse_args(argv)
    assert args.command == "stdio"
    assert args.target == "/bin/opencode"


@pytest.mark.unit
def test_serve_options():
    args = build_parser().parse_args(["serve", "--host", "127.0.0.1", "--reload"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.reload is True
