from click.testing import CliRunner

from cli import cli

ENV = {
    "LOGGING__CONSOLE_ENABLED": "false",
    "LOGGING__FILE_ENABLED": "false",
    "ENVIRONMENT": "testing",
}


def test_help_lists_commands():
    result = CliRunner().invoke(cli, ["--help"], env=ENV)
    assert result.exit_code == 0
    for command in ("run", "search", "add", "remove", "positions", "history", "order"):
        assert command in result.output


def test_remove_protected_instrument_is_rejected_locally():
    result = CliRunner().invoke(cli, ["--user-id", "u1", "--ws-id", "ws1", "remove", "99926000"], env=ENV)
    assert result.exit_code == 1
    assert "NIFTY is protected" in result.output


def test_order_rejects_unknown_side():
    result = CliRunner().invoke(cli, ["order", "12345", "HOLD", "1"], env=ENV)
    assert result.exit_code == 2
