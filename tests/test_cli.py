from unittest.mock import AsyncMock, MagicMock

import cli.cli as cli_module
from api.core.config import settings
from cli.cli import create_parser, main


def test_parser_commands():
    parser = create_parser()
    args = parser.parse_args(["import-calls", "--hours", "6"])
    assert args.command == "import-calls"
    assert args.hours == 6

    args = parser.parse_args(["import-leads", "--page-id", "123"])
    assert args.page_id == "123"


def test_classify_prints_outcome_and_rule(capsys):
    code = main(["classify", "--ended-reason", "voicemail", "--duration", "20"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Outcome: Voicemail" in out
    assert "Rule: voicemail" in out


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage: call-relay" in capsys.readouterr().out


def test_import_calls_without_credentials_fails(capsys):
    code = main(["import-calls"])

    out = capsys.readouterr().out
    assert code == 1
    assert "not_configured" in out


def test_engine_disposed_when_table_setup_fails(monkeypatch, capsys):
    engine = MagicMock()
    engine.dispose = AsyncMock()
    monkeypatch.setattr(cli_module, "engine", engine)
    monkeypatch.setattr(cli_module, "init_models", AsyncMock(side_effect=RuntimeError("db unreachable")))
    monkeypatch.setattr(settings, "database_auto_create", True)

    for command in (["import-calls"], ["import-leads", "--page-id", "1"], ["stats"]):
        assert main(command) == 1

    assert engine.dispose.await_count == 3
    assert "db unreachable" in capsys.readouterr().out
