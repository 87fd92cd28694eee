import pytest

import db_fixer.cli as cli
from db_fixer.errors import DatabaseConnectionError


def write_config(tmp_path, body):
    path = tmp_path / "db_fixer_config.py"
    path.write_text(body, encoding="utf-8")
    return str(path)


GOOD = """
def configure(config):
    config.connection(dbname="app", user="root", password="secret")
    config.rules(["detect_orphaned_child_rows"])
"""


def test_parse_args_defaults():
    args = cli._parse_args([])
    assert args.config == "db_fixer_config.py"
    assert args.dry is False
    assert args.log is None


def test_bad_configuration_exits_2(tmp_path, capsys):
    path = write_config(tmp_path, "def configure(config):\n    config.rules(['no_such_rule'])\n")
    assert cli.main(["--config", path]) == cli.EXIT_BAD_CONFIG
    assert "[ERROR] Invalid configuration: Unknown rule 'no_such_rule'" in capsys.readouterr().out


def test_unsupported_driver_exits_2_before_connecting(tmp_path, monkeypatch, capsys):
    def fail(*args, **kwargs):
        raise AssertionError("execute_run must not be reached")

    monkeypatch.setattr(cli, "execute_run", fail)
    path = write_config(
        tmp_path,
        "def configure(config):\n    config.connection(driver='pgsql', dbname='app', user='root', password='')\n",
    )
    assert cli.main(["--config", path]) == cli.EXIT_BAD_CONFIG
    assert "Unsupported driver 'pgsql'" in capsys.readouterr().out


def test_misspelled_constraint_option_exits_2(tmp_path):
    path = write_config(
        tmp_path,
        "from db_fixer.constraints import DateStorageConstraints\n\n\n"
        "def configure(config):\n"
        "    config.connection(dbname='app', user='root', password='')\n"
        "    config.rules([{'classify_date_storage_across_schema': DateStorageConstraints(preview=5)}])\n",
    )
    assert cli.main(["--config", path]) == cli.EXIT_BAD_CONFIG


def test_missing_configuration_exits_2(tmp_path):
    assert cli.main(["--config", str(tmp_path / "nope.py")]) == 2


def test_connection_failure_exits_1(tmp_path, monkeypatch):
    def refuse(config, dry, log_dir, reporter):
        raise DatabaseConnectionError("refused")

    monkeypatch.setattr(cli, "execute_run", refuse)
    assert cli.main(["--config", write_config(tmp_path, GOOD)]) == cli.EXIT_CONNECTION_FAILED


def test_successful_run_exits_0_and_passes_flags(tmp_path, monkeypatch):
    seen = {}

    def record(config, dry, log_dir, reporter):
        seen.update(dry=dry, log_dir=log_dir, rules=[d.identity for d in config.rule_definitions])

    monkeypatch.setattr(cli, "execute_run", record)
    log_dir = str(tmp_path / "logs")
    assert cli.main(["--config", write_config(tmp_path, GOOD), "--dry", "--log", log_dir]) == 0
    assert seen == {"dry": True, "log_dir": log_dir, "rules": ["detect_orphaned_child_rows"]}


def test_help(capsys):
    with pytest.raises(SystemExit):
        cli._parse_args(["--help"])
    assert "--dry" in capsys.readouterr().out
