import argparse
from unittest.mock import MagicMock

import oracledb
import pytest

import check_connections


def _args(**overrides):
    parser = argparse.ArgumentParser()
    check_connections.add_connection_arguments(parser, repeatable_dsn=True)
    args = parser.parse_args([])
    for name, value in overrides.items():
        setattr(args, name, value)
    return args


def test_check_db_connection_success(monkeypatch, capsys):
    conn = MagicMock()
    conn.__enter__.return_value = conn
    cur = conn.cursor.return_value.__enter__.return_value
    cur.fetchone.return_value = (1,)
    fake_connect = MagicMock(return_value=conn)
    monkeypatch.setattr(check_connections.oracledb, "connect", fake_connect)
    monkeypatch.setenv("DP_PASSWORD", "pw")

    assert check_connections.check_db_connection("uat", _args(), "uat-db/UATPDB")

    cur.execute.assert_called_once_with("SELECT 1 FROM DUAL")
    assert fake_connect.call_args.kwargs["dsn"] == "uat-db/UATPDB"
    assert "uat: SUCCESS" in capsys.readouterr().out


def test_check_db_connection_failure(monkeypatch, capsys):
    def refuse(**kwargs):
        raise oracledb.OperationalError("DPY-6005: cannot connect to database")

    monkeypatch.setattr(check_connections.oracledb, "connect", refuse)
    monkeypatch.setenv("DP_PASSWORD", "pw")

    assert not check_connections.check_db_connection("prod", _args(), "prod-db/PRODPDB")
    out = capsys.readouterr().out
    assert "prod: FAILED" in out
    assert "DPY-6005" in out


def test_check_db_connection_uses_wallet_and_container(monkeypatch):
    conn = MagicMock()
    conn.__enter__.return_value = conn
    conn.cursor.return_value.__enter__.return_value.fetchone.return_value = (1,)
    fake_connect = MagicMock(return_value=conn)
    monkeypatch.setattr(check_connections.oracledb, "connect", fake_connect)
    monkeypatch.setenv("DP_PASSWORD", "pw")

    args = _args(wallet_dir="/opt/wallet", container="prodpdb")
    assert check_connections.check_db_connection("prod", args, "prod_high")

    assert fake_connect.call_args.kwargs["wallet_location"] == "/opt/wallet"
    cur = conn.cursor.return_value.__enter__.return_value
    cur.execute.assert_any_call("ALTER SESSION SET CONTAINER = PRODPDB")


def test_main_accepts_shared_connection_flags(monkeypatch):
    seen = []
    monkeypatch.setattr(
        check_connections,
        "check_db_connection",
        lambda label, args, dsn: seen.append((dsn, args.wallet_dir, args.container)) or True,
    )

    check_connections.main(
        ["--dsn", "uat_high", "--dsn", "prod_high", "--wallet-dir", "/opt/wallet",
         "--container", "PDB1"]
    )

    assert seen == [
        ("uat_high", "/opt/wallet", "PDB1"),
        ("prod_high", "/opt/wallet", "PDB1"),
    ]


def test_main_falls_back_to_env_dsn(monkeypatch):
    seen = []
    monkeypatch.setenv("DP_DSN", "uat-db/UATPDB")
    monkeypatch.setattr(
        check_connections, "check_db_connection", lambda label, args, dsn: seen.append(dsn) or True
    )

    check_connections.main([])

    assert seen == ["uat-db/UATPDB"]


def test_main_exits_non_zero_when_any_database_fails(monkeypatch, capsys):
    monkeypatch.setattr(
        check_connections,
        "check_db_connection",
        lambda label, args, dsn: dsn == "uat",
    )

    with pytest.raises(SystemExit) as exc:
        check_connections.main(["--dsn", "uat", "--dsn", "prod"])

    assert exc.value.code == 1
    out = capsys.readouterr().out
    assert "uat: OK" in out
    assert "prod: FAILED" in out
