import argparse
import datetime as dt
from unittest.mock import MagicMock

import oracledb
import pytest

import datapump_common
from datapump_common import (
    DataPumpError,
    DataPumpJob,
    export_file_names,
    export_job_name,
    import_job_name,
    import_log_name,
    make_timestamp,
    normalize_name,
    ora_code,
    parse_name_list,
    parse_remap,
)
from conftest import FakeCursor, ora_error

NOW = dt.datetime(2024, 1, 15, 14, 30, 22)


def test_make_timestamp():
    assert make_timestamp(NOW) == "20240115_143022"


def test_log_msg_prefixes_timestamp(capsys):
    datapump_common.log_msg("hello")
    out = capsys.readouterr().out.strip()
    assert out.endswith(" - hello")
    dt.datetime.strptime(out[:19], "%Y-%m-%d %H:%M:%S")


def test_normalize_name_upper_cases_and_strips():
    assert normalize_name("  hr ") == "HR"
    assert normalize_name("app$user#1") == "APP$USER#1"


@pytest.mark.parametrize("bad", ["", "   ", "1HR", "HR'; DROP USER X", "HR OE", "A" * 129])
def test_normalize_name_rejects_non_identifiers(bad):
    with pytest.raises(DataPumpError):
        normalize_name(bad, "schema")


def test_parse_name_list_skips_blank_entries_and_keeps_order():
    assert parse_name_list(" HR, OE,,SH ,") == ["HR", "OE", "SH"]
    assert parse_name_list("") == []
    assert parse_name_list(None) == []


def test_parse_remap():
    assert parse_remap("hr : hr_prod") == ("HR", "HR_PROD")
    assert parse_remap(None) is None
    assert parse_remap("  ") is None


def test_parse_remap_without_colon_is_ignored(capsys):
    assert parse_remap("HR_PROD", "schema") is None
    assert "not SOURCE:TARGET" in capsys.readouterr().out


def test_export_file_names_use_substitution_only_when_parallel():
    assert export_file_names("hr", "20240115_143022", 1) == (
        "HR_20240115_143022.dmp",
        "HR_20240115_143022_export.log",
    )
    assert export_file_names("hr", "20240115_143022", 4) == (
        "HR_20240115_143022_%U.dmp",
        "HR_20240115_143022_export.log",
    )


def test_job_and_log_names():
    assert export_job_name("hr", "20240115_143022") == "EXP_HR_20240115_143022"
    assert import_job_name("hr", "20240115_150000") == "IMP_HR_20240115_150000"
    assert import_log_name("hr", "20240115_150000") == "HR_20240115_150000_import.log"


def test_ora_code():
    assert ora_code(ora_error(31626)) == 31626
    assert ora_code(oracledb.DatabaseError()) is None
    assert ora_code(ValueError("plain")) is None


def test_open_binds_operation_and_returns_handle():
    cur = FakeCursor(handle=7)
    job = DataPumpJob.open(cur, "EXPORT", "EXP_HR_1")

    assert job.handle == 7
    (binds,) = cur.calls("DBMS_DATAPUMP.OPEN")
    assert binds["operation"] == "EXPORT"
    assert binds["job_mode"] == "SCHEMA"
    assert binds["job_name"] == "EXP_HR_1"
    assert binds["version"] == "LATEST"


def test_add_file_chooses_file_type_and_reuse():
    cur = FakeCursor()
    job = DataPumpJob(cur, "IMP_HR_1", 101)
    job.add_file("HR.dmp", "DATAPUMP_DIR", "dump")
    job.add_file("HR_import.log", "DATAPUMP_DIR", "log", reuse=True)

    dump_sql, log_sql = cur.statements("DBMS_DATAPUMP.ADD_FILE")
    assert "KU$_FILE_TYPE_DUMP_FILE" in dump_sql
    assert "KU$_FILE_TYPE_LOG_FILE" in log_sql
    dump_binds, log_binds = cur.calls("DBMS_DATAPUMP.ADD_FILE")
    assert dump_binds["reusefile"] is None
    assert log_binds["reusefile"] == 1


def test_wait_prints_progress_and_stops_on_completed(capsys):
    cur = FakeCursor(
        statuses=[
            ("EXECUTING", None, []),
            ("EXECUTING", 40, ["ORA-39082: object created with compilation warnings"]),
            ("COMPLETED", 100, []),
            ("SHOULD NOT BE READ", 0, []),
        ]
    )
    job = DataPumpJob(cur, "EXP_HR_1", 101)

    assert job.wait() == "COMPLETED"
    assert len(cur.statuses) == 1
    out = capsys.readouterr().out
    assert "Progress: 40% - State: EXECUTING" in out
    assert "Progress: 100% - State: COMPLETED" in out
    assert "ERROR: ORA-39082: object created with compilation warnings" in out
    assert out.count("Progress:") == 2


@pytest.mark.parametrize("terminal", ["STOPPED", "NOT RUNNING"])
def test_wait_stops_on_other_terminal_states(terminal):
    cur = FakeCursor(statuses=[("EXECUTING", 10, []), (terminal, 10, [])])
    assert DataPumpJob(cur, "EXP_HR_1", 101).wait() == terminal


def test_wait_ends_when_job_disappears(capsys):
    cur = FakeCursor(statuses=[("EXECUTING", 90, []), ora_error(31626)])
    job = DataPumpJob(cur, "EXP_HR_1", 101)

    assert job.wait() == "EXECUTING"
    assert "no longer exists" in capsys.readouterr().out


def test_wait_propagates_other_errors():
    cur = FakeCursor(statuses=[ora_error(31623)])
    with pytest.raises(oracledb.DatabaseError):
        DataPumpJob(cur, "EXP_HR_1", 101).wait()


def test_get_status_passes_timeout():
    cur = FakeCursor(statuses=[("EXECUTING", 5, [])])
    status = DataPumpJob(cur, "EXP_HR_1", 101).get_status(timeout=3)

    assert status.state == "EXECUTING"
    assert status.percent_done == 5
    assert cur.calls("GET_STATUS")[0]["timeout"] == 3


def test_detach_quiet_swallows_database_errors():
    cur = FakeCursor(errors={"DBMS_DATAPUMP.DETACH": ora_error(31623)})
    job = DataPumpJob(cur, "EXP_HR_1", 101)

    job.detach(quiet=True)
    with pytest.raises(oracledb.DatabaseError):
        job.detach()


def test_stop_binds_flags():
    cur = FakeCursor()
    DataPumpJob(cur, "EXP_HR_1", 101).stop(immediate=False, keep_master=True)
    (binds,) = cur.calls("DBMS_DATAPUMP.STOP_JOB")
    assert binds == {"handle": 101, "immediate": 0, "keep_master": 1}


def test_directory_path():
    cur = FakeCursor(results={"dba_directories": [[("/u01/dpdump",)], []]})
    assert datapump_common.directory_path(cur, "datapump_dir") == "/u01/dpdump"
    assert cur.calls("dba_directories")[0]["directory_name"] == "DATAPUMP_DIR"
    assert datapump_common.directory_path(cur, "missing_dir") is None


def _connection_args(**overrides):
    values = dict(
        dsn="uat-db/UATPDB",
        user="SYSTEM",
        config_dir=None,
        wallet_dir=None,
        sysdba=False,
        container=None,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def test_connect_uses_env_password_and_options(monkeypatch):
    fake_connect = MagicMock()
    monkeypatch.setattr(datapump_common.oracledb, "connect", fake_connect)
    monkeypatch.setenv("DP_PASSWORD", "secret")

    datapump_common.connect(
        _connection_args(sysdba=True, config_dir="/etc/tns", wallet_dir="/etc/wallet")
    )

    fake_connect.assert_called_once_with(
        user="SYSTEM",
        password="secret",
        dsn="uat-db/UATPDB",
        config_dir="/etc/tns",
        wallet_location="/etc/wallet",
        mode=oracledb.AUTH_MODE_SYSDBA,
    )


def test_connect_switches_container(monkeypatch):
    conn = MagicMock()
    monkeypatch.setattr(datapump_common.oracledb, "connect", MagicMock(return_value=conn))
    monkeypatch.setenv("DP_PASSWORD", "secret")

    datapump_common.connect(_connection_args(container="uatpdb"))

    cur = conn.cursor.return_value.__enter__.return_value
    cur.execute.assert_called_once_with("ALTER SESSION SET CONTAINER = UATPDB")


def test_connect_closes_connection_when_container_switch_fails(monkeypatch):
    conn = MagicMock()
    cur = conn.cursor.return_value.__enter__.return_value
    cur.execute.side_effect = ora_error(65011)
    monkeypatch.setattr(datapump_common.oracledb, "connect", MagicMock(return_value=conn))
    monkeypatch.setenv("DP_PASSWORD", "secret")

    with pytest.raises(oracledb.DatabaseError):
        datapump_common.connect(_connection_args(container="nopdb"))

    conn.close.assert_called_once()


def test_connect_rejects_bad_container_before_connecting(monkeypatch):
    fake_connect = MagicMock()
    monkeypatch.setattr(datapump_common.oracledb, "connect", fake_connect)
    monkeypatch.setenv("DP_PASSWORD", "secret")

    with pytest.raises(DataPumpError):
        datapump_common.connect(_connection_args(container="bad pdb"))

    fake_connect.assert_not_called()


def test_connect_dsn_argument_overrides_flag(monkeypatch):
    fake_connect = MagicMock()
    monkeypatch.setattr(datapump_common.oracledb, "connect", fake_connect)
    monkeypatch.setenv("DP_PASSWORD", "secret")

    datapump_common.connect(_connection_args(), "prod-db/PRODPDB")

    assert fake_connect.call_args.kwargs["dsn"] == "prod-db/PRODPDB"


def test_connect_prompts_when_no_env_password(monkeypatch):
    monkeypatch.delenv("DP_PASSWORD", raising=False)
    monkeypatch.setattr(datapump_common.getpass, "getpass", MagicMock(return_value="typed"))
    fake_connect = MagicMock()
    monkeypatch.setattr(datapump_common.oracledb, "connect", fake_connect)

    datapump_common.connect(_connection_args())

    assert fake_connect.call_args.kwargs["password"] == "typed"


def test_connect_requires_dsn():
    with pytest.raises(DataPumpError):
        datapump_common.connect(_connection_args(dsn=None))
