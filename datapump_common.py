"""Shared helpers for the Data Pump schema migration scripts.

- Timestamped progress output (log_msg)
- Connection settings from flags / environment, password via getpass
- Job and file naming for schema exports and imports
- Parsing of comma-separated schema lists and SOURCE:TARGET remaps
- DataPumpJob: a thin driver over a DBMS_DATAPUMP job handle

All real work (parallelism, compression, filtering, file I/O) happens inside
DBMS_DATAPUMP. The scripts here only choose parameters, start jobs and poll
their status.

Prerequisites:
    pip install oracledb
"""

import datetime as dt
import getpass
import os
import re
import sys
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

try:
    import oracledb
except ImportError:
    print("python-oracledb is not installed. Install it with: pip install oracledb")
    sys.exit(1)

# Defaults (XE has no parallel or compression support, hence 1 / NONE)
DEFAULT_DIRECTORY = "DATAPUMP_DIR"
DEFAULT_USER = "SYSTEM"
DEFAULT_PARALLEL = 1
DEFAULT_COMPRESSION = "NONE"
DEFAULT_TABLE_EXISTS = "REPLACE"
STATUS_TIMEOUT = 10  # seconds GET_STATUS blocks waiting for new status
POLL_INTERVAL = 5  # seconds between DBA_DATAPUMP_JOBS polls

COMPRESSION_MODES = ("NONE", "ALL", "DATA_ONLY", "METADATA_ONLY")
TABLE_EXISTS_ACTIONS = ("SKIP", "APPEND", "TRUNCATE", "REPLACE")

# GET_STATUS job_state values that end the wait loop
WAIT_TERMINAL_STATES = ("COMPLETED", "STOPPED", "NOT RUNNING")

# ORA-31626: job does not exist
JOB_NOT_FOUND = 31626

SEPARATOR = "=" * 44
SUB_SEPARATOR = "-" * 44

_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_$#]*$")


class DataPumpError(Exception):
    """Raised for conditions detected before or around a Data Pump job."""


def log_msg(message: str = "") -> None:
    print(f"{dt.datetime.now():%Y-%m-%d %H:%M:%S} - {message}")


def ora_code(exc: Exception) -> Optional[int]:
    """Return the ORA error number carried by an oracledb exception, if any."""
    if not exc.args:
        return None
    return getattr(exc.args[0], "code", None)


def make_timestamp(now: Optional[dt.datetime] = None) -> str:
    return (now or dt.datetime.now()).strftime("%Y%m%d_%H%M%S")


def normalize_name(name: str, kind: str = "name") -> str:
    """Upper-case an Oracle identifier and reject anything that is not one."""
    cleaned = (name or "").strip().upper()
    if not cleaned:
        raise DataPumpError(f"Empty {kind}")
    if len(cleaned) > 128 or not _IDENTIFIER.match(cleaned):
        raise DataPumpError(f"Invalid {kind}: {name!r}")
    return cleaned


def parse_name_list(text: str) -> List[str]:
    """Split 'HR, OE,,SH' into ['HR', 'OE', 'SH'] keeping the given order."""
    return [part.strip() for part in (text or "").split(",") if part.strip()]


def parse_remap(value: Optional[str], kind: str = "schema") -> Optional[Tuple[str, str]]:
    """Parse a 'SOURCE:TARGET' remap.

    Returns None for an empty value. A value without ':' is ignored with a
    warning, the same way the engine-side packages treat it.
    """
    if not value or not value.strip():
        return None
    if ":" not in value:
        log_msg(f"WARNING: {kind} remap {value!r} is not SOURCE:TARGET, ignoring it")
        return None
    source, target = value.split(":", 1)
    return normalize_name(source, f"{kind} remap source"), normalize_name(
        target, f"{kind} remap target"
    )


def export_job_name(schema: str, timestamp: str) -> str:
    return f"EXP_{schema.upper()}_{timestamp}"


def import_job_name(schema: str, timestamp: str) -> str:
    return f"IMP_{schema.upper()}_{timestamp}"


def export_file_names(schema: str, timestamp: str, parallel: int = 1) -> Tuple[str, str]:
    """Return (dump_file, log_file) for an export.

    With parallel > 1 the dump file carries the %U substitution variable so
    each worker can write its own piece (HR_20240115_143022_01.dmp, ...).
    """
    base = f"{schema.upper()}_{timestamp}"
    dump_file = f"{base}_%U.dmp" if parallel > 1 else f"{base}.dmp"
    return dump_file, f"{base}_export.log"


def import_log_name(schema: str, timestamp: str) -> str:
    return f"{schema.upper()}_{timestamp}_import.log"


# Connection handling


def add_connection_arguments(parser, repeatable_dsn: bool = False) -> None:
    group = parser.add_argument_group("connection")
    if repeatable_dsn:
        group.add_argument(
            "--dsn",
            action="append",
            help="connect string or TNS alias; repeatable (env DP_DSN)",
        )
    else:
        group.add_argument(
            "--dsn",
            default=os.environ.get("DP_DSN"),
            help="connect string or TNS alias (env DP_DSN)",
        )
    group.add_argument(
        "--user",
        default=os.environ.get("DP_USER", DEFAULT_USER),
        help=f"database user (env DP_USER, default {DEFAULT_USER})",
    )
    group.add_argument(
        "--config-dir",
        default=os.environ.get("DP_CONFIG_DIR"),
        help="directory holding tnsnames.ora (env DP_CONFIG_DIR)",
    )
    group.add_argument(
        "--wallet-dir",
        default=os.environ.get("DP_WALLET_DIR"),
        help="wallet directory for TCPS connections (env DP_WALLET_DIR)",
    )
    group.add_argument("--sysdba", action="store_true", help="connect AS SYSDBA")
    group.add_argument(
        "--container", help="pluggable database to switch to after connecting"
    )


def get_password(user: str, dsn: str) -> str:
    password = os.environ.get("DP_PASSWORD")
    if password:
        return password
    return getpass.getpass(f"Enter password for {user} on {dsn}: ")


def connect(args, dsn: Optional[str] = None):
    """Open a connection described by parsed add_connection_arguments() flags.

    dsn overrides args.dsn, for scripts that take --dsn more than once.
    """
    dsn = dsn or args.dsn
    if not dsn:
        raise DataPumpError("No connect string given. Use --dsn or set DP_DSN.")
    container = normalize_name(args.container, "container") if args.container else None

    params = {
        "user": args.user,
        "password": get_password(args.user, dsn),
        "dsn": dsn,
    }
    if args.config_dir:
        params["config_dir"] = args.config_dir
    if args.wallet_dir:
        params["wallet_location"] = args.wallet_dir
    if args.sysdba:
        params["mode"] = oracledb.AUTH_MODE_SYSDBA

    conn = oracledb.connect(**params)
    if container:
        try:
            with conn.cursor() as cur:
                cur.execute(f"ALTER SESSION SET CONTAINER = {container}")
        except Exception:
            conn.close()
            raise
        log_msg(f"Session container set to {container}")
    return conn


def directory_path(cursor, directory: str) -> Optional[str]:
    """Return the OS path of a directory object, or None when it does not exist."""
    cursor.execute(
        """
        SELECT directory_path
        FROM   dba_directories
        WHERE  directory_name = :directory_name
        """,
        directory_name=directory.upper(),
    )
    row = cursor.fetchone()
    return row[0] if row else None


# Job driver

OPEN_PLSQL = """
BEGIN
  :handle := DBMS_DATAPUMP.OPEN(
               operation => :operation,
               job_mode  => :job_mode,
               job_name  => :job_name,
               version   => :version
             );
END;
"""

ATTACH_PLSQL = """
BEGIN
  :handle := DBMS_DATAPUMP.ATTACH(
               job_name  => :job_name,
               job_owner => NVL(:job_owner, USER)
             );
END;
"""

ADD_FILE_PLSQL = """
BEGIN
  DBMS_DATAPUMP.ADD_FILE(
    handle    => :handle,
    filename  => :filename,
    directory => :directory,
    filetype  => DBMS_DATAPUMP.{filetype},
    reusefile => :reusefile
  );
END;
"""

FILE_TYPES = {
    "dump": "KU$_FILE_TYPE_DUMP_FILE",
    "log": "KU$_FILE_TYPE_LOG_FILE",
}

METADATA_FILTER_PLSQL = """
BEGIN
  DBMS_DATAPUMP.METADATA_FILTER(
    handle => :handle,
    name   => :name,
    value  => :value
  );
END;
"""

METADATA_REMAP_PLSQL = """
BEGIN
  DBMS_DATAPUMP.METADATA_REMAP(
    handle    => :handle,
    name      => :name,
    old_value => :old_value,
    value     => :value
  );
END;
"""

SET_PARAMETER_PLSQL = """
BEGIN
  DBMS_DATAPUMP.SET_PARAMETER(
    handle => :handle,
    name   => :name,
    value  => :value
  );
END;
"""

SET_PARALLEL_PLSQL = """
BEGIN
  DBMS_DATAPUMP.SET_PARALLEL(handle => :handle, degree => :degree);
END;
"""

START_JOB_PLSQL = """
BEGIN
  DBMS_DATAPUMP.START_JOB(handle => :handle);
END;
"""

GET_STATUS_PLSQL = """
DECLARE
  v_state   VARCHAR2(30);
  v_status  ku$_Status;
  v_ind     NUMBER;
  v_errors  VARCHAR2(32767);
BEGIN
  DBMS_DATAPUMP.GET_STATUS(
    handle    => :handle,
    mask      => DBMS_DATAPUMP.KU$_STATUS_JOB_STATUS +
                 DBMS_DATAPUMP.KU$_STATUS_JOB_ERROR +
                 DBMS_DATAPUMP.KU$_STATUS_WIP,
    timeout   => :timeout,
    job_state => v_state,
    status    => v_status
  );
  :job_state := v_state;
  :has_status := 0;

  IF v_status IS NOT NULL AND v_status.job_status IS NOT NULL THEN
    :has_status := 1;
    :percent_done := v_status.job_status.percent_done;
  END IF;

  -- Error lines come back newline separated
  IF v_status IS NOT NULL AND v_status.error IS NOT NULL THEN
    v_ind := v_status.error.FIRST;
    WHILE v_ind IS NOT NULL LOOP
      v_errors := SUBSTR(v_errors || v_status.error(v_ind).logtext || CHR(10), 1, 32000);
      v_ind := v_status.error.NEXT(v_ind);
    END LOOP;
  END IF;
  :errors := v_errors;
END;
"""

STOP_JOB_PLSQL = """
BEGIN
  DBMS_DATAPUMP.STOP_JOB(
    handle      => :handle,
    immediate   => :immediate,
    keep_master => :keep_master
  );
END;
"""

DETACH_PLSQL = """
BEGIN
  DBMS_DATAPUMP.DETACH(handle => :handle);
END;
"""


@dataclass
class JobStatus:
    state: Optional[str]
    percent_done: Optional[float] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class JobResult:
    job_name: str
    state: Optional[str]
    dump_file: str
    log_file: str
    directory: str


class DataPumpJob:
    """A DBMS_DATAPUMP job handle bound to one cursor/session.

    Handles are only valid in the session that opened or attached them, so
    every call goes through the same cursor.
    """

    def __init__(self, cursor, job_name: str, handle: int):
        self.cursor = cursor
        self.job_name = job_name
        self.handle = handle
        self.state: Optional[str] = None

    @classmethod
    def open(cls, cursor, operation: str, job_name: str, job_mode: str = "SCHEMA",
             version: str = "LATEST") -> "DataPumpJob":
        handle_var = cursor.var(int)
        cursor.execute(
            OPEN_PLSQL,
            handle=handle_var,
            operation=operation,
            job_mode=job_mode,
            job_name=job_name,
            version=version,
        )
        job = cls(cursor, job_name, handle_var.getvalue())
        log_msg(f"Job handle opened: {job.handle}")
        return job

    @classmethod
    def attach(cls, cursor, job_name: str, owner: Optional[str] = None) -> "DataPumpJob":
        handle_var = cursor.var(int)
        cursor.execute(
            ATTACH_PLSQL,
            handle=handle_var,
            job_name=job_name.upper(),
            job_owner=owner.upper() if owner else None,
        )
        return cls(cursor, job_name.upper(), handle_var.getvalue())

    def add_file(self, filename: str, directory: str, filetype: str = "dump",
                 reuse: bool = False) -> None:
        self.cursor.execute(
            ADD_FILE_PLSQL.format(filetype=FILE_TYPES[filetype]),
            handle=self.handle,
            filename=filename,
            directory=directory,
            reusefile=1 if reuse else None,
        )

    def metadata_filter(self, name: str, value: str) -> None:
        self.cursor.execute(
            METADATA_FILTER_PLSQL, handle=self.handle, name=name, value=value
        )

    def metadata_remap(self, name: str, old_value: str, value: str) -> None:
        self.cursor.execute(
            METADATA_REMAP_PLSQL,
            handle=self.handle,
            name=name,
            old_value=old_value,
            value=value,
        )

    def set_parameter(self, name: str, value) -> None:
        self.cursor.execute(
            SET_PARAMETER_PLSQL, handle=self.handle, name=name, value=value
        )

    def set_parallel(self, degree: int) -> None:
        self.cursor.execute(SET_PARALLEL_PLSQL, handle=self.handle, degree=degree)

    def start(self) -> None:
        log_msg("Starting Data Pump job...")
        self.cursor.execute(START_JOB_PLSQL, handle=self.handle)

    def get_status(self, timeout: int = STATUS_TIMEOUT) -> JobStatus:
        state_var = self.cursor.var(str)
        has_status_var = self.cursor.var(int)
        pct_var = self.cursor.var(float)
        errors_var = self.cursor.var(str, 32767)
        self.cursor.execute(
            GET_STATUS_PLSQL,
            handle=self.handle,
            timeout=timeout,
            job_state=state_var,
            has_status=has_status_var,
            percent_done=pct_var,
            errors=errors_var,
        )
        percent_done = None
        if has_status_var.getvalue():
            percent_done = pct_var.getvalue() or 0
        errors = [line for line in (errors_var.getvalue() or "").splitlines() if line]
        return JobStatus(state_var.getvalue(), percent_done, errors)

    def wait(self, timeout: int = STATUS_TIMEOUT) -> Optional[str]:
        """Block on GET_STATUS until the job reaches a terminal state.

        Returns the last job state seen. A job that disappears while waiting
        (ORA-31626) ends the loop; other errors propagate.
        """
        while True:
            try:
                status = self.get_status(timeout)
            except oracledb.DatabaseError as e:
                if ora_code(e) == JOB_NOT_FOUND:
                    log_msg(f"Job {self.job_name} no longer exists")
                    break
                raise

            self.state = status.state
            if status.percent_done is not None:
                log_msg(f"Progress: {status.percent_done:g}% - State: {status.state}")
            for text in status.errors:
                log_msg(f"ERROR: {text}")

            if status.state in WAIT_TERMINAL_STATES:
                break
        return self.state

    def stop(self, immediate: bool = True, keep_master: bool = False) -> None:
        self.cursor.execute(
            STOP_JOB_PLSQL,
            handle=self.handle,
            immediate=1 if immediate else 0,
            keep_master=1 if keep_master else 0,
        )

    def detach(self, quiet: bool = False) -> None:
        try:
            self.cursor.execute(DETACH_PLSQL, handle=self.handle)
        except oracledb.DatabaseError:
            # cleanup after a failure keeps the caller's exception
            if not quiet:
                raise
