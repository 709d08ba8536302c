"""Export one or more schemas to a directory object using Data Pump.

- Uses DBMS_DATAPUMP in SCHEMA mode, one job per schema
- Job name:  EXP_<SCHEMA>_<YYYYMMDD_HHMMSS>
- Dump file: <SCHEMA>_<timestamp>.dmp (or _%U.dmp when PARALLEL > 1)
- Log file:  <SCHEMA>_<timestamp>_export.log
- Optional PARALLEL, COMPRESSION and FLASHBACK_TIME
- Polls DBMS_DATAPUMP.GET_STATUS until the job finishes
- A comma-separated schema list is exported one by one; a failed schema
  does not stop the rest

Prerequisites:
    - The directory object exists and the OS path is writable by oracle
      (run check_directory.py first)
    - The connecting user has DATAPUMP_EXP_FULL_DATABASE or runs as SYSDBA
    - python-oracledb installed

Example:
    python export_schema.py --dsn uat-db/UATPDB --schemas HR,OE,SH --parallel 4
"""

import argparse
import sys
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import oracledb

from datapump_common import (
    COMPRESSION_MODES,
    DEFAULT_COMPRESSION,
    DEFAULT_DIRECTORY,
    DEFAULT_PARALLEL,
    SEPARATOR,
    SUB_SEPARATOR,
    DataPumpError,
    DataPumpJob,
    JobResult,
    add_connection_arguments,
    connect,
    directory_path,
    export_file_names,
    export_job_name,
    log_msg,
    make_timestamp,
    normalize_name,
    parse_name_list,
)


@dataclass
class BatchResult:
    succeeded: List[JobResult] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


def check_schema(cursor, schema: str) -> None:
    """Raise if the schema is missing; warn if it is Oracle-maintained."""
    cursor.execute(
        """
        SELECT COUNT(*), MAX(oracle_maintained)
        FROM   dba_users
        WHERE  username = :username
        """,
        username=schema,
    )
    count, oracle_maintained = cursor.fetchone()
    if count == 0:
        raise DataPumpError(f"Schema {schema} does not exist")
    if oracle_maintained == "Y":
        log_msg(f"WARNING: {schema} is an Oracle-maintained schema.")
        log_msg("WARNING: Export may fail or have restrictions. Consider skipping this schema.")


def export_schema(
    cursor,
    schema: str,
    directory: str = DEFAULT_DIRECTORY,
    parallel: int = DEFAULT_PARALLEL,
    compression: str = DEFAULT_COMPRESSION,
    flashback_time: Optional[str] = None,
    now=None,
) -> JobResult:
    """Run a SCHEMA-mode export of one schema and wait for it to finish."""

    schema = normalize_name(schema, "schema")
    directory = normalize_name(directory, "directory")
    timestamp = make_timestamp(now)
    job_name = export_job_name(schema, timestamp)
    dump_file, log_file = export_file_names(schema, timestamp, parallel)

    log_msg(f"Starting export for schema: {schema}")
    log_msg(f"Job Name: {job_name}")
    log_msg(f"Dump File: {dump_file}")
    log_msg(f"Log File: {log_file}")
    log_msg(f"Directory: {directory}")
    log_msg(f"Parallel: {parallel}")

    job = None
    try:
        path = directory_path(cursor, directory)
        if path is None:
            raise DataPumpError(
                f"Directory {directory} does not exist. "
                f"Create with: CREATE DIRECTORY {directory} AS '/path/to/dir';"
            )
        log_msg(f"Directory path: {path}")

        check_schema(cursor, schema)

        job = DataPumpJob.open(cursor, "EXPORT", job_name)

        try:
            job.add_file(dump_file, directory, "dump")
        except oracledb.DatabaseError as e:
            log_msg(f"ERROR adding dump file: {e}")
            log_msg("Check: 1) Directory exists  2) OS path exists  3) Write permissions")
            raise

        try:
            job.add_file(log_file, directory, "log")
        except oracledb.DatabaseError as e:
            log_msg(f"ERROR adding log file: {e}")
            raise

        job.metadata_filter("SCHEMA_EXPR", f"IN ('{schema}')")

        if parallel > 1:
            job.set_parallel(parallel)
            log_msg(f"Parallel degree set to: {parallel}")

        if compression and compression.upper() != "NONE":
            try:
                job.set_parameter("COMPRESSION", compression.upper())
                log_msg(f"Compression set to: {compression.upper()}")
            except oracledb.DatabaseError as e:
                log_msg(f"WARNING: Compression not set ({e}). Continuing without compression.")
        else:
            log_msg("Compression: NONE")

        if flashback_time:
            job.set_parameter("FLASHBACK_TIME", flashback_time)
            log_msg(f"Flashback time: {flashback_time}")

        job.start()
        state = job.wait()
        job.detach(quiet=True)

    except Exception as e:
        log_msg(f"ERROR: {e}")
        if job is not None:
            job.detach(quiet=True)
        raise

    log_msg(f"Export completed with state: {state}")
    log_msg(f"Dump file location: {directory}/{dump_file}")
    log_msg(f"Log file location: {directory}/{log_file}")
    return JobResult(job_name, state, dump_file, log_file, directory)


def export_schemas(
    cursor,
    schema_list: str,
    directory: str = DEFAULT_DIRECTORY,
    parallel: int = DEFAULT_PARALLEL,
    compression: str = DEFAULT_COMPRESSION,
    flashback_time: Optional[str] = None,
) -> BatchResult:
    """Export every schema of a comma-separated list, continuing past failures."""

    result = BatchResult()
    log_msg(f"Starting batch export for schemas: {schema_list}")
    log_msg(SEPARATOR)

    for schema in parse_name_list(schema_list):
        log_msg()
        log_msg(f"Processing schema: {schema}")
        log_msg(SUB_SEPARATOR)
        try:
            result.succeeded.append(
                export_schema(
                    cursor,
                    schema,
                    directory=directory,
                    parallel=parallel,
                    compression=compression,
                    flashback_time=flashback_time,
                )
            )
        except Exception as e:
            log_msg(f"Failed to export schema {schema}: {e}")
            result.failed.append((schema, str(e)))

    log_msg()
    log_msg(SEPARATOR)
    log_msg(
        f"Batch export completed: {len(result.succeeded)} succeeded, "
        f"{len(result.failed)} failed"
    )
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export schemas with Data Pump.")
    add_connection_arguments(parser)
    parser.add_argument(
        "--schemas", required=True, help="comma-separated list, e.g. HR,OE,SH"
    )
    parser.add_argument("--directory", default=DEFAULT_DIRECTORY)
    parser.add_argument("--parallel", type=int, default=DEFAULT_PARALLEL)
    parser.add_argument(
        "--compression",
        type=str.upper,
        choices=COMPRESSION_MODES,
        default=DEFAULT_COMPRESSION,
        help="not available on XE",
    )
    parser.add_argument(
        "--flashback-time",
        help="e.g. SYSTIMESTAMP or \"TO_TIMESTAMP('2024-01-15 14:30:00','YYYY-MM-DD HH24:MI:SS')\"",
    )
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    try:
        with connect(args) as conn:
            with conn.cursor() as cur:
                result = export_schemas(
                    cur,
                    args.schemas,
                    directory=args.directory,
                    parallel=args.parallel,
                    compression=args.compression,
                    flashback_time=args.flashback_time,
                )
    except Exception as e:
        print("An error occurred during the export:")
        print(e)
        sys.exit(1)

    for job in result.succeeded:
        print(f"  {job.job_name}: {job.state} -> {job.directory}/{job.dump_file}")
    if result.failed:
        print("\nFailed schemas:")
        for schema, error in result.failed:
            print(f"  {schema}: {error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
