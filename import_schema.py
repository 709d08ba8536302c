"""Import a schema from a Data Pump dump set into the target database.

- Uses DBMS_DATAPUMP in SCHEMA mode
- Job name: IMP_<SCHEMA>_<YYYYMMDD_HHMMSS>
- Dump file: as produced by export_schema.py, %U patterns are passed as-is
- Log file:  <SCHEMA>_<timestamp>_import.log (reused if present)
- TABLE_EXISTS_ACTION: SKIP, APPEND, TRUNCATE or REPLACE (default REPLACE)
- Optional REMAP_SCHEMA / REMAP_TABLESPACE given as SOURCE:TARGET
- Polls DBMS_DATAPUMP.GET_STATUS until the job finishes
- Recompiles the imported schema and reports remaining invalid objects

Prerequisites:
    - Dump files copied into the target directory object (transfer_dump.py)
    - The connecting user has DATAPUMP_IMP_FULL_DATABASE or runs as SYSDBA
    - python-oracledb installed

Example:
    python import_schema.py --dsn prod-db/PRODPDB --schema HR \\
        --dump-file HR_20240115_143022_%U.dmp --remap-schema HR:HR_PROD
"""

import argparse
import sys
from typing import Optional

import oracledb

from datapump_common import (
    DEFAULT_DIRECTORY,
    DEFAULT_PARALLEL,
    DEFAULT_TABLE_EXISTS,
    TABLE_EXISTS_ACTIONS,
    DataPumpError,
    DataPumpJob,
    JobResult,
    add_connection_arguments,
    connect,
    import_job_name,
    import_log_name,
    log_msg,
    make_timestamp,
    normalize_name,
    parse_remap,
)

COMPILE_SCHEMA_PLSQL = """
BEGIN
  DBMS_UTILITY.COMPILE_SCHEMA(schema => :schema, compile_all => FALSE);
END;
"""

INVALID_OBJECTS_SQL = """
SELECT object_type, object_name
FROM   dba_objects
WHERE  owner = :owner
AND    status = 'INVALID'
ORDER  BY object_type, object_name
"""


def recompile_schema(cursor, schema: str) -> list:
    """Recompile invalid objects and return the ones still invalid.

    Compilation problems are reported but never fail the import: the data is
    already loaded by the time this runs.
    """
    log_msg("Recompiling schema objects...")
    try:
        cursor.execute(COMPILE_SCHEMA_PLSQL, schema=schema)
        log_msg("Schema recompilation completed")
    except oracledb.DatabaseError as e:
        log_msg(f"Warning during recompilation: {e}")

    try:
        cursor.execute(INVALID_OBJECTS_SQL, owner=schema)
        invalid = cursor.fetchall()
    except oracledb.DatabaseError as e:
        log_msg(f"Could not check invalid objects: {e}")
        return []

    if invalid:
        log_msg(f"WARNING: {len(invalid)} invalid object(s) remain in {schema}:")
        for object_type, object_name in invalid:
            log_msg(f"  {object_type} {object_name}")
    else:
        log_msg(f"No invalid objects in {schema}")
    return invalid


def import_schema(
    cursor,
    schema: str,
    dump_file: str,
    directory: str = DEFAULT_DIRECTORY,
    parallel: int = DEFAULT_PARALLEL,
    table_exists: str = DEFAULT_TABLE_EXISTS,
    remap_schema: Optional[str] = None,
    remap_tablespace: Optional[str] = None,
    recompile: bool = True,
    now=None,
) -> JobResult:
    """Run a SCHEMA-mode import of one schema and wait for it to finish."""

    schema = normalize_name(schema, "schema")
    directory = normalize_name(directory, "directory")
    table_exists = (table_exists or "").strip().upper()
    if table_exists not in TABLE_EXISTS_ACTIONS:
        raise DataPumpError(
            f"Invalid table exists action {table_exists!r}, "
            f"expected one of {', '.join(TABLE_EXISTS_ACTIONS)}"
        )
    schema_remap = parse_remap(remap_schema, "schema")
    tablespace_remap = parse_remap(remap_tablespace, "tablespace")

    timestamp = make_timestamp(now)
    job_name = import_job_name(schema, timestamp)
    log_file = import_log_name(schema, timestamp)

    log_msg(f"Starting import for schema: {schema}")
    log_msg(f"Job Name: {job_name}")
    log_msg(f"Dump File: {dump_file}")
    log_msg(f"Log File: {log_file}")
    log_msg(f"Directory: {directory}")
    log_msg(f"Table Exists Action: {table_exists}")

    job = None
    try:
        job = DataPumpJob.open(cursor, "IMPORT", job_name)
        job.add_file(dump_file, directory, "dump")
        job.add_file(log_file, directory, "log", reuse=True)
        job.metadata_filter("SCHEMA_EXPR", f"IN ('{schema}')")
        job.set_parameter("TABLE_EXISTS_ACTION", table_exists)

        if parallel > 1:
            job.set_parallel(parallel)
            log_msg(f"Parallel degree set to: {parallel}")

        if schema_remap:
            job.metadata_remap("REMAP_SCHEMA", *schema_remap)
            log_msg(f"Schema remap: {schema_remap[0]} -> {schema_remap[1]}")

        if tablespace_remap:
            job.metadata_remap("REMAP_TABLESPACE", *tablespace_remap)
            log_msg(f"Tablespace remap: {tablespace_remap[0]} -> {tablespace_remap[1]}")

        job.start()
        state = job.wait()
        job.detach(quiet=True)

    except Exception as e:
        log_msg(f"ERROR: {e}")
        if job is not None:
            job.detach(quiet=True)
        raise

    log_msg(f"Import completed with state: {state}")
    log_msg(f"Log file location: {directory}/{log_file}")

    if recompile:
        recompile_schema(cursor, schema_remap[1] if schema_remap else schema)

    return JobResult(job_name, state, dump_file, log_file, directory)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a schema with Data Pump.")
    add_connection_arguments(parser)
    parser.add_argument("--schema", required=True)
    parser.add_argument(
        "--dump-file", required=True, help="e.g. HR_20240115_143022_%%U.dmp"
    )
    parser.add_argument("--directory", default=DEFAULT_DIRECTORY)
    parser.add_argument("--parallel", type=int, default=DEFAULT_PARALLEL)
    parser.add_argument(
        "--table-exists",
        type=str.upper,
        choices=TABLE_EXISTS_ACTIONS,
        default=DEFAULT_TABLE_EXISTS,
    )
    parser.add_argument("--remap-schema", help="SOURCE_SCHEMA:TARGET_SCHEMA")
    parser.add_argument("--remap-tablespace", help="SOURCE_TS:TARGET_TS")
    parser.add_argument(
        "--no-recompile",
        dest="recompile",
        action="store_false",
        help="skip DBMS_UTILITY.COMPILE_SCHEMA after the load",
    )
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    try:
        with connect(args) as conn:
            with conn.cursor() as cur:
                result = import_schema(
                    cur,
                    args.schema,
                    args.dump_file,
                    directory=args.directory,
                    parallel=args.parallel,
                    table_exists=args.table_exists,
                    remap_schema=args.remap_schema,
                    remap_tablespace=args.remap_tablespace,
                    recompile=args.recompile,
                )
    except Exception as e:
        print("An error occurred during the import:")
        print(e)
        sys.exit(1)

    print(f"\nImport job {result.job_name} finished with state {result.state}.")
    print(f"Check the log file: {result.directory}/{result.log_file}")


if __name__ == "__main__":
    main()
