"""Create a Data Pump directory object and grant READ/WRITE on it.

- Creates or replaces the directory object pointing at an OS path
- Grants READ, WRITE to each listed user (one failed grant does not stop
  the others)
- Verifies setup via ALL_DIRECTORIES

Run this on both source and target databases before exporting/importing.
The OS path itself must already exist on the database server and be
writable by the oracle user.

Prerequisites:
    pip install oracledb
"""

import argparse
import sys
from typing import List

import oracledb

from datapump_common import (
    DEFAULT_DIRECTORY,
    DataPumpError,
    add_connection_arguments,
    connect,
    log_msg,
    normalize_name,
    parse_name_list,
)

CHECK_DIR_SQL = """
SELECT directory_name, directory_path
FROM   all_directories
WHERE  directory_name = :directory_name
"""


def setup_directory(cursor, directory: str, path: str, grantees: List[str]) -> List[str]:
    """Create the directory and grant it; return the grantees that failed."""
    directory = normalize_name(directory, "directory")
    if "'" in path:
        raise DataPumpError(f"Invalid directory path: {path!r}")

    log_msg(f"Creating or replacing directory {directory} -> {path}...")
    cursor.execute(f"CREATE OR REPLACE DIRECTORY {directory} AS '{path}'")
    log_msg("Directory created/replaced successfully.")

    failed = []
    for grantee in grantees:
        try:
            user = normalize_name(grantee, "grantee")
            cursor.execute(f"GRANT READ, WRITE ON DIRECTORY {directory} TO {user}")
            log_msg(f"Granted READ, WRITE on {directory} to {user}")
        except (oracledb.DatabaseError, DataPumpError) as e:
            log_msg(f"Warning: grant to {grantee} failed: {e}")
            failed.append(grantee)

    log_msg("Verifying directory...")
    cursor.execute(CHECK_DIR_SQL, directory_name=directory)
    rows = cursor.fetchall()
    if rows:
        for name, dir_path in rows:
            log_msg(f"  Directory: {name}, Path: {dir_path}")
    else:
        log_msg(f"  No directory named {directory} found.")
    return failed


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Create a Data Pump directory object.")
    add_connection_arguments(parser)
    parser.add_argument("--directory", default=DEFAULT_DIRECTORY)
    parser.add_argument("--path", required=True, help="OS path on the database server")
    parser.add_argument(
        "--grant-to", default="", help="comma-separated users to grant READ, WRITE"
    )
    args = parser.parse_args(argv)

    try:
        with connect(args) as conn:
            with conn.cursor() as cur:
                failed = setup_directory(
                    cur, args.directory, args.path, parse_name_list(args.grant_to)
                )
                conn.commit()
    except Exception as e:
        print("An error occurred while setting up the directory:")
        print(e)
        sys.exit(1)

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
