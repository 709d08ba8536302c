"""Check a Data Pump directory object and list the dump files in it.

Run this first when an export fails with ORA-39002 / ORA-39070 / ORA-29283:

- Verifies the directory object exists and prints its OS path
- Shows READ / WRITE privileges for the current user (or PUBLIC)
- Prints the OS-side checklist (the path must exist and be owned by oracle)
- With --list, lists *.dmp files when the path is reachable from this host

Prerequisites:
    pip install oracledb
"""

import argparse
import os
import sys
from dataclasses import dataclass
from typing import List, Optional, Tuple

import oracledb

from datapump_common import (
    DEFAULT_DIRECTORY,
    SEPARATOR,
    add_connection_arguments,
    connect,
    directory_path,
    log_msg,
    normalize_name,
)

PRIVILEGES_SQL = """
SELECT MAX(CASE WHEN privilege = 'READ'  THEN 'YES' ELSE 'NO' END),
       MAX(CASE WHEN privilege = 'WRITE' THEN 'YES' ELSE 'NO' END)
FROM   dba_tab_privs
WHERE  table_name = :directory_name
AND    grantee IN (USER, 'PUBLIC')
"""


@dataclass
class DirectoryCheck:
    name: str
    path: Optional[str]
    read: bool = False
    write: bool = False


def check_directory(cursor, directory: str = DEFAULT_DIRECTORY) -> DirectoryCheck:
    directory = normalize_name(directory, "directory")
    log_msg(f"Checking directory: {directory}")
    log_msg(SEPARATOR)

    path = directory_path(cursor, directory)
    if path is None:
        log_msg(f"ERROR: Directory {directory} does not exist!")
        log_msg(f"Create it with: CREATE DIRECTORY {directory} AS '/path/to/dir';")
        return DirectoryCheck(directory, None)

    log_msg("Directory exists: YES")
    log_msg(f"Directory path: {path}")
    result = DirectoryCheck(directory, path)

    try:
        cursor.execute(PRIVILEGES_SQL, directory_name=directory)
        read_priv, write_priv = cursor.fetchone() or (None, None)
        result.read = (read_priv or "NO") == "YES"
        result.write = (write_priv or "NO") == "YES"
        log_msg(f"READ privilege: {'YES' if result.read else 'NO'}")
        log_msg(f"WRITE privilege: {'YES' if result.write else 'NO'}")
        if not result.write:
            log_msg("WARNING: No WRITE privilege. Grant with:")
            log_msg(f"  GRANT READ, WRITE ON DIRECTORY {directory} TO <user>;")
    except oracledb.DatabaseError as e:
        log_msg(f"Could not check privileges: {e}")

    log_msg()
    log_msg("IMPORTANT: Verify the OS directory exists:")
    log_msg(f"  ls -la {path}")
    log_msg()
    log_msg("If directory does not exist on OS, create it:")
    log_msg(f"  mkdir -p {path}")
    log_msg(f"  chown oracle:oinstall {path}")
    log_msg(f"  chmod 750 {path}")
    return result


def list_dump_files(cursor, directory: str = DEFAULT_DIRECTORY) -> List[Tuple[str, int]]:
    """Return (file name, size) for *.dmp files in the directory's OS path.

    Only works when that path is mounted on the host running this script;
    otherwise prints the ls command to run on the database server.
    """
    directory = normalize_name(directory, "directory")
    path = directory_path(cursor, directory)
    if path is None:
        log_msg(f"Directory {directory} not found")
        return []

    log_msg(f"Directory: {directory}")
    log_msg(f"Path: {path}")
    log_msg(SEPARATOR)

    if not os.path.isdir(path):
        log_msg("Path is not reachable from this host. List dump files on the DB server:")
        log_msg(f"  ls -la {path}/*.dmp")
        return []

    files = []
    for name in sorted(os.listdir(path)):
        full = os.path.join(path, name)
        if name.lower().endswith(".dmp") and os.path.isfile(full):
            size = os.path.getsize(full)
            files.append((name, size))
            log_msg(f"  {name:<50} {size:>15,} bytes")
    if not files:
        log_msg("No dump files found.")
    return files


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Check a Data Pump directory object.")
    add_connection_arguments(parser)
    parser.add_argument("--directory", default=DEFAULT_DIRECTORY)
    parser.add_argument("--list", action="store_true", help="list *.dmp files")
    args = parser.parse_args(argv)

    try:
        with connect(args) as conn:
            with conn.cursor() as cur:
                result = check_directory(cur, args.directory)
                if args.list and result.path:
                    log_msg()
                    list_dump_files(cur, args.directory)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result.path is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
