"""List schemas worth exporting (non Oracle-maintained) and the ones to skip.

Prerequisites:
    pip install oracledb
"""

import argparse
import sys

from datapump_common import SEPARATOR, add_connection_arguments, connect, log_msg


def list_schemas(cursor):
    """Return (exportable rows, Oracle-maintained usernames)."""
    log_msg("Exportable Schemas (non-Oracle maintained):")
    log_msg(SEPARATOR)
    cursor.execute(
        """
        SELECT username, created, account_status
        FROM   dba_users
        WHERE  oracle_maintained = 'N'
        ORDER  BY username
        """
    )
    exportable = cursor.fetchall()
    for username, created, status in exportable:
        log_msg(f"{username:<30} | {created:%Y-%m-%d} | {status}")

    log_msg()
    log_msg("Oracle-maintained schemas (usually should NOT be exported):")
    log_msg(SEPARATOR)
    cursor.execute(
        """
        SELECT username
        FROM   dba_users
        WHERE  oracle_maintained = 'Y'
        ORDER  BY username
        """
    )
    maintained = [username for (username,) in cursor.fetchall()]
    for username in maintained:
        log_msg(f"  {username}")

    return exportable, maintained


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    add_connection_arguments(parser)
    args = parser.parse_args(argv)

    try:
        with connect(args) as conn:
            with conn.cursor() as cur:
                list_schemas(cur)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
