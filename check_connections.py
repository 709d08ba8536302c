"""Test connections to the source and target databases before a migration.

- Prompts for each password using getpass.getpass() (or DP_PASSWORD)
- Connects to each DSN and runs SELECT 1 FROM DUAL
- Prints clear success/failure messages and exits with non-zero status if
  any test fails

Prerequisites:
    pip install oracledb

Example:
    python check_connections.py --user SYSTEM --dsn uat-db/UATPDB --dsn prod-db/PRODPDB
"""

import argparse
import os
import sys

import oracledb

from datapump_common import DataPumpError, add_connection_arguments, connect


def check_db_connection(label: str, args, dsn: str) -> bool:
    """Test a single database connection by running SELECT 1 FROM DUAL.

    Args:
        label: Human-readable label for the database (for logging).
        args: Parsed connection flags (user, wallet, container, ...).
        dsn: Connect string or TNS alias.

    Returns:
        True if connection and query succeed, False otherwise.
    """

    print(f"\nTesting connection to {label}...")

    try:
        with connect(args, dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM DUAL")
                row = cur.fetchone()
                print(f"{label}: query result = {row[0]}")

        print(f"{label}: SUCCESS")
        return True

    except (oracledb.Error, DataPumpError) as e:
        print(f"{label}: FAILED")
        print(f"Error: {e}")
        return False


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Test database connectivity.")
    add_connection_arguments(parser, repeatable_dsn=True)
    args = parser.parse_args(argv)

    dsns = args.dsn or [dsn for dsn in [os.environ.get("DP_DSN")] if dsn]
    if not dsns:
        parser.error("give at least one --dsn or set DP_DSN")

    print("This script will test connectivity to each database.")
    print("Passwords will not be echoed.")

    results = {}
    for dsn in dsns:
        results[dsn] = check_db_connection(dsn, args, dsn)

    print("\nSummary:")
    for dsn, ok in results.items():
        print(f"  {dsn}: {'OK' if ok else 'FAILED'}")

    if not all(results.values()):
        sys.exit(1)


if __name__ == "__main__":
    main()
