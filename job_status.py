"""Show Data Pump jobs from DBA_DATAPUMP_JOBS, or watch one until it finishes.

- Without --job: lists every Data Pump job in the database
- With --job:    lists only that job
- With --watch:  polls DBA_DATAPUMP_JOBS every few seconds and prints state
  transitions until the job reaches a terminal state or disappears

Useful for jobs started from another session (expdp/impdp, or a script
that lost its connection).

Prerequisites:
    pip install oracledb
"""

import argparse
import sys
import time
from typing import Optional

from datapump_common import (
    POLL_INTERVAL,
    SEPARATOR,
    add_connection_arguments,
    connect,
    log_msg,
)

# DBA_DATAPUMP_JOBS.STATE values after which polling stops
MONITOR_TERMINAL_STATES = ("COMPLETED", "STOPPED", "FAILED", "NOT RUNNING")


def get_job_status(cursor, job_name: Optional[str] = None) -> list:
    """Print and return (owner, job, operation, mode, state, degree, sessions) rows."""
    cursor.execute(
        """
        SELECT owner_name, job_name, operation, job_mode, state,
               degree, attached_sessions
        FROM   dba_datapump_jobs
        WHERE  (:job_name IS NULL OR job_name = :job_name)
        ORDER  BY job_name
        """,
        job_name=job_name.upper() if job_name else None,
    )
    rows = cursor.fetchall()

    log_msg("Current Data Pump Jobs:")
    log_msg(SEPARATOR)
    if not rows:
        log_msg("No Data Pump jobs found.")
    for owner, name, operation, mode, state, degree, sessions in rows:
        log_msg(f"Job: {name}")
        log_msg(f"  Owner: {owner}")
        log_msg(f"  Operation: {operation}")
        log_msg(f"  Mode: {mode}")
        log_msg(f"  State: {state}")
        log_msg(f"  Parallel: {degree}")
        log_msg(f"  Sessions: {sessions}")
        log_msg()
    return rows


def monitor_job(cursor, job_name: str, owner: Optional[str] = None,
                poll_interval: int = POLL_INTERVAL, sleep=time.sleep) -> Optional[str]:
    """Poll DBA_DATAPUMP_JOBS until the job is no longer active.

    Prints state transitions for basic progress monitoring and returns the
    last state seen (None if the job was never listed).
    """

    last_state = None
    print("\nMonitoring Data Pump job status...")
    while True:
        cursor.execute(
            """
            SELECT state, degree
            FROM   dba_datapump_jobs
            WHERE  job_name = :job_name
            AND    owner_name = NVL(:owner_name, USER)
            """,
            job_name=job_name.upper(),
            owner_name=owner.upper() if owner else None,
        )
        row = cursor.fetchone()
        if not row:
            # No row found: job completed or no longer visible
            if last_state is not None:
                print(
                    f"Job {job_name} is no longer listed in DBA_DATAPUMP_JOBS (likely COMPLETED)."
                )
            else:
                print(f"Job {job_name} not found in DBA_DATAPUMP_JOBS.")
            break

        state, degree = row
        if state != last_state:
            print(f"  State: {state}, Degree: {degree}")
            last_state = state

        if state in MONITOR_TERMINAL_STATES:
            print(f"Job {job_name} reached terminal state: {state}")
            break

        sleep(poll_interval)

    return last_state


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Show or watch Data Pump jobs.")
    add_connection_arguments(parser)
    parser.add_argument("--job", help="job name, e.g. EXP_HR_20240115_143022")
    parser.add_argument("--owner", help="job owner for --watch (default: current user)")
    parser.add_argument(
        "--watch", action="store_true", help="poll the job until it finishes"
    )
    parser.add_argument("--interval", type=int, default=POLL_INTERVAL)
    args = parser.parse_args(argv)

    if args.watch and not args.job:
        parser.error("--watch requires --job")

    try:
        with connect(args) as conn:
            with conn.cursor() as cur:
                if args.watch:
                    monitor_job(cur, args.job, args.owner, args.interval)
                else:
                    get_job_status(cur, args.job)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
