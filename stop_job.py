"""Stop a running or lingering Data Pump job.

Run this if an export/import reports that its job already exists, or to
abort a job started by export_schema.py / import_schema.py.

- Attaches with DBMS_DATAPUMP.ATTACH(job_name, owner)
- Stops with DBMS_DATAPUMP.STOP_JOB (immediate=1, keep_master=0 by default,
  which also drops the master table)

Prerequisites:
    pip install oracledb
"""

import argparse
import sys
from typing import Optional

from datapump_common import (
    DataPumpJob,
    add_connection_arguments,
    connect,
    log_msg,
)


def stop_job(cursor, job_name: str, owner: Optional[str] = None,
             immediate: bool = True, keep_master: bool = False) -> None:
    log_msg(f"Attempting to stop job: {job_name}")
    try:
        job = DataPumpJob.attach(cursor, job_name, owner)
        job.stop(immediate=immediate, keep_master=keep_master)
    except Exception as e:
        log_msg(f"Error stopping job: {e}")
        raise
    log_msg("Job stopped successfully")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Stop a Data Pump job.")
    add_connection_arguments(parser)
    parser.add_argument("--job", required=True, help="job name, e.g. IMP_HR_20240115_150000")
    parser.add_argument("--owner", help="job owner (default: current user)")
    parser.add_argument(
        "--graceful",
        action="store_true",
        help="let workers finish their current item instead of stopping immediately",
    )
    parser.add_argument(
        "--keep-master",
        action="store_true",
        help="keep the master table so the job can be restarted",
    )
    args = parser.parse_args(argv)

    try:
        with connect(args) as conn:
            with conn.cursor() as cur:
                stop_job(
                    cur,
                    args.job,
                    args.owner,
                    immediate=not args.graceful,
                    keep_master=args.keep_master,
                )
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
