"""Copy Data Pump dump files to the target database host and verify them.

- Picks up dump files from a local directory (the source directory
  object's OS path); %U in a pattern matches every piece of a parallel dump
- Copies with rsync (default) or scp to host:/path
- Verifies each file with sha256: local hashlib vs. `ssh host sha256sum`

Prerequisites:
    - ssh key access to the target host as a user that can write the
      target directory object's OS path
    - rsync/scp/ssh on PATH

Example:
    python transfer_dump.py --source-dir /u01/app/oracle/dpdump \\
        --pattern 'HR_20240115_143022_%U.dmp' --pattern 'HR_20240115_143022_export.log' \\
        --dest oracle@prod-db:/u01/app/oracle/dpdump
"""

import argparse
import glob
import hashlib
import os
import shlex
import subprocess
import sys
from typing import Dict, List

from datapump_common import DataPumpError, log_msg

CHUNK_SIZE = 1024 * 1024
TRANSFER_METHODS = ("rsync", "scp")


class TransferError(DataPumpError):
    """A copied file is missing on the target or its checksum differs."""


def expand_dump_pattern(directory: str, pattern: str) -> List[str]:
    """Return local files matching a dump pattern, sorted; %U matches any piece."""
    local_pattern = pattern.replace("%U", "*").replace("%u", "*")
    return sorted(
        path
        for path in glob.glob(os.path.join(directory, local_pattern))
        if os.path.isfile(path)
    )


def sha256sum(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def split_destination(destination: str):
    """'oracle@host:/path' -> ('oracle@host', '/path')."""
    host, sep, remote_dir = destination.partition(":")
    if not sep or not host or not remote_dir:
        raise DataPumpError(f"Destination must look like host:/path, got {destination!r}")
    return host, remote_dir


def build_copy_command(method: str, files: List[str], destination: str) -> List[str]:
    target = destination if destination.endswith("/") else destination + "/"
    if method == "rsync":
        return ["rsync", "-av", "--progress", *files, target]
    if method == "scp":
        return ["scp", "-p", *files, target]
    raise DataPumpError(
        f"Unknown transfer method {method!r}, expected one of {', '.join(TRANSFER_METHODS)}"
    )


def remote_checksums(host: str, remote_dir: str, names: List[str]) -> Dict[str, str]:
    """Run sha256sum on the remote host and map file name -> digest.

    Files sha256sum cannot read are simply missing from the result.
    """
    # ssh runs the command through the remote shell
    paths = [shlex.quote(f"{remote_dir.rstrip('/')}/{name}") for name in names]
    proc = subprocess.run(
        ["ssh", host, "sha256sum", *paths],
        capture_output=True,
        text=True,
        check=False,
    )
    checksums = {}
    for line in proc.stdout.splitlines():
        parts = line.split(None, 1)
        if len(parts) == 2:
            digest, path = parts
            checksums[os.path.basename(path.strip().lstrip("*"))] = digest
    return checksums


def transfer_files(files: List[str], destination: str, method: str = "rsync",
                   verify: bool = True) -> Dict[str, str]:
    """Copy files to destination and return {name: sha256} of what was verified."""
    if not files:
        raise DataPumpError("No files to transfer")
    host, remote_dir = split_destination(destination)

    command = build_copy_command(method, files, destination)
    log_msg(f"Copying {len(files)} file(s) to {destination} with {method}...")
    subprocess.run(command, check=True)
    log_msg("Copy finished")

    if not verify:
        log_msg("Checksum verification skipped")
        return {}

    log_msg("Verifying sha256 checksums...")
    local = {os.path.basename(path): sha256sum(path) for path in files}
    remote = remote_checksums(host, remote_dir, list(local))

    mismatched = []
    for name, digest in local.items():
        if remote.get(name) == digest:
            log_msg(f"  OK        {name}")
        else:
            log_msg(f"  MISMATCH  {name} (local {digest}, remote {remote.get(name, 'missing')})")
            mismatched.append(name)

    if mismatched:
        raise TransferError(f"Checksum verification failed for: {', '.join(mismatched)}")
    log_msg("All checksums match")
    return local


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Copy dump files to another host.")
    parser.add_argument("--source-dir", required=True, help="local OS path of the dump files")
    parser.add_argument(
        "--pattern",
        action="append",
        required=True,
        help="dump/log file name, %%U allowed; repeatable",
    )
    parser.add_argument("--dest", required=True, help="user@host:/remote/path")
    parser.add_argument("--method", choices=TRANSFER_METHODS, default="rsync")
    parser.add_argument("--no-verify", dest="verify", action="store_false")
    args = parser.parse_args(argv)

    files = []
    for pattern in args.pattern:
        matched = expand_dump_pattern(args.source_dir, pattern)
        if not matched:
            log_msg(f"WARNING: nothing matches {pattern} in {args.source_dir}")
        files.extend(matched)

    try:
        transfer_files(files, args.dest, args.method, args.verify)
    except (DataPumpError, subprocess.CalledProcessError, OSError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
