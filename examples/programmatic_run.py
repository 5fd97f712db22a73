"""Drive a load test from Python instead of the CLI.

Point it at a CoSign daemon and a client certificate it accepts:

    python examples/programmatic_run.py weblogin.example.edu client.crt client.key
"""

from __future__ import annotations

import sys
from pathlib import Path

from rich.console import Console

from cosignload import LoadTestRunner, RunConfig
from cosignload.cli.report import print_report


def main() -> int:
    host, cert, key = sys.argv[1:4]
    config = RunConfig(
        threads=10,
        iterations=50,
        cert_file=Path(cert),
        key_file=Path(key),
        host=host,
        command="NOOP",
        timeout=10.0,
    )
    report = LoadTestRunner(config).run()
    print_report(report, Console())
    return 0 if report.failure_count == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
