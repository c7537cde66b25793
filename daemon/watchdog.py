from __future__ import annotations

import logging
import subprocess
import sys
import time

from common.log import setup_logging

logger = logging.getLogger("daemon.watchdog")

RESTART_DELAY = 3.0


def run_watchdog(daemon_args: list[str], restart_delay: float = RESTART_DELAY) -> int:
    """Rerun the daemon until it exits cleanly (e.g. after GET /exit)."""
    while True:
        proc = subprocess.Popen([sys.executable, "-m", "daemon.main", *daemon_args])
        try:
            code = proc.wait()
        except KeyboardInterrupt:
            proc.terminate()
            return proc.wait()
        if code == 0:
            return 0
        logger.warning("daemon exited code=%s, restarting in %ss", code, restart_delay)
        time.sleep(restart_delay)


def main() -> None:
    setup_logging("info")
    # Everything after the program name is forwarded to daemon.main as-is.
    sys.exit(run_watchdog(sys.argv[1:]))


if __name__ == "__main__":
    main()
