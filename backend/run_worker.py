"""Run expired refresh-token cleanup as a standalone process.

Use this when API workers start with RUN_TOKEN_CLEANUP=false so that only
one process deletes expired rows.
"""

import logging
import time

from prodauth.core.metrics import WORKER_UP_GAUGE
from prodauth.services.background import build_token_cleanup


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    worker = build_token_cleanup()
    worker.run_once()
    worker.start()
    WORKER_UP_GAUGE.labels(worker.name).set(1)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        worker.stop()
        WORKER_UP_GAUGE.labels(worker.name).set(0)


if __name__ == "__main__":
    main()
