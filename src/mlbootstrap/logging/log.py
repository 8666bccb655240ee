# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/mlbootstrap/logging/log.py

from __future__ import annotations

import logging
from pathlib import Path
from datetime import datetime, timezone
import uuid

DEFAULT_LOG_DIR = Path("/tmp/mlbootstrap/logs")


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "mlbootstrap",
    hook: str = "poststart",
    verbose: bool = False,
    to_file: bool = True,
) -> tuple[logging.Logger, str, Path | None]:
    """
    Initializes:
      - timestamped, hook-tagged log file (full DEBUG trace), unless to_file=False
      - console output the platform collects from the hook
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console = INFO by default, DEBUG when --debug is passed
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(formatter)

    logger.addHandler(ch)

    log_path = None
    if to_file:
        # File = FULL TRACE
        base_dir = base_dir or DEFAULT_LOG_DIR
        base_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        log_path = base_dir / f"{hook}-{ts}-{run_id}.log"
        fh = logging.FileHandler(log_path)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    logger.info(f"=== mlbootstrap {hook} started ===")
    logger.info(f"run_id={run_id}")
    logger.info(f"log_file={log_path}")

    return logger, run_id, log_path
