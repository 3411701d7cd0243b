"""
Logging setup.

Partition workers log from their own threads, so records go through a queue
and a single listener thread writes them out; lines never interleave.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from queue import Queue
from typing import Optional


_listener: Optional[logging.handlers.QueueListener] = None

NOISY_LOGGERS = ["uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "asyncio"]


def setup_logging(debug: bool = False) -> None:
    global _listener
    stop_logging()

    log_queue: Queue = Queue()
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s")
    )
    _listener = logging.handlers.QueueListener(log_queue, console, respect_handler_level=True)
    _listener.start()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(logging.handlers.QueueHandler(log_queue))
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    if not debug:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def stop_logging() -> None:
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None
