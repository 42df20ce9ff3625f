"""
Thread-safe metrics logging with batched writes.

Usage:
    metrics = MetricsWriter(config.metrics_file)
    metrics.log("command", session_id=sid, command="queen_seen")
"""

import json
import time
import threading
from queue import Queue, Empty
from pathlib import Path
from typing import Any, Optional


class MetricsWriter:
    """
    Thread-safe metrics writer with atomic appends.
    Uses a queue to batch writes from the capture and input threads.
    """

    def __init__(self, metrics_file: Path):
        self.metrics_file = metrics_file
        self._queue: Queue[dict] = Queue()
        self._shutdown = threading.Event()
        self._writer_thread = threading.Thread(target=self._writer_loop, daemon=True)
        self._writer_thread.start()

    def log(self, event: str, **kwargs: Any) -> None:
        """
        Queue a metric for writing. Non-blocking.

        Args:
            event: Event name (e.g., "utterance", "command", "session_complete")
            **kwargs: Additional fields to log
        """
        entry = {
            "ts": time.time(),
            "event": event,
            **kwargs
        }
        self._queue.put(entry)

    def _writer_loop(self) -> None:
        """Background thread that batches and writes metrics."""
        while not self._shutdown.is_set():
            try:
                entries = [self._queue.get(timeout=1.0)]

                # Drain queue (batch writes)
                while True:
                    try:
                        entries.append(self._queue.get_nowait())
                    except Empty:
                        break

                self._write_entries(entries)

            except Empty:
                continue

    def _write_entries(self, entries: list[dict]) -> None:
        """Write entries to file."""
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)

            with open(self.metrics_file, "a") as f:
                for entry in entries:
                    f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            print(f"Failed to write metrics: {e}")

    def flush(self) -> None:
        """Flush any pending metrics to disk."""
        entries = []
        while True:
            try:
                entries.append(self._queue.get_nowait())
            except Empty:
                break

        if entries:
            self._write_entries(entries)

    def shutdown(self) -> None:
        """Shutdown the writer thread gracefully."""
        self._shutdown.set()
        self._writer_thread.join(timeout=2.0)
        self.flush()


# Typed helper functions for consistent event logging

def log_session_start(
    metrics: Optional[MetricsWriter],
    session_id: str,
    hive_id: str,
) -> None:
    """Log session_start event."""
    if metrics is None:
        return
    metrics.log("session_start", session_id=session_id, hive_id=hive_id)


def log_utterance(
    metrics: Optional[MetricsWriter],
    session_id: str,
    text: str,
    flags: dict,
) -> None:
    """Log utterance event with the flags it set."""
    if metrics is None:
        return
    metrics.log(
        "utterance",
        session_id=session_id,
        text=text[:200],  # Truncate for metrics
        flags=flags,
    )


def log_command(
    metrics: Optional[MetricsWriter],
    session_id: str,
    command: str,
) -> None:
    """Log command event."""
    if metrics is None:
        return
    metrics.log("command", session_id=session_id, command=command)


def log_session_complete(
    metrics: Optional[MetricsWriter],
    session_id: str,
    outcome: str,  # "saved" | "discarded"
    duration_ms: float,
    commands: list,
) -> None:
    """Log session_complete event."""
    if metrics is None:
        return
    metrics.log(
        "session_complete",
        session_id=session_id,
        outcome=outcome,
        duration_ms=duration_ms,
        commands=commands,
    )
