"""Watches the test file and turns edits into a lazy stream of notifications."""

import queue
import sys
from collections.abc import Iterator
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer


class _TestFileHandler(FileSystemEventHandler):
    """Queues a notification per change to one file, unless a sequence is running."""

    def __init__(self, filename: str, session, pending: "queue.Queue[Path]") -> None:
        self.filename = filename
        self.session = session
        self.pending = pending

    def _matches(self, event: FileSystemEvent) -> Path | None:
        for p in (event.src_path, getattr(event, "dest_path", "")):
            if p and Path(p).name == self.filename:
                return Path(p)
        return None

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in {"created", "modified", "moved"}:
            return
        path = self._matches(event)
        if path is None:
            return
        if self.session.in_flight:
            # The running sequence re-reads the test file on its next iteration.
            print(f"  ignoring change to {self.filename} while a sequence is running", file=sys.stderr)
            return
        self.pending.put(path)


class Watcher:
    """Iterable of changes to `filename` inside `root`.

    Each iteration starts its own observer, so a Watcher can be iterated again
    after the previous iterator is closed. The session is marked in flight
    before a notification is handed out, so changes made between the yield and
    the start of the consumer's sequence are dropped too; the sequence clears
    the flag when it finishes.
    """

    def __init__(self, root: Path, filename: str, session) -> None:
        self.root = root
        self.filename = filename
        self.session = session

    def __iter__(self) -> Iterator[Path]:
        pending: "queue.Queue[Path]" = queue.Queue()
        observer = Observer()
        observer.schedule(_TestFileHandler(self.filename, self.session, pending), str(self.root), recursive=False)
        observer.start()
        try:
            while True:
                path = pending.get()
                self.session.in_flight = True
                # Editors often emit several events for one save.
                while True:
                    try:
                        pending.get_nowait()
                    except queue.Empty:
                        break
                yield path
        finally:
            observer.stop()
            observer.join()
