from __future__ import annotations

import logging
import queue
import sys
import threading
import time
from pathlib import Path
from typing import Any, TextIO

import httpx

from collectbeat.config import OutputSettings
from libbeat.event import Event
from libbeat.serialization import document_json

logger = logging.getLogger("beat.output")

_CLOSE = object()


class BaseOutput:
    def __init__(self, *, beat_name: str, hostname: str, version: str, tags: list[str] | None = None) -> None:
        self.beat_name = beat_name
        self.hostname = hostname
        self.version = version
        self.tags = list(tags or [])
        self.closed = False

    def document(self, event: Event) -> dict[str, Any]:
        document = event.to_dict()
        document["beat"] = {"name": self.beat_name, "hostname": self.hostname, "version": self.version}
        if self.tags:
            document["tags"] = list(self.tags)
        return document

    def submit(self, event: Event) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        self.closed = True


class ConsoleOutput(BaseOutput):
    def __init__(self, *, stream: TextIO | None = None, pretty: bool = False, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.stream = stream or sys.stdout
        self.pretty = pretty
        self._lock = threading.Lock()

    def submit(self, event: Event) -> bool:
        if self.closed:
            return False
        line = document_json(self.document(event), pretty=self.pretty)
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()
        return True


class FileOutput(BaseOutput):
    """JSON lines with size-based rotation: name, name.1 ... name.<keep_files-1>."""

    def __init__(
        self,
        *,
        path: Path,
        filename: str,
        rotate_every_bytes: int,
        keep_files: int,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.directory = path.expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.rotate_every_bytes = rotate_every_bytes
        self.keep_files = keep_files
        self._lock = threading.Lock()
        self._handle: TextIO | None = None
        self._size = 0

    @property
    def current_path(self) -> Path:
        return self.directory / self.filename

    def _open(self) -> TextIO:
        if self._handle is None:
            self._handle = self.current_path.open("a", encoding="utf-8")
            self._size = self.current_path.stat().st_size
        return self._handle

    def _rotate(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        oldest = self.directory / f"{self.filename}.{self.keep_files - 1}"
        if self.keep_files == 1 or oldest.exists():
            target = self.current_path if self.keep_files == 1 else oldest
            target.unlink(missing_ok=True)
        for index in range(self.keep_files - 2, 0, -1):
            source = self.directory / f"{self.filename}.{index}"
            if source.exists():
                source.rename(self.directory / f"{self.filename}.{index + 1}")
        if self.keep_files > 1 and self.current_path.exists():
            self.current_path.rename(self.directory / f"{self.filename}.1")
        self._size = 0

    def submit(self, event: Event) -> bool:
        if self.closed:
            return False
        line = document_json(self.document(event)) + "\n"
        encoded_size = len(line.encode("utf-8"))
        with self._lock:
            handle = self._open()
            if self._size and self._size + encoded_size > self.rotate_every_bytes:
                self._rotate()
                handle = self._open()
            handle.write(line)
            handle.flush()
            self._size += encoded_size
        return True

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None
        super().close()


class HttpOutput(BaseOutput):
    """Posts each document to ``url`` from a background worker.

    ``submit`` only enqueues; a full queue rejects the event. Failed posts are
    logged and not retried.
    """

    def __init__(
        self,
        *,
        url: str,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        tls_verify: bool = True,
        queue_size: int = 1000,
        client: httpx.Client | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.url = url
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"ApiKey {api_key}"
        if not tls_verify:
            logger.warning("tls_verify is disabled; this must not be used in production")
        self._client = client or httpx.Client(timeout=timeout_seconds, verify=tls_verify)
        self._headers = headers
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=queue_size)
        self._submit_lock = threading.Lock()
        self.sent = 0
        self.failed = 0
        self._worker = threading.Thread(target=self._drain, name="http-output", daemon=True)
        self._worker.start()

    def submit(self, event: Event) -> bool:
        document = self.document(event)
        with self._submit_lock:
            if self.closed:
                return False
            try:
                self._queue.put_nowait(document)
            except queue.Full:
                logger.warning("http output queue full; dropping event type=%s", event.type)
                return False
        return True

    def _post(self, document: dict[str, Any]) -> None:
        body = document_json(document).encode("utf-8")
        try:
            response = self._client.post(self.url, content=body, headers=self._headers)
        except httpx.HTTPError as exc:
            self.failed += 1
            logger.warning("http output post failed url=%s reason=%s", self.url, exc.__class__.__name__)
            return
        if response.status_code >= 300:
            self.failed += 1
            logger.warning("http output rejected document status=%s", response.status_code)
            return
        self.sent += 1

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _CLOSE:
                    return
                self._post(item)
            finally:
                self._queue.task_done()

    def close(self, timeout: float = 5.0) -> None:
        # Once closed is set under the lock no document can land behind the marker.
        with self._submit_lock:
            if self.closed:
                return
            super().close()
        deadline = time.monotonic() + timeout
        while True:
            try:
                self._queue.put(_CLOSE, timeout=0.1)
                break
            except queue.Full:
                if time.monotonic() >= deadline:
                    logger.warning("http output close timed out with %d queued documents", self._queue.qsize())
                    break
        self._worker.join(timeout=max(0.0, deadline - time.monotonic()))
        self._client.close()


def build_output(
    settings: OutputSettings,
    *,
    beat_name: str,
    hostname: str,
    version: str,
    tags: list[str] | None = None,
) -> BaseOutput:
    common: dict[str, Any] = {"beat_name": beat_name, "hostname": hostname, "version": version, "tags": tags}
    if settings.type == "console":
        return ConsoleOutput(pretty=settings.pretty, **common)
    if settings.type == "file":
        return FileOutput(
            path=Path(settings.path),
            filename=settings.filename,
            rotate_every_bytes=settings.rotate_every_bytes,
            keep_files=settings.keep_files,
            **common,
        )
    return HttpOutput(
        url=settings.url,
        api_key=settings.api_key,
        timeout_seconds=settings.timeout_seconds,
        tls_verify=settings.tls_verify,
        queue_size=settings.queue_size,
        **common,
    )
