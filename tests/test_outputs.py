from __future__ import annotations

import io
import json
import threading
import time
from datetime import UTC, datetime
from pathlib import Path

import httpx

from collectbeat.config import OutputSettings
from collectbeat.outputs import ConsoleOutput, FileOutput, HttpOutput, build_output
from libbeat.event import Event

IDENTITY = {"beat_name": "edge-01", "hostname": "host-a", "version": "0.3.0"}


def _event(value: int) -> Event:
    return Event.create("metric", {"value": value}, timestamp=datetime(2024, 1, 1, tzinfo=UTC))


def test_console_output_writes_annotated_json_lines() -> None:
    stream = io.StringIO()
    output = ConsoleOutput(stream=stream, tags=["lab"], **IDENTITY)

    assert output.submit(_event(1))
    assert output.submit(_event(2))

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert [line["value"] for line in lines] == [1, 2]
    assert lines[0]["@timestamp"] == "2024-01-01T00:00:00.000Z"
    assert lines[0]["beat"] == {"name": "edge-01", "hostname": "host-a", "version": "0.3.0"}
    assert lines[0]["tags"] == ["lab"]


def test_annotation_does_not_touch_the_event() -> None:
    event = _event(1)
    ConsoleOutput(stream=io.StringIO(), **IDENTITY).submit(event)
    assert "beat" not in event
    assert list(event) == ["@timestamp", "type", "value"]


def test_closed_output_rejects_events() -> None:
    output = ConsoleOutput(stream=io.StringIO(), **IDENTITY)
    output.close()
    assert output.submit(_event(1)) is False


def test_file_output_rotates_and_keeps_files(tmp_path: Path) -> None:
    output = FileOutput(path=tmp_path, filename="beat.ndjson", rotate_every_bytes=1024, keep_files=3, **IDENTITY)
    for value in range(60):
        assert output.submit(_event(value))
    output.close()

    files = sorted(path.name for path in tmp_path.iterdir())
    assert files == ["beat.ndjson", "beat.ndjson.1", "beat.ndjson.2"]
    for path in tmp_path.iterdir():
        assert path.stat().st_size <= 1024
    last = (tmp_path / "beat.ndjson").read_text(encoding="utf-8").splitlines()[-1]
    assert json.loads(last)["value"] == 59


def test_file_output_single_file_truncates_on_rotation(tmp_path: Path) -> None:
    output = FileOutput(path=tmp_path, filename="beat.ndjson", rotate_every_bytes=1024, keep_files=1, **IDENTITY)
    for value in range(40):
        output.submit(_event(value))
    output.close()

    assert [path.name for path in tmp_path.iterdir()] == ["beat.ndjson"]


def test_http_output_posts_each_document() -> None:
    received: list[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "ApiKey k-123"
        received.append(json.loads(request.content))
        return httpx.Response(201, json={"result": "created"})

    client = httpx.Client(transport=httpx.MockTransport(_handler))
    output = HttpOutput(url="http://sink.local/events", api_key="k-123", client=client, **IDENTITY)

    for value in range(3):
        assert output.submit(_event(value))
    output.close()

    assert [doc["value"] for doc in received] == [0, 1, 2]
    assert received[0]["beat"]["name"] == "edge-01"
    assert output.sent == 3
    assert output.failed == 0
    assert output.submit(_event(9)) is False


def test_http_output_counts_failures_without_raising() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        if json.loads(request.content)["value"] == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(500)

    client = httpx.Client(transport=httpx.MockTransport(_handler))
    output = HttpOutput(url="http://sink.local/events", client=client, **IDENTITY)
    output.submit(_event(0))
    output.submit(_event(1))
    output.close()

    assert output.sent == 0
    assert output.failed == 2


def test_build_output_selects_implementation(tmp_path: Path) -> None:
    console = build_output(OutputSettings(), **IDENTITY)
    file_output = build_output(OutputSettings(type="file", path=str(tmp_path)), **IDENTITY)
    http_output = build_output(OutputSettings(type="http", url="http://127.0.0.1:1/x"), **IDENTITY)
    try:
        assert isinstance(console, ConsoleOutput)
        assert isinstance(file_output, FileOutput)
        assert isinstance(http_output, HttpOutput)
    finally:
        file_output.close()
        http_output.close()


def test_http_output_posts_every_accepted_document_when_closed_concurrently() -> None:
    received: list[int] = []
    lock = threading.Lock()

    def _handler(request: httpx.Request) -> httpx.Response:
        with lock:
            received.append(json.loads(request.content)["value"])
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(_handler))
    output = HttpOutput(url="http://sink.local/events", client=client, queue_size=100_000, **IDENTITY)
    accepted: list[int] = []
    started = threading.Barrier(5)

    def _submitter(offset: int) -> None:
        started.wait()
        for value in range(offset, offset + 2000):
            if not output.submit(_event(value)):
                return
            with lock:
                accepted.append(value)

    threads = [threading.Thread(target=_submitter, args=(index * 10_000,)) for index in range(4)]
    for thread in threads:
        thread.start()
    started.wait()
    time.sleep(0.01)
    output.close(timeout=30)
    for thread in threads:
        thread.join(timeout=5)

    assert sorted(received) == sorted(accepted)
    assert output.sent == len(accepted)
