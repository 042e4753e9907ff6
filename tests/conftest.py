"""
Pytest configuration and fixtures
"""

import json
from pathlib import Path
from typing import Callable, Dict, List

import httpx
import pytest

from ingestion.base import Sink
from models.base import SendStatus
from schemas.results import SendResult


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays and returns immediately"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


class FakeClock:
    """Monotonic clock advanced only by the recorded sleeps"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.delays: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)
        self.now += delay


class RecordingTransport:
    """
    httpx MockTransport handler replaying scripted responses.

    ``responses`` items are ``httpx.Response`` objects, exceptions to raise,
    or callables taking the request. The last item repeats once the script
    runs out.
    """

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        item = self.responses[index]
        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        # Fresh copy so a repeated response is never shared between requests
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def bodies(self) -> List[Dict]:
        return [json.loads(r.content) for r in self.requests if r.content]


class RecordingSink(Sink):
    """In-memory sink; payloads listed in ``fail_with`` raise the mapped error"""

    def __init__(self, fail_with=None):
        self.payloads: List = []
        self.fail_with = fail_with or {}
        self.closed = False

    @property
    def target(self) -> str:
        return "memory://sink"

    def preview(self, payload) -> str:
        return f"SEND {payload!r}"

    async def deliver(self, payload) -> SendResult:
        key = getattr(payload, "reference_id", None)
        if key in self.fail_with:
            raise self.fail_with[key]
        self.payloads.append(payload)
        return SendResult(status=SendStatus.SUCCESS, status_code=200)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def recording_sink():
    """The RecordingSink class; call it to build a sink"""
    return RecordingSink


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_http() -> Callable[..., tuple]:
    """Factory: ``client, transport = mock_http(response, ...)``"""

    def factory(*responses):
        transport = RecordingTransport(responses or [httpx.Response(200, json={"ok": True})])
        client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
        return client, transport

    return factory


@pytest.fixture
def write_csv(tmp_path) -> Callable[[str, str], Path]:
    """Write ``text`` to ``tmp_path / name`` and return the path"""

    def factory(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return factory


@pytest.fixture
def pipeline_chunks(write_csv) -> Path:
    """Chunk directory with rows in chunk_1, chunk_2 and chunk_10"""
    header = "pipeline_name,pipeline_source,reference_id,started_at,finished_at,status\n"
    write_csv("chunks/chunk_10.csv", header + "build,github,ref-10a,1700000000,1700000100,success\n")
    write_csv("chunks/chunk_2.csv", header + "build,github,ref-2a,1700000000,1700000100,success\n"
              "build,github,ref-2b,1700000000,,failure\n")
    write_csv("chunks/chunk_1.csv", header + "build,github,ref-1a,1700000000,1700000100,success\n")
    return write_csv("chunks/notes.txt", "ignored").parent


@pytest.fixture
def incidents_csv(write_csv) -> Path:
    return write_csv(
        "incidents.csv",
        "Reference_ID,Priority,Name,Started_At,Resolved_At,Services\n"
        "INC-1,P1,Outage,2024-01-15,2024-01-15 10:30,\"[\"\"api\"\",\"\"web\"\",\"\"api\"\"]\"\n"
        "INC-2,P2,Slow,2024-01-16T08:00:00Z,,api|web|api\n"
        ",P3,No reference,2024-01-17,,\n",
    )
