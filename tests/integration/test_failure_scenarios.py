"""
Failure scenarios: exhausted retries, rate limiting and malformed input
"""

import json

import httpx
import pytest

from core.config import JobConfig
from core.exceptions import CSVParseError
from ingestion.audit_log import FailureLogger
from ingestion.checkpoint import ResumeTracker
from jobs import incidents, pipelines
from jobs.common import EXIT_INPUT, exit_code_for

DX = "https://dx.example.com"


def incidents_config(path, tmp_path, **overrides):
    values = dict(
        job_kind="incidents",
        target_url=f"{DX}/api/incidents.sync",
        token="secret",
        requests_per_second=1000,
        input_path=path,
        failure_log_path=tmp_path / "failures.csv",
    )
    values.update(overrides)
    return JobConfig(**values)


class TestServerErrors:
    """Persistent 5xx responses"""

    @pytest.mark.asyncio
    async def test_retries_exhausted_then_next_record(self, tmp_path, incidents_csv, mock_http, sleep_recorder):
        def respond(request):
            if json.loads(request.content)["reference_id"] == "INC-1":
                return httpx.Response(500, text="upstream down")
            return httpx.Response(200, json={"ok": True})

        client, transport = mock_http(respond)

        summary = await incidents.run(incidents_config(incidents_csv, tmp_path), client=client, sleep=sleep_recorder)

        refs = [b["reference_id"] for b in transport.bodies()]
        assert refs == ["INC-1"] * 5 + ["INC-2"]
        assert summary.records_failed == 1
        assert summary.records_sent == 1
        assert summary.status == "partial_success"

        # Limiter waits at 1000 rps are tiny; the rest is backoff
        backoffs = [d for d in sleep_recorder.delays if d >= 0.5]
        assert len(backoffs) == 4
        assert backoffs == sorted(backoffs)
        assert all(d <= 30.25 for d in backoffs)

        rows = FailureLogger(tmp_path / "failures.csv").read()
        failed = [r for r in rows if r["reference_id"] == "INC-1"]
        assert len(failed) == 1
        assert failed[0]["error_message"].startswith("Retries exhausted after 5 attempts")
        assert json.loads(failed[0]["payload"])["reference_id"] == "INC-1"

    @pytest.mark.asyncio
    async def test_timeouts_retried(self, tmp_path, incidents_csv, mock_http, sleep_recorder):
        client, transport = mock_http(
            httpx.ReadTimeout("slow"),
            httpx.Response(200, json={"ok": True}),
        )

        summary = await incidents.run(incidents_config(incidents_csv, tmp_path), client=client, sleep=sleep_recorder)

        assert transport.calls == 3
        assert summary.records_sent == 2
        assert summary.records_failed == 0


class TestRateLimiting:
    """HTTP 429 handling at job level"""

    @pytest.mark.asyncio
    async def test_retry_after_honored(self, tmp_path, incidents_csv, mock_http, sleep_recorder):
        client, transport = mock_http(
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(200, json={"ok": True}),
        )

        summary = await incidents.run(incidents_config(incidents_csv, tmp_path), client=client, sleep=sleep_recorder)

        assert 3.0 in sleep_recorder.delays
        assert [b["reference_id"] for b in transport.bodies()] == ["INC-1", "INC-1", "INC-2"]
        assert summary.records_sent == 2
        assert summary.records_failed == 0

    @pytest.mark.asyncio
    async def test_missing_retry_after_waits_default(self, tmp_path, incidents_csv, mock_http, sleep_recorder):
        client, _ = mock_http(httpx.Response(429), httpx.Response(200, json={"ok": True}))

        await incidents.run(incidents_config(incidents_csv, tmp_path), client=client, sleep=sleep_recorder)

        assert 60.0 in sleep_recorder.delays


class TestMalformedInput:
    """A malformed chunk stops the run before anything from it is sent"""

    @pytest.mark.asyncio
    async def test_parse_error_keeps_marker(self, tmp_path, pipeline_chunks, write_csv, mock_http, sleep_recorder):
        write_csv(
            "chunks/chunk_3.csv",
            "pipeline_name,pipeline_source,reference_id,started_at,finished_at,status\n"
            "build,github,ref-3a,1,2,success,extra,fields\n",
        )
        client, transport = mock_http()
        state_file = tmp_path / "state.json"
        config = JobConfig(
            job_kind="pipelines",
            target_url=f"{DX}/api/pipelineRuns.sync",
            token="secret",
            input_path=pipeline_chunks,
            state_file=state_file,
        )

        with pytest.raises(CSVParseError) as excinfo:
            await pipelines.run(config, client=client, sleep=sleep_recorder)

        assert exit_code_for(excinfo.value) == EXIT_INPUT
        assert [b["reference_id"] for b in transport.bodies()] == ["ref-1a", "ref-2a", "ref-2b"]
        state = ResumeTracker(state_file, "pipelines").load()
        assert state.position == {"file": "chunk_2.csv", "row": 1}
        assert state.completed_units == 3
