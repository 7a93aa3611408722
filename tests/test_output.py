"""Tests for SplunkOutput flush orchestration."""

import gzip
import logging
import threading

import msgpack
import pytest
import requests

from hec_shipper.collector import parse_event_stream
from hec_shipper.config import Config
from hec_shipper.metrics import FlushMetrics
from hec_shipper.output import FlushResult, SplunkOutput
from hec_shipper.upstream import Upstream


@pytest.fixture()
def make_output(session_recorder):
    def _make(**overrides):
        overrides.setdefault("splunk_token", "test-token")
        cfg = Config(**overrides)
        return SplunkOutput(cfg, upstream=Upstream(cfg, session_factory=session_recorder.factory))

    return _make


# ── Flush results ──────────────────────────────────────────────────


class TestFlushResults:
    def test_ok(self, make_output, make_chunk, session_recorder):
        output = make_output()
        assert output.flush(make_chunk({"msg": "hi"})) is FlushResult.OK
        (call,) = session_recorder.calls
        assert call["url"] == "http://127.0.0.1:8088/services/collector/event"
        assert call["data"] == b'{"time":1000.5,"event":{"msg":"hi"}}'
        assert call["headers"]["Authorization"] == "Splunk test-token"

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_client_error(self, make_output, make_chunk, session_recorder, status):
        session_recorder.status = status
        assert make_output().flush(make_chunk({"msg": "hi"})) is FlushResult.ERROR

    @pytest.mark.parametrize("status", [500, 503, 302, 201])
    def test_retryable_status(self, make_output, make_chunk, session_recorder, status):
        session_recorder.status = status
        assert make_output().flush(make_chunk({"msg": "hi"})) is FlushResult.RETRY

    def test_transport_error(self, make_output, make_chunk, session_recorder):
        session_recorder.error = requests.ConnectionError("refused")
        assert make_output().flush(make_chunk({"msg": "hi"})) is FlushResult.RETRY

    def test_no_connection_available(self, make_chunk, session_recorder):
        cfg = Config(max_connections=1)
        upstream = Upstream(cfg, session_factory=session_recorder.factory)
        output = SplunkOutput(cfg, upstream=upstream)
        held = upstream.acquire()
        try:
            assert output.flush(make_chunk({"msg": "hi"})) is FlushResult.RETRY
        finally:
            upstream.release(held)
        assert session_recorder.calls == []

    def test_closed_upstream_retries(self, make_output, make_chunk, session_recorder):
        output = make_output()
        output.close()
        assert output.flush(make_chunk({"msg": "hi"})) is FlushResult.RETRY
        assert session_recorder.calls == []


class TestFlushFormatting:
    def test_format_error_is_permanent(self, make_output, make_chunk, session_recorder, caplog):
        output = make_output(max_connections=1)
        data = make_chunk({"ok": 1}) + msgpack.packb([1000, {b"bin": 1}], use_bin_type=True)
        assert output.flush(data) is FlushResult.ERROR
        assert session_recorder.calls == []
        assert "Cannot format chunk" in caplog.text
        # connection went back to the pool
        assert output.flush(make_chunk({"ok": 1})) is FlushResult.OK

    def test_all_records_skipped_sends_nothing(self, make_output, make_chunk, session_recorder):
        output = make_output(event_key="msg")
        assert output.flush(make_chunk({"other": 1}, {"other": 2})) is FlushResult.OK
        assert session_recorder.calls == []
        assert output.metrics.snapshot()["records_skipped"] == 2

    def test_empty_chunk(self, make_output, session_recorder):
        assert make_output().flush(b"") is FlushResult.OK
        assert session_recorder.calls == []

    def test_raw_gzip(self, make_output, make_chunk, session_recorder):
        output = make_output(splunk_send_raw=True, compress="gzip")
        assert output.flush(make_chunk({"msg": "a"}, {"msg": "b"})) is FlushResult.OK
        (call,) = session_recorder.calls
        assert call["url"].endswith("/services/collector/raw")
        assert call["headers"]["Content-Encoding"] == "gzip"
        assert gzip.decompress(call["data"]) == b'{"msg":"a"}\n{"msg":"b"}\n'

    def test_format_test_does_not_send(self, make_output, make_chunk, session_recorder):
        output = make_output(event_key="msg", splunk_send_raw=True)
        assert output.format_test(make_chunk({"msg": "hi"})) == b'"hi"\n'
        assert session_recorder.calls == []


# ── Concurrency ────────────────────────────────────────────────────


class TestConcurrentFlushes:
    def test_parallel_flushes_do_not_interleave(self, make_output, make_chunk, session_recorder):
        workers = 4
        output = make_output(max_connections=workers)
        chunks = [make_chunk(*({"worker": w, "seq": i} for i in range(50))) for w in range(workers)]
        results = [None] * workers
        barrier = threading.Barrier(workers)

        def run(w):
            barrier.wait()
            results[w] = output.flush(chunks[w])

        threads = [threading.Thread(target=run, args=(w,)) for w in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert results == [FlushResult.OK] * workers
        assert len(session_recorder.calls) == workers
        for call in session_recorder.calls:
            events = parse_event_stream(call["data"].decode("utf-8"))
            assert len({e["event"]["worker"] for e in events}) == 1
            assert [e["event"]["seq"] for e in events] == list(range(50))


# ── Metrics ────────────────────────────────────────────────────────


class TestFlushMetrics:
    def test_counts(self, make_chunk, session_recorder):
        cfg = Config(splunk_token="t")
        metrics = FlushMetrics()
        output = SplunkOutput(
            cfg, upstream=Upstream(cfg, session_factory=session_recorder.factory), metrics=metrics
        )
        output.flush(make_chunk({"msg": "a"}, {"msg": "b"}))
        session_recorder.status = 503
        output.flush(make_chunk({"msg": "c"}))

        snap = output.metrics.snapshot()
        assert snap["flushes"] == 2
        assert snap["records_sent"] == 2
        assert snap["outcomes"] == {"ok": 1, "retry": 1}
        assert snap["bytes_sent"] > 0

    def test_close_logs_snapshot(self, make_output, caplog):
        output = make_output()
        with caplog.at_level(logging.INFO, logger="hec_shipper.output"):
            output.close()
        assert "Output metrics" in caplog.text
