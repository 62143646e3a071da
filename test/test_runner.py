import json

import pytest
from conftest import RecordingNotifier
from enrichment_monitor.errors import (
    EnrichmentCancelledError,
    EnrichmentFailedError,
    MissingInputError,
    SubmissionError,
)
from enrichment_monitor.runner import OUTPUT_KEY, main, run_enrichment
from enrichment_monitor.settings import Settings
from enrichment_monitor.storage import MemoryChargeSink, MemoryKeyValueStore

INPUT = {
    "apolloLink": "https://app.apollo.io/#/people?q=cto",
    "noOfLeads": 2500,
    "fileName": "ctos.csv",
}


def make_settings(base_url, **overrides):
    values = {
        "SEARCHLEADS_API_URL": f"{base_url}/enrich",
        "SEARCHLEADS_STATUS_URL": f"{base_url}/status",
        "SEARCHLEADS_API_KEY": "test-key",
        "POLL_INTERVAL_SECONDS": 0.01,
        "MAX_RETRIES": 5,
        "REQUEST_TIMEOUT_SECONDS": 2.0,
        **overrides,
    }
    return Settings(_env_file=None, **values)


@pytest.mark.asyncio
async def test_run_saves_output_and_charges(server):
    server_instance, base_url = server
    completed = {
        "enrichment_status": "Completed",
        "record_id": "rec-1",
        "enriched_records": "2400",
        "spreadsheet_url": "https://sheet",
    }
    server_instance.statuses = [{"enrichment_status": "InQueue"}, completed]
    store, charges = MemoryKeyValueStore(), MemoryChargeSink()

    result = await run_enrichment(INPUT, make_settings(base_url), store, charges)

    assert result.spreadsheet_url == "https://sheet"
    assert store.values == {OUTPUT_KEY: completed}
    assert [charge.count for charge in charges.charges] == [3]
    assert server_instance.submissions == [INPUT]


@pytest.mark.asyncio
async def test_run_without_records_skips_charge(server):
    server_instance, base_url = server
    server_instance.statuses = [{"enrichment_status": "completed", "enriched_records": 0}]
    store, charges = MemoryKeyValueStore(), MemoryChargeSink()

    await run_enrichment(INPUT, make_settings(base_url), store, charges)

    assert charges.charges == []
    assert OUTPUT_KEY in store.values


@pytest.mark.asyncio
@pytest.mark.parametrize("input_data", [None, {}])
async def test_run_requires_input(input_data):
    settings = make_settings("http://localhost:1")

    with pytest.raises(MissingInputError):
        await run_enrichment(input_data, settings, MemoryKeyValueStore(), MemoryChargeSink())


@pytest.mark.asyncio
async def test_run_rejects_incomplete_input():
    settings = make_settings("http://localhost:1")

    with pytest.raises(MissingInputError):
        await run_enrichment(
            {"apolloLink": "link"}, settings, MemoryKeyValueStore(), MemoryChargeSink()
        )


@pytest.mark.asyncio
async def test_failed_run_persists_nothing(server):
    server_instance, base_url = server
    server_instance.statuses = [{"enrichment_status": "failed", "error_message": "bad link"}]
    store, charges = MemoryKeyValueStore(), MemoryChargeSink()
    notifier = RecordingNotifier()

    with pytest.raises(EnrichmentFailedError):
        await run_enrichment(INPUT, make_settings(base_url), store, charges, notifier)

    assert store.values == {}
    assert charges.charges == []
    assert len(notifier.calls) == 1


@pytest.mark.asyncio
async def test_submission_failure_skips_polling(server):
    server_instance, base_url = server
    server_instance.record_id = None

    with pytest.raises(SubmissionError):
        await run_enrichment(
            INPUT, make_settings(base_url), MemoryKeyValueStore(), MemoryChargeSink()
        )

    assert server_instance.status_queries == []


@pytest.mark.asyncio
async def test_failure_uses_configured_webhook(server):
    server_instance, base_url = server
    server_instance.statuses = [{"enrichment_status": "cancelled"}]
    settings = make_settings(base_url, DISCORD_WEBHOOK_URL=f"{base_url}/webhook")

    with pytest.raises(EnrichmentCancelledError):
        await run_enrichment(INPUT, settings, MemoryKeyValueStore(), MemoryChargeSink())

    assert len(server_instance.webhooks) == 1


def test_main_without_input_fails(tmp_path, monkeypatch, unused_tcp_port):
    monkeypatch.setenv("SEARCHLEADS_API_URL", f"http://localhost:{unused_tcp_port}/enrich")
    monkeypatch.setenv("SEARCHLEADS_STATUS_URL", f"http://localhost:{unused_tcp_port}/status")
    monkeypatch.setenv("SEARCHLEADS_API_KEY", "test-key")
    monkeypatch.chdir(tmp_path)

    exit_code = main(["--input", str(tmp_path / "missing.json"), "--output-dir", "out"])

    assert exit_code == 1
    assert not (tmp_path / "out" / f"{OUTPUT_KEY}.json").exists()


def test_main_reports_submission_failure(tmp_path, monkeypatch, unused_tcp_port):
    input_file = tmp_path / "input.json"
    input_file.write_text(json.dumps(INPUT))
    monkeypatch.setenv("SEARCHLEADS_API_URL", f"http://localhost:{unused_tcp_port}/enrich")
    monkeypatch.setenv("SEARCHLEADS_STATUS_URL", f"http://localhost:{unused_tcp_port}/status")
    monkeypatch.setenv("SEARCHLEADS_API_KEY", "test-key")
    monkeypatch.chdir(tmp_path)

    exit_code = main(["--input", str(input_file), "--output-dir", "out"])

    assert exit_code == 1
    assert not (tmp_path / "out").exists()


def test_main_reports_invalid_input_json(tmp_path, monkeypatch, unused_tcp_port):
    input_file = tmp_path / "input.json"
    input_file.write_text("{not json")
    monkeypatch.setenv("SEARCHLEADS_API_URL", f"http://localhost:{unused_tcp_port}/enrich")
    monkeypatch.setenv("SEARCHLEADS_STATUS_URL", f"http://localhost:{unused_tcp_port}/status")
    monkeypatch.setenv("SEARCHLEADS_API_KEY", "test-key")
    monkeypatch.chdir(tmp_path)

    exit_code = main(["--input", str(input_file), "--output-dir", "out"])

    assert exit_code == 1
    assert not (tmp_path / "out").exists()


def test_main_reports_missing_settings(tmp_path, monkeypatch):
    input_file = tmp_path / "input.json"
    input_file.write_text(json.dumps(INPUT))
    for name in ("SEARCHLEADS_API_URL", "SEARCHLEADS_STATUS_URL", "SEARCHLEADS_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    exit_code = main(["--input", str(input_file), "--output-dir", "out"])

    assert exit_code == 1
    assert not (tmp_path / "out").exists()
