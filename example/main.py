import asyncio

from enrichment_server import EnrichmentServer
from enrichment_monitor.errors import EnrichmentError
from enrichment_monitor.runner import run_enrichment
from enrichment_monitor.settings import Settings
from enrichment_monitor.storage import MemoryChargeSink, MemoryKeyValueStore


async def main():
    PORT = 8000
    server = EnrichmentServer(
        statuses=[
            {"enrichment_status": "InQueue", "queue_position": 2},
            {"enrichment_status": "InProgress", "progress_percentage": 35},
            503,
            {"enrichment_status": "InProgress", "progress_percentage": 80},
            {
                "enrichment_status": "Completed",
                "record_id": "rec-1",
                "file_name": "ctos.csv",
                "enriched_records": "2450",
                "credits_involved": 2450,
                "spreadsheet_url": "https://docs.google.com/spreadsheets/d/example",
            },
        ]
    )
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    settings = Settings(
        _env_file=None,
        SEARCHLEADS_API_URL=f"http://localhost:{PORT}/enrich",
        SEARCHLEADS_STATUS_URL=f"http://localhost:{PORT}/status",
        SEARCHLEADS_API_KEY=server.api_key,
        DISCORD_WEBHOOK_URL=f"http://localhost:{PORT}/webhook",
        POLL_INTERVAL_SECONDS=1.0,
        MAX_RETRIES=30,
    )
    store = MemoryKeyValueStore()
    charges = MemoryChargeSink()

    try:
        result = await run_enrichment(
            {
                "apolloLink": "https://app.apollo.io/#/people?q=cto",
                "noOfLeads": 2500,
                "fileName": "ctos.csv",
            },
            settings,
            store,
            charges,
        )
        print(f"Final status: {result.status} after {result.attempt} attempts")
        print(f"Saved output: {store.values}")
        print(f"Charges: {[c.model_dump(by_alias=True) for c in charges.charges]}")
    except EnrichmentError as e:
        print(f"Enrichment failed: {e}")
    finally:
        await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
