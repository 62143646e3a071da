import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from enrichment_monitor.enrichment_client import EnrichmentClient
from enrichment_monitor.errors import EnrichmentError, MissingInputError
from enrichment_monitor.models import EnrichmentRequest, StatusSnapshot
from enrichment_monitor.notifier import Notifier, notifier_for
from enrichment_monitor.settings import Settings
from enrichment_monitor.storage import (
    ChargeSink,
    JsonFileKeyValueStore,
    JsonLinesChargeSink,
    KeyValueStore,
)
from enrichment_monitor.usage import charge_usage, parse_record_count, units

OUTPUT_KEY = "OUTPUT"


def _log_summary(result: StatusSnapshot) -> None:
    enriched_records = parse_record_count(result.enriched_records)
    logger.info("Final enrichment summary:")
    logger.info(f"  Status: {result.status}")
    logger.info(f"  File: {result.file_name}")
    logger.info(f"  Records enriched: {result.enriched_records}")
    logger.info(f"  Credits used: {result.credits_involved}")
    logger.info(f"  Spreadsheet: {result.spreadsheet_url}")
    logger.info(f"  Usage units: {units(enriched_records)}")


async def run_enrichment(
    input_data: Optional[dict],
    settings: Settings,
    store: KeyValueStore,
    charges: ChargeSink,
    notifier: Optional[Notifier] = None,
) -> StatusSnapshot:
    """Submits one enrichment job, waits for it, charges usage and saves the result.

    Nothing is saved when any step raises.
    """
    if not input_data:
        raise MissingInputError(
            "No input provided. Please provide apolloLink, noOfLeads, and fileName."
        )
    try:
        request = EnrichmentRequest.model_validate(input_data)
    except ValidationError as e:
        raise MissingInputError(f"Invalid input: {e}") from e

    logger.info(
        f"Starting enrichment: apolloLink={request.apollo_link} "
        f"noOfLeads={request.no_of_leads} fileName={request.file_name}"
    )

    client = EnrichmentClient(
        api_url=settings.api_url,
        status_url=settings.status_url,
        api_key=settings.api_key,
        config=settings.polling_config(),
        notifier=notifier or notifier_for(settings.webhook_url),
    )
    record_id = await client.submit(request)
    result = await client.poll_until_complete(record_id, request)

    _log_summary(result)
    await charge_usage(result, charges)

    await store.set_value(OUTPUT_KEY, result.raw_response)
    logger.info("Enrichment run completed successfully")
    return result


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="enrichment-monitor",
        description="Submit a lead enrichment job and wait for its result",
    )
    parser.add_argument("--input", required=True, help="JSON file with apolloLink, noOfLeads, fileName")
    parser.add_argument("--output-dir", default="storage", help="Directory for OUTPUT.json and charges")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def _read_input(path: str) -> Any:
    input_path = Path(path)
    if not input_path.exists():
        return None
    try:
        return json.loads(input_path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise MissingInputError(f"Input file {path} is not valid JSON: {e}") from e


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    try:
        settings = Settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    output_dir = Path(args.output_dir)
    store = JsonFileKeyValueStore(output_dir)
    charges = JsonLinesChargeSink(output_dir / "charges.jsonl")

    try:
        asyncio.run(run_enrichment(_read_input(args.input), settings, store, charges))
    except EnrichmentError as e:
        logger.error(f"Enrichment run failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
