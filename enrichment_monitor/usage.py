import math
import re
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from enrichment_monitor.models import StatusSnapshot
from enrichment_monitor.storage import ChargeSink

RECORDS_PER_UNIT = 1000
USAGE_EVENT_NAME = "ENRICHED_RECORDS"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class UsageCharge(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_name: str = Field(default=USAGE_EVENT_NAME, alias="eventName")
    count: int


def parse_record_count(value: Any) -> int:
    """Reads a record count leniently: the leading integer of a string, a truncated float, else 0"""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        count = value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0
        count = int(value)
    else:
        match = _LEADING_INT.match(str(value))
        if match is None:
            return 0
        count = int(match.group(1))
    return max(count, 0)


def units(enriched_records: int) -> int:
    if enriched_records <= 0:
        return 0
    return math.ceil(enriched_records / RECORDS_PER_UNIT)


async def charge_usage(result: StatusSnapshot, sink: ChargeSink) -> Optional[UsageCharge]:
    """Emits one usage charge for a completed result, or nothing when no records were enriched"""
    enriched_records = parse_record_count(result.enriched_records)
    usage_units = units(enriched_records)

    if enriched_records == 0:
        logger.warning("No records enriched - no usage charged")
        return None

    charge = UsageCharge(count=usage_units)
    await sink.charge(charge)
    logger.info(
        f"Usage tracked: {usage_units} units for {enriched_records} enriched records "
        f"({RECORDS_PER_UNIT} per unit)"
    )
    return charge
