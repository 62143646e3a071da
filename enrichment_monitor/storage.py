import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Protocol, Union

from loguru import logger

if TYPE_CHECKING:
    from enrichment_monitor.usage import UsageCharge


class KeyValueStore(Protocol):
    async def set_value(self, key: str, value: Any) -> None: ...


class ChargeSink(Protocol):
    async def charge(self, charge: "UsageCharge") -> None: ...


class JsonFileKeyValueStore:
    """Stores each value as <directory>/<key>.json"""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.logger = logger

    async def set_value(self, key: str, value: Any) -> None:
        path = self.directory / f"{key}.json"
        await asyncio.to_thread(self._write, path, json.dumps(value, indent=2, default=str))
        self.logger.info(f"Saved {key} to {path}")

    def _write(self, path: Path, text: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


class JsonLinesChargeSink:
    """Appends one JSON line per usage charge"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logger

    async def charge(self, charge: "UsageCharge") -> None:
        await asyncio.to_thread(self._append, charge.model_dump_json(by_alias=True))
        self.logger.debug(f"Charge event written to {self.path}")

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")


class MemoryKeyValueStore:
    def __init__(self):
        self.values: Dict[str, Any] = {}

    async def set_value(self, key: str, value: Any) -> None:
        self.values[key] = value


class MemoryChargeSink:
    def __init__(self):
        self.charges: List["UsageCharge"] = []

    async def charge(self, charge: "UsageCharge") -> None:
        self.charges.append(charge)
