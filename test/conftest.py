import asyncio
import pathlib
from typing import Any, Dict, Iterable, List, Optional

import pytest
import yaml

from backup_exporter.model.listing import ListingResult, ObjectRecord
from backup_exporter.storage.base import ListingClient


class DummyLogger:
    def __init__(self) -> None:
        self.messages: List[tuple] = []

    def _record(self, level: str, msg: str) -> None:
        self.messages.append((level, msg))

    def trace(self, msg: str) -> None:
        self._record("TRACE", msg)

    def debug(self, msg: str) -> None:
        self._record("DEBUG", msg)

    def info(self, msg: str) -> None:
        self._record("INFO", msg)

    def warning(self, msg: str) -> None:
        self._record("WARNING", msg)

    def error(self, msg: str) -> None:
        self._record("ERROR", msg)

    def critical(self, msg: str) -> None:
        self._record("CRITICAL", msg)

    async def start(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    def lines(self, level: str) -> List[str]:
        return [msg for lvl, msg in self.messages if lvl == level]


class FakeListingClient(ListingClient):
    """In-memory listing that mimics delimiter handling of an object store."""

    def __init__(
        self,
        objects: Iterable[ObjectRecord],
        *,
        fail_prefixes: Iterable[str] = (),
        delay: float = 0.0,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.objects = list(objects)
        self.fail_prefixes = set(fail_prefixes)
        self.delay = delay
        self.gate = gate
        self.calls: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.entered = 0
        self.exited = 0

    async def __aenter__(self) -> "FakeListingClient":
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.exited += 1

    async def list(self, bucket: str, prefix: Optional[str] = None,
                   delimiter: Optional[str] = None) -> ListingResult:
        self.calls.append({"bucket": bucket, "prefix": prefix, "delimiter": delimiter})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if prefix in self.fail_prefixes:
                raise ConnectionError(f"listing {prefix} refused")
            return self._listing(prefix or "", delimiter)
        finally:
            self.in_flight -= 1

    def _listing(self, prefix: str, delimiter: Optional[str]) -> ListingResult:
        result = ListingResult()
        for obj in self.objects:
            if not obj.key.startswith(prefix):
                continue
            rest = obj.key[len(prefix):]
            if delimiter and delimiter in rest:
                child = prefix + rest.split(delimiter, 1)[0] + delimiter
                if child not in result.common_prefixes:
                    result.common_prefixes.append(child)
            else:
                result.objects.append(obj)
        return result


@pytest.fixture(scope="session")
def bucket_fixture() -> Dict[str, Any]:
    config_path = pathlib.Path(__file__).parent / "fixtures" / "bucket.yaml"
    with config_path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def bucket_objects(bucket_fixture) -> List[ObjectRecord]:
    return [ObjectRecord.from_s3({
        "Key": item["key"],
        "Size": item.get("size"),
        "LastModified": item.get("last_modified"),
    }) for item in bucket_fixture["objects"]]


@pytest.fixture
def dummy_logger() -> DummyLogger:
    return DummyLogger()


@pytest.fixture
def env_vars() -> Dict[str, str]:
    return {
        "S3_ACCESS_KEY": "access",
        "S3_SECRET_KEY": "secret",
        "S3_ENDPOINT": "http://localhost:9000",
        "S3_REGION": "us-east-1",
        "S3_BUCKET": "dns-backups",
        "CRON_EXPRESSION": "*/5 * * * *",
    }
