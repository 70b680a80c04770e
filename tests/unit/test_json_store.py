from __future__ import annotations

import json
from pathlib import Path

import pytest

from regen_pool.domain.models import ContributionRecord
from regen_pool.errors import StoreFormatError
from regen_pool.infrastructure.json_store import STORE_VERSION, JsonDocumentStore


def _record(record_id: str, cents: int = 700) -> ContributionRecord:
    return ContributionRecord(
        id=record_id,
        user_id="alice",
        amount_usd_cents=cents,
        contributed_at="2026-03-05T12:00:00.000Z",
        month="2026-03",
    )


@pytest.fixture
def store(tmp_path: Path) -> JsonDocumentStore[ContributionRecord]:
    return JsonDocumentStore(tmp_path / "ledger" / "records.json", ContributionRecord, lock_retry_seconds=0.01)


@pytest.mark.asyncio
async def test_missing_and_empty_files_read_as_no_records(store) -> None:
    assert await store.read_state() == []

    store.path.parent.mkdir(parents=True)
    store.path.write_text("  \n", encoding="utf-8")

    assert await store.read_state() == []


@pytest.mark.asyncio
async def test_written_document_is_versioned_and_camel_cased(store) -> None:
    await store.write_state([_record("contrib_1")])

    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["version"] == STORE_VERSION
    assert document["records"][0]["amountUsdCents"] == 700
    assert document["records"][0]["contributedAt"] == "2026-03-05T12:00:00.000Z"
    assert "email" not in document["records"][0]
    assert await store.read_state() == [_record("contrib_1")]


@pytest.mark.asyncio
async def test_write_leaves_no_temp_files(store) -> None:
    await store.write_state([_record("contrib_1")])
    await store.write_state([_record("contrib_1"), _record("contrib_2")])

    leftovers = [path.name for path in store.path.parent.iterdir() if path.name.endswith(".tmp")]
    assert leftovers == []
    assert len(await store.read_state()) == 2


@pytest.mark.asyncio
async def test_updater_returning_none_skips_the_write(store) -> None:
    result = await store.with_exclusive_state(lambda records: (None, len(records)))

    assert result == 0
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_exclusive_update_appends(store) -> None:
    await store.write_state([_record("contrib_1")])

    result = await store.with_exclusive_state(
        lambda records: ([*records, _record("contrib_2", 300)], "appended")
    )

    assert result == "appended"
    assert [record.id for record in await store.read_state()] == ["contrib_1", "contrib_2"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps([]),
        json.dumps({"version": 2, "records": []}),
        json.dumps({"version": 1, "records": {}}),
        json.dumps({"version": 1, "records": [{"id": "broken"}]}),
    ],
)
async def test_malformed_documents_raise(store, content: str) -> None:
    store.path.parent.mkdir(parents=True)
    store.path.write_text(content, encoding="utf-8")

    with pytest.raises(StoreFormatError):
        await store.read_state()
