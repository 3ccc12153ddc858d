"""Tests for the conversation draft store."""
import pytest

from app.drafts.store import DraftConflictError, DraftStore
from app.models.domain import CatalogItem, DraftPhase, LineItem, PartySnapshot

from conftest import ACME, BASIL, BETA, PARSLEY

CID = "conv-drafts"


def _line(record: dict, quantity: float, code: str = None) -> LineItem:
    line = LineItem.from_catalog(CatalogItem.from_erp(record), quantity)
    if code is not None:
        line = line.model_copy(update={"code": code})
    return line


async def test_first_access_creates_empty_draft(draft_store):
    draft = await draft_store.get_or_create(CID)

    assert draft.conversation_id == CID
    assert draft.phase == DraftPhase.PARTY
    assert draft.party is None
    assert draft.line_items == []
    assert draft.version == 0
    assert draft.is_empty


async def test_get_or_create_returns_same_draft(draft_store):
    await draft_store.set_notes(CID, "leave at the back door")

    again = await draft_store.get_or_create(CID)

    assert again.notes == "leave at the back door"
    assert again.version == 1


async def test_set_party_moves_to_address_step(draft_store):
    draft = await draft_store.set_party(CID, PartySnapshot.from_erp(ACME))

    assert draft.phase == DraftPhase.ADDRESS
    assert draft.party.id == "cust-001"
    assert draft.party.tax_id == "IT01234567890"
    assert len(draft.party.addresses) == 2

    stored = await draft_store.get_or_create(CID)
    assert stored.party == draft.party


async def test_second_set_party_replaces_first_and_drops_address(draft_store):
    await draft_store.set_party(CID, PartySnapshot.from_erp(ACME))
    await draft_store.set_shipping_address(CID, "Via Roma 1, Milano")

    draft = await draft_store.set_party(CID, PartySnapshot.from_erp(BETA))

    assert draft.party.id == "cust-002"
    assert draft.party.name == "Beta Market"
    assert draft.shipping_address is None
    assert draft.phase == DraftPhase.ADDRESS


async def test_same_party_again_keeps_address(draft_store):
    await draft_store.set_party(CID, PartySnapshot.from_erp(ACME))
    await draft_store.set_shipping_address(CID, "Via Po 20, Torino")

    draft = await draft_store.set_party(CID, PartySnapshot.from_erp(ACME))

    assert draft.shipping_address == "Via Po 20, Torino"


async def test_address_and_date_advance_but_never_rewind(draft_store):
    await draft_store.set_party(CID, PartySnapshot.from_erp(ACME))
    draft = await draft_store.set_shipping_address(CID, "Via Roma 1, Milano")
    assert draft.phase == DraftPhase.ITEMS

    await draft_store.set_phase(CID, DraftPhase.CONFIRM)
    draft = await draft_store.set_shipping_time(CID, "2026-02-01T00:00:00.000Z")

    assert draft.phase == DraftPhase.CONFIRM
    assert draft.expected_shipping_time == "2026-02-01T00:00:00.000Z"


async def test_upsert_overwrites_quantity_case_insensitively(draft_store):
    first = await draft_store.upsert_line_item(CID, _line(PARSLEY, 5))
    second = await draft_store.upsert_line_item(CID, _line(PARSLEY, 3, code="parsley 12 - raw"))

    assert first.inserted is True
    assert second.inserted is False
    assert second.previous_quantity == 5

    draft = await draft_store.get_or_create(CID)
    assert len(draft.line_items) == 1
    assert draft.line_items[0].quantity == 3


async def test_upsert_distinct_codes_appends(draft_store):
    await draft_store.upsert_line_item(CID, _line(PARSLEY, 5))
    await draft_store.upsert_line_item(CID, _line(BASIL, 2))

    draft = await draft_store.get_or_create(CID)

    assert [line.code for line in draft.line_items] == ["PARSLEY 12 - RAW", "BASIL-GENOVESE"]
    assert draft.total == pytest.approx(5 * 4.5 + 2 * 10.0)


async def test_item_change_reopens_confirmed_draft(draft_store):
    await draft_store.upsert_line_item(CID, _line(PARSLEY, 5))
    await draft_store.set_phase(CID, DraftPhase.CONFIRM)

    await draft_store.upsert_line_item(CID, _line(BASIL, 1))

    draft = await draft_store.get_or_create(CID)
    assert draft.phase == DraftPhase.ITEMS


async def test_remove_line_item(draft_store):
    await draft_store.upsert_line_item(CID, _line(PARSLEY, 5))
    await draft_store.upsert_line_item(CID, _line(BASIL, 2))

    removed = await draft_store.remove_line_item(CID, "basil-genovese")

    assert removed is not None
    assert removed.code == "BASIL-GENOVESE"
    draft = await draft_store.get_or_create(CID)
    assert [line.code for line in draft.line_items] == ["PARSLEY 12 - RAW"]


async def test_remove_missing_line_item_returns_none(draft_store):
    await draft_store.upsert_line_item(CID, _line(PARSLEY, 5))

    removed = await draft_store.remove_line_item(CID, "NOPE-1")

    assert removed is None
    draft = await draft_store.get_or_create(CID)
    assert len(draft.line_items) == 1


async def test_clear_deletes_the_draft(draft_store):
    await draft_store.set_party(CID, PartySnapshot.from_erp(ACME))
    await draft_store.upsert_line_item(CID, _line(PARSLEY, 5))

    assert await draft_store.clear(CID) is True
    assert await draft_store.clear(CID) is False

    draft = await draft_store.get_or_create(CID)
    assert draft.is_empty
    assert draft.phase == DraftPhase.PARTY
    assert draft.version == 0


async def test_drafts_are_isolated_per_conversation(draft_store):
    await draft_store.upsert_line_item("conv-a", _line(PARSLEY, 5))

    other = await draft_store.get_or_create("conv-b")

    assert other.line_items == []


async def test_version_increments_on_every_write(draft_store):
    await draft_store.set_party(CID, PartySnapshot.from_erp(ACME))
    await draft_store.set_shipping_address(CID, "Via Roma 1, Milano")
    await draft_store.upsert_line_item(CID, _line(PARSLEY, 5))

    draft = await draft_store.get_or_create(CID)
    assert draft.version == 3


async def test_lost_write_is_retried_on_fresh_state(session_factory):
    class OneStaleRead(DraftStore):
        reads = 0

        def _row_to_domain(self, row):
            draft = DraftStore._row_to_domain(row)
            OneStaleRead.reads += 1
            if OneStaleRead.reads == 1:
                # a concurrent writer bumped the row after this read
                draft.version -= 1
            return draft

    store = OneStaleRead(session_factory, max_retries=3)

    outcome = await store.upsert_line_item(CID, _line(PARSLEY, 5))

    assert outcome.inserted is True
    draft = await DraftStore(session_factory).get_or_create(CID)
    assert len(draft.line_items) == 1
    assert draft.version == 1


async def test_persistent_conflict_raises(session_factory):
    class AlwaysStale(DraftStore):
        def _row_to_domain(self, row):
            draft = DraftStore._row_to_domain(row)
            draft.version -= 1
            return draft

    store = AlwaysStale(session_factory, max_retries=2)

    with pytest.raises(DraftConflictError):
        await store.set_notes(CID, "never stored")

    draft = await DraftStore(session_factory).get_or_create(CID)
    assert draft.notes is None
