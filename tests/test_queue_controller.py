from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from opportunity_ingestion.schemas.preview import PromotionForm
from opportunity_ingestion.schemas.records import IngestionRecord, RecordUpdate
from opportunity_ingestion.services.ingestion_client import IngestionUnavailableError
from opportunity_ingestion.services.promotion import PromotionWorkflow
from opportunity_ingestion.services.queue import (
    EmptySelectionError,
    IngestionQueueController,
    filter_records,
    project_value,
    resolve_source_url,
    sort_records,
)


class FakeQueueClient:
    def __init__(self, *, failing_ids: set[str] | None = None) -> None:
        self.failing_ids = failing_ids or set()
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self, kind: str, record_id: str) -> None:
        self.calls.append((kind, record_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if record_id in self.failing_ids:
            raise IngestionUnavailableError(f"store rejected {record_id}")

    async def update_record(self, record_id: str, update: RecordUpdate) -> IngestionRecord:
        await self._enter("update", record_id)
        return IngestionRecord(id=record_id, status=update.status or "approved")

    async def promote_record(self, record_id: str, account_id: str | None = None) -> dict[str, Any]:
        await self._enter("promote", record_id)
        return {"id": f"opp-{record_id}", "account_id": account_id}

    async def refresh_record(self, record_id: str) -> IngestionRecord:
        await self._enter("refresh", record_id)
        return IngestionRecord(id=record_id, status="approved", project_title="Refreshed")


def _at(day: int) -> datetime:
    return datetime(2026, 1, day, tzinfo=timezone.utc)


def _records() -> list[IngestionRecord]:
    return [
        IngestionRecord(
            id="a",
            status="pending_review",
            project_title="Bridge Repair",
            client_name="TxDOT",
            location="Austin, TX",
            match_score=80,
            created_at=_at(1),
        ),
        IngestionRecord(
            id="b",
            status="approved",
            project_title="airport terminal",
            client_name="Port Authority",
            tags=["Aviation"],
            match_score=None,
            created_at=_at(3),
        ),
        IngestionRecord(
            id="c",
            status="pending_review",
            project_title="City Hall HVAC",
            client_name="City of Reno",
            match_score=55,
            created_at=None,
        ),
    ]


def _controller(client: FakeQueueClient | None = None, **kwargs: Any) -> IngestionQueueController:
    return IngestionQueueController(PromotionWorkflow(client or FakeQueueClient()), _records(), **kwargs)


def test_filter_records_matches_title_client_location_and_tags() -> None:
    records = _records()

    assert [r.id for r in filter_records(records, query="bridge")] == ["a"]
    assert [r.id for r in filter_records(records, query="PORT")] == ["b"]
    assert [r.id for r in filter_records(records, query="austin")] == ["a"]
    assert [r.id for r in filter_records(records, query="aviation")] == ["b"]
    assert [r.id for r in filter_records(records, query="  ")] == ["a", "b", "c"]


def test_filter_records_combines_query_and_status() -> None:
    records = _records()

    assert [r.id for r in filter_records(records, status="pending_review")] == ["a", "c"]
    assert [r.id for r in filter_records(records, query="city", status="pending_review")] == ["c"]
    assert filter_records(records, query="bridge", status="approved") == []


def test_sort_records_by_created_at_treats_missing_as_oldest() -> None:
    records = _records()

    assert [r.id for r in sort_records(records, by="created_at", order="desc")] == ["b", "a", "c"]
    assert [r.id for r in sort_records(records, by="created_at", order="asc")] == ["c", "a", "b"]


def test_sort_records_by_match_score_and_title() -> None:
    records = _records()

    assert [r.id for r in sort_records(records, by="match_score", order="desc")] == ["a", "c", "b"]
    assert [r.id for r in sort_records(records, by="project_title", order="asc")] == ["b", "a", "c"]


def test_sort_records_is_stable_for_ties() -> None:
    tied = [IngestionRecord(id=str(index), match_score=10) for index in range(4)]

    assert [r.id for r in sort_records(tied, by="match_score", order="desc")] == ["0", "1", "2", "3"]
    assert [r.id for r in sort_records(tied, by="match_score", order="asc")] == ["0", "1", "2", "3"]


def test_status_counts_cover_full_record_set() -> None:
    controller = _controller()
    controller.status = "approved"

    counts = controller.status_counts()

    assert counts.total == 3
    assert counts.pending_review == 2
    assert counts.approved == 1
    assert counts.promoted == 0


def test_select_all_toggles_against_visible_set() -> None:
    controller = _controller()
    controller.status = "pending_review"

    controller.select_all()
    assert controller.selected == frozenset({"a", "c"})

    controller.select_all()
    assert controller.selected == frozenset()


def test_select_all_replaces_partial_selection() -> None:
    controller = _controller()
    controller.toggle_select("a")

    controller.select_all()

    assert controller.selected == frozenset({"a", "b", "c"})


def test_toggle_select_and_clear() -> None:
    controller = _controller()
    controller.toggle_select("a")
    controller.toggle_select("b")
    controller.toggle_select("a")

    assert controller.selected == frozenset({"b"})

    controller.clear()
    assert controller.selected == frozenset()


def test_bulk_approve_runs_members_concurrently() -> None:
    client = FakeQueueClient()
    controller = _controller(client)
    controller.toggle_select("a")
    controller.toggle_select("c")

    result = asyncio.run(controller.bulk_approve())

    assert result.ok
    assert sorted(result.succeeded) == ["a", "c"]
    assert client.max_in_flight == 2
    assert controller.records["a"].status == "approved"
    assert controller.records["c"].status == "approved"
    assert controller.selected == frozenset()


def test_bulk_partial_failure_keeps_failed_ids_selected() -> None:
    client = FakeQueueClient(failing_ids={"c"})
    controller = _controller(client)
    controller.toggle_select("a")
    controller.toggle_select("c")

    result = asyncio.run(controller.bulk_reject())

    assert not result.ok
    assert result.succeeded == ["a"]
    assert result.failed == {"c": "store rejected c"}
    assert controller.records["a"].status == "rejected"
    assert controller.records["c"].status == "pending_review"
    assert controller.selected == frozenset({"c"})


def test_bulk_partial_failure_clears_everything_when_not_retaining() -> None:
    controller = _controller(FakeQueueClient(failing_ids={"c"}), retain_failed_selection=False)
    controller.toggle_select("a")
    controller.toggle_select("c")

    asyncio.run(controller.bulk_approve())

    assert controller.selected == frozenset()


def test_bulk_promote_rejects_unapproved_members_locally() -> None:
    client = FakeQueueClient()
    controller = _controller(client)
    controller.toggle_select("a")
    controller.toggle_select("b")

    result = asyncio.run(controller.bulk_promote("acct-1"))

    assert result.succeeded == ["b"]
    assert set(result.failed) == {"a"}
    assert client.calls == [("promote", "b")]
    assert controller.records["b"].status == "promoted"


def test_bulk_action_requires_selection() -> None:
    client = FakeQueueClient()
    controller = _controller(client)

    with pytest.raises(EmptySelectionError):
        asyncio.run(controller.bulk_approve())
    assert client.calls == []


def test_change_status_replaces_record_and_open_detail() -> None:
    controller = _controller()
    controller.open_detail("a")

    updated = asyncio.run(controller.change_status("a", "approved"))

    assert controller.records["a"] is updated
    assert controller.detail is updated


def test_refresh_replaces_open_detail() -> None:
    controller = _controller()
    controller.records["b"] = controller.records["b"].model_copy(update={"raw_payload": {"source_url": "https://x/b"}})
    controller.open_detail("b")

    asyncio.run(controller.refresh("b"))

    assert controller.detail is not None
    assert controller.detail.project_title == "Refreshed"


def test_promote_marks_record_promoted_on_success() -> None:
    controller = _controller()
    form = PromotionForm(opportunity_name="Terminal", contact_phone="")

    outcome = asyncio.run(controller.promote("b", form))

    assert outcome.ok
    assert controller.records["b"].status == "promoted"


def test_row_helpers_read_raw_payload() -> None:
    record = IngestionRecord(
        id="r",
        raw_payload={"detailUrl": "https://bids.example.gov/r", "project_value_numeric": 0, "project_value": 125000},
    )

    assert resolve_source_url(record) == "https://bids.example.gov/r"
    assert project_value(record) == 125000.0
    assert resolve_source_url(IngestionRecord(id="s")) is None
    assert project_value(IngestionRecord(id="s")) is None


def test_replace_records_keeps_open_detail_in_sync() -> None:
    controller = _controller()
    controller.open_detail("a")
    fresh = IngestionRecord(id="a", status="rejected", project_title="Bridge Repair")

    controller.replace_records([fresh])

    assert list(controller.records) == ["a"]
    assert controller.detail is fresh

    controller.close_detail()
    assert controller.detail is None
