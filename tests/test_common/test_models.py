from decimal import Decimal

import pytest
from pydantic import ValidationError

from snapshot_viewer.common.models import (
    ApiEnvelope,
    BigHoldItem,
    ExpandKind,
    ExpandSelection,
    PreviousRecord,
)


@pytest.fixture
def page_item() -> dict:
    """Creates an item as it appears in a page payload."""
    return {
        "pcId": 7,
        "selection": "Over 2.5",
        "selectionId": 47973,
        "marketId": 1234,
        "refreshTime": "2025-01-01T12:00:00Z",
        "rawData": '{"ex":{}}',
        "lastOdds": 1.95,
        "tradedChange": 350,
        "hold": 1200,
        "unusedField": "ignored",
    }


def test_big_hold_item_to_snapshot_row(page_item: dict) -> None:
    """Tests converting a page item into a detail row."""
    item = BigHoldItem.model_validate(page_item)

    row = item.to_snapshot_row(last_price_payload='{"ex":{"tradedVolume":[]}}')

    assert row.key == 7
    assert row.market_id == 1234
    assert row.selection_id == 47973
    assert row.reference_time == "2025-01-01T12:00:00Z"
    assert row.raw_payload == '{"ex":{}}'
    assert row.last_price_payload == '{"ex":{"tradedVolume":[]}}'
    assert row.extra_params == {}


def test_handicap_is_forwarded_as_extra_param(page_item: dict) -> None:
    """Tests that the handicap line ends up in the request parameters."""
    page_item["handicap"] = "-0.5"

    row = BigHoldItem.model_validate(page_item).to_snapshot_row()

    assert row.extra_params == {"handicap": "-0.5"}


def test_big_hold_item_requires_ids(page_item: dict) -> None:
    """Tests that an item without a record ID is rejected."""
    del page_item["pcId"]

    with pytest.raises(ValidationError):
        BigHoldItem.model_validate(page_item)


@pytest.mark.parametrize(
    "payload",
    [
        {"recordId": 3, "rawPayload": "{}", "referenceTime": "t"},
        {"pcId": 3, "rawData": "{}", "refreshTime": "t"},
        {"record_id": 3, "raw_payload": "{}", "reference_time": "t"},
    ],
)
def test_previous_record_accepts_each_naming(payload: dict) -> None:
    """Tests that previous records parse from any of the API's field names."""
    record = PreviousRecord.model_validate(payload)

    assert record == PreviousRecord(record_id=3, raw_payload="{}", reference_time="t")


def test_previous_record_defaults() -> None:
    """Tests the defaults of a previous record with only an ID."""
    record = PreviousRecord.model_validate({"recordId": 3})

    assert record.raw_payload is None
    assert record.traded_delta == Decimal(0)
    assert record.last_odds == Decimal(0)


def test_api_envelope_success_flag() -> None:
    """Tests that only a zero code is a success."""
    assert ApiEnvelope(code=0).is_success
    assert not ApiEnvelope(code=1, message="unauthorised").is_success


def test_default_selection_is_nothing_expanded() -> None:
    """Tests the collapsed state of a detail view."""
    selection = ExpandSelection()

    assert selection.kind == ExpandKind.NONE
    assert selection.key is None
