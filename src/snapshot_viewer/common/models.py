from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class HighlightTier(IntEnum):
    """Relative-magnitude class of the dominant traded-volume price level."""

    NONE = 0
    # The traded maximum, but not dominant.
    MAX = 1
    # The traded maximum and at least double the runner-up.
    DOUBLE = 2
    # The traded maximum and at least triple the runner-up.
    TRIPLE = 3


class ExpandKind(str, Enum):
    NONE = "NONE"
    LEDGER = "LEDGER"
    LAST_PRICE = "LAST_PRICE"


@dataclass
class PriceLevelRow:
    """Represents one price point of a decoded order book snapshot."""

    price: Decimal
    to_back: Decimal = Decimal(0)
    to_lay: Decimal = Decimal(0)
    traded: Decimal = Decimal(0)
    highlight_tier: HighlightTier = HighlightTier.NONE


@dataclass
class LedgerDiffRow:
    """
    Represents the traded volume matched at a price between two snapshots.

    Only traded volume is carried, so the back and lay sizes are always zero.
    """

    price: Decimal
    traded: Decimal
    to_back: Decimal = Decimal(0)
    to_lay: Decimal = Decimal(0)


@dataclass
class AlignedRow:
    """A price aligned across the current and previous ledgers."""

    price: Decimal
    current: PriceLevelRow | None
    previous: PriceLevelRow | None
    traded_delta: Decimal


@dataclass(frozen=True)
class ExpandSelection:
    """The single expanded row of a detail view, if any."""

    kind: ExpandKind = ExpandKind.NONE
    key: int | None = None


@dataclass
class SnapshotRow:
    """
    A visible detail row, as handed to the expand controller.

    The market and selection IDs, the reference time and the extra parameters
    are only used to build the previous-record request.
    """

    key: int
    market_id: int
    selection_id: int
    reference_time: str
    raw_payload: str | None = None
    last_price_payload: str | None = None
    extra_params: dict[str, str] = field(default_factory=dict)


class PreviousRecord(BaseModel):
    """The snapshot recorded immediately before a given record."""

    model_config = ConfigDict(populate_by_name=True)

    record_id: int = Field(
        validation_alias=AliasChoices("recordId", "pcId", "record_id")
    )
    raw_payload: str | None = Field(
        default=None,
        validation_alias=AliasChoices("rawPayload", "rawData", "raw_payload"),
    )
    reference_time: str | None = Field(
        default=None,
        validation_alias=AliasChoices("referenceTime", "refreshTime", "reference_time"),
    )
    traded_delta: Decimal = Field(
        default=Decimal(0),
        validation_alias=AliasChoices("tradedDelta", "tradedChange", "traded_delta"),
    )
    last_odds: Decimal = Field(
        default=Decimal(0), validation_alias=AliasChoices("lastOdds", "last_odds")
    )


class ApiEnvelope(BaseModel):
    """Standard response envelope of the previous-record endpoint."""

    code: int
    message: str | None = None
    data: PreviousRecord | None = None

    @property
    def is_success(self) -> bool:
        return self.code == 0


class BigHoldItem(BaseModel):
    """An item of a page payload, with its embedded raw snapshot."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pc_id: int = Field(alias="pcId")
    selection: str = ""
    selection_id: int = Field(alias="selectionId")
    market_id: int = Field(alias="marketId")
    refresh_time: str = Field(alias="refreshTime")
    raw_data: str | None = Field(default=None, alias="rawData")
    last_odds: Decimal = Field(default=Decimal(0), alias="lastOdds")
    traded_change: Decimal = Field(default=Decimal(0), alias="tradedChange")
    hold: Decimal = Decimal(0)
    handicap: Decimal | None = None

    def to_snapshot_row(self, last_price_payload: str | None = None) -> SnapshotRow:
        """
        Converts the page item into a row for the expand controller.

        Args:
            last_price_payload: The raw last-price snapshot for the item's
                                selection, if the page carries one.

        Returns:
            The snapshot row keyed by the item's record ID.
        """
        # Handicap markets need the line to find the matching previous record.
        extra_params = {}
        if self.handicap is not None:
            extra_params["handicap"] = str(self.handicap)
        return SnapshotRow(
            key=self.pc_id,
            market_id=self.market_id,
            selection_id=self.selection_id,
            reference_time=self.refresh_time,
            raw_payload=self.raw_data,
            last_price_payload=last_price_payload,
            extra_params=extra_params,
        )
