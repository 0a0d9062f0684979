import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator

import orjson
from sortedcontainers import SortedDict

from snapshot_viewer.common.models import HighlightTier, PriceLevelRow

logger = logging.getLogger(__name__)

# The payload producer isn't consistent about casing, so each field has a
# PascalCase and a camelCase spelling.
EXCHANGE_KEYS = ("Ex", "ex")
BACK_KEYS = ("AvailableToBack", "availableToBack")
LAY_KEYS = ("AvailableToLay", "availableToLay")
TRADED_KEYS = ("TradedVolume", "tradedVolume")


def _first_of_type(obj: dict[str, Any], keys: tuple[str, ...], expected: type) -> Any:
    """
    Gets the first value of the expected type among several spellings of a key.

    A spelling that is present but holds something else, such as an empty
    string or null, doesn't hide the other spellings.

    Args:
        obj: The object to look the keys up in.
        keys: The candidate spellings of the key, in order of preference.
        expected: The type the value must have.

    Returns:
        The first matching value, or None if no spelling holds one.
    """
    for key in keys:
        value = obj.get(key)
        if isinstance(value, expected):
            return value
    return None


def _to_decimal(value: Any) -> Decimal | None:
    # Booleans are ints in Python, but never valid prices or sizes.
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _price_sizes(entries: Any) -> Iterator[tuple[Decimal, Decimal]]:
    """
    Yields the (price, size) pairs of a raw price-size list.

    Args:
        entries: The raw list of {price, size} objects.

    Yields:
        The price and size of each well-formed entry.
    """
    if not isinstance(entries, list):
        return
    for entry in entries:
        if not isinstance(entry, dict):
            logger.debug(f"Skipping non-object price-size entry: {entry!r}")
            continue
        price = _to_decimal(entry.get("price", entry.get("Price")))
        size = _to_decimal(entry.get("size", entry.get("Size")))
        if price is None or size is None:
            logger.debug(f"Skipping malformed price-size entry: {entry!r}")
            continue
        yield price, size


def normalise_exchange(
    runner: Any,
) -> dict[str, list[tuple[Decimal, Decimal]]] | None:
    """
    Normalises a parsed runner payload into a single canonical shape.

    The exchange object and its three price-size lists may use either casing
    convention. The rest of the decoder only ever sees the canonical shape.

    Args:
        runner: The parsed JSON payload.

    Returns:
        A dictionary with "back", "lay" and "traded" lists of (price, size)
        pairs, or None if the payload has no exchange object.
    """
    if not isinstance(runner, dict):
        return None
    exchange = _first_of_type(runner, EXCHANGE_KEYS, dict)
    if exchange is None:
        return None

    return {
        "back": list(_price_sizes(_first_of_type(exchange, BACK_KEYS, list))),
        "lay": list(_price_sizes(_first_of_type(exchange, LAY_KEYS, list))),
        "traded": list(_price_sizes(_first_of_type(exchange, TRADED_KEYS, list))),
    }


def _assign_highlight_tiers(rows: list[PriceLevelRow]) -> None:
    """
    Marks the traded-volume maximum with its dominance over the runner-up.

    Args:
        rows: The price-sorted ledger rows, updated in place.
    """
    traded_values = sorted(
        (row.traded for row in rows if row.traded > 0), reverse=True
    )
    if not traded_values:
        return

    max_traded = traded_values[0]
    second_max = traded_values[1] if len(traded_values) > 1 else Decimal(0)
    if second_max > 0 and max_traded >= second_max * 3:
        tier = HighlightTier.TRIPLE
    elif second_max > 0 and max_traded >= second_max * 2:
        tier = HighlightTier.DOUBLE
    else:
        tier = HighlightTier.MAX

    # Only the first row at the maximum is highlighted when several tie.
    for row in rows:
        if row.traded == max_traded:
            row.highlight_tier = tier
            break


def decode(raw: str | bytes | None) -> list[PriceLevelRow]:
    """
    Decodes a raw runner snapshot into a price-sorted ledger.

    Back, lay and traded sizes are merged by price, with repeated entries at
    the same price summed per field. Malformed payloads decode to an empty
    ledger rather than raising.

    Args:
        raw: The JSON-encoded runner snapshot.

    Returns:
        The ledger rows in ascending price order, with the traded-volume
        maximum carrying its highlight tier.
    """
    if not raw:
        return []
    try:
        runner = orjson.loads(raw)
    except orjson.JSONDecodeError:
        logger.debug("Ignoring snapshot payload that isn't valid JSON")
        return []

    exchange = normalise_exchange(runner)
    if exchange is None:
        return []

    levels: SortedDict[Decimal, PriceLevelRow] = SortedDict()
    for field_name, side in (
        ("to_back", "back"),
        ("to_lay", "lay"),
        ("traded", "traded"),
    ):
        for price, size in exchange[side]:
            if price not in levels:
                levels[price] = PriceLevelRow(price=price)
            level = levels[price]
            setattr(level, field_name, getattr(level, field_name) + size)

    rows = list(levels.values())
    _assign_highlight_tiers(rows)
    return rows
