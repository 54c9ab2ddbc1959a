"""Parsing and validation of entered quantities.

Records, spot counts and thresholds all take user-entered quantities keyed by
item id. Valuable items (those in a tagged category) are individually tracked
and may only ever be 0 or 1.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping

from ..core.errors import QuantityError
from ..models.catalog import Item

VALUABLE_MAX_QTY = 1
# Largest value every supported backend stores in an INTEGER column.
MAX_QTY = 2**31 - 1


def _to_number(value: object) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidOperation
    if isinstance(value, (int, Decimal)):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    cleaned = str(value).strip().replace(",", "")
    if not cleaned:
        return None
    return Decimal(cleaned)


def parse_quantity(raw: object, *, item_name: str, valuable: bool) -> int | None:
    """Return the whole quantity for ``raw`` or ``None`` when nothing was entered."""

    try:
        number = _to_number(raw)
    except (InvalidOperation, ValueError) as exc:
        raise QuantityError(f'Invalid quantity for "{item_name}"') from exc
    if number is None:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        raise QuantityError(f'Invalid quantity for "{item_name}"')
    if number < 0:
        raise QuantityError(f'Quantity for "{item_name}" cannot be negative')
    if number > MAX_QTY:
        raise QuantityError(f'Quantity for "{item_name}" is too large')
    qty = int(number)
    if valuable and qty > VALUABLE_MAX_QTY:
        raise QuantityError(f'"{item_name}" is valuable; quantity must be 0 or 1.')
    return qty


def collect_quantities(
    items: Iterable[Item],
    raw: Mapping[int, object],
    *,
    blank_as_zero: bool,
) -> dict[int, int]:
    """Validate every entry in ``raw`` against the items it may refer to.

    ``blank_as_zero`` turns a missing entry into 0 (full count sheets); otherwise
    blank entries are dropped (spot counts, thresholds). All problems are
    reported together.
    """

    by_id = {item.id: item for item in items}
    problems: list[dict[str, object]] = []

    unknown = sorted(int(item_id) for item_id in raw if int(item_id) not in by_id)
    for item_id in unknown:
        problems.append({"item_id": item_id, "error": "item is not assigned to this area"})

    result: dict[int, int] = {}
    for item_id, item in by_id.items():
        value = raw.get(item_id, raw.get(str(item_id)))  # type: ignore[call-overload]
        try:
            qty = parse_quantity(value, item_name=item.name, valuable=item.is_valuable)
        except QuantityError as exc:
            problems.append({"item_id": item_id, "error": exc.message})
            continue
        if qty is None:
            if blank_as_zero:
                result[item_id] = 0
            continue
        result[item_id] = qty

    if problems:
        first = problems[0]["error"]
        message = str(first) if len(problems) == 1 else f"{first} (and {len(problems) - 1} more)"
        raise QuantityError(message, details={"items": problems})
    return result
