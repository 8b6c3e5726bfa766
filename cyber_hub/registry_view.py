# cyber_hub/registry_view.py
from enum import Enum
from typing import Iterable, List

from cyber_hub.models import Invention


class SortOrder(str, Enum):
    NONE = "none"
    STABILITY_ASC = "stability-asc"
    STABILITY_DESC = "stability-desc"

    @classmethod
    def parse(cls, value) -> "SortOrder":
        if value is None or value == "":
            return cls.NONE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            known = ", ".join(o.value for o in cls)
            raise ValueError(f"Unknown sort order '{value}'. Known orders: {known}")


def sort_inventions(inventions: Iterable[Invention], order: SortOrder | str = SortOrder.NONE) -> List[Invention]:
    """
    Returns a new list; the input is left untouched.
    `sorted` is stable, so equal stabilities keep their registry order.
    """
    order = SortOrder.parse(order)
    items = list(inventions)
    if order is SortOrder.STABILITY_ASC:
        return sorted(items, key=lambda inv: inv.quantumStability)
    if order is SortOrder.STABILITY_DESC:
        return sorted(items, key=lambda inv: inv.quantumStability, reverse=True)
    return items
