from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .config import DEFAULT_WEIGHTS
from .models import BudgetedSource, ReportSources

SOURCE_ORDER = ("profile", "commits", "issues", "discussions")
SOURCE_LABELS: Dict[str, str] = {
    "profile": "project profile",
    "commits": "commit logs",
    "issues": "issue posts",
    "discussions": "discussion posts",
}


@dataclass(slots=True)
class Allocation:
    units: Dict[str, int] = field(default_factory=dict)
    blocks: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.blocks

    @property
    def prompt(self) -> str:
        return "\n\n".join(self.blocks.values())


def build_sources(sources: ReportSources, weights: Optional[Mapping[str, int]] = None) -> List[BudgetedSource]:
    weights = weights or DEFAULT_WEIGHTS
    return [
        BudgetedSource(
            name=name,
            label=SOURCE_LABELS[name],
            weight=int(weights.get(name, DEFAULT_WEIGHTS[name])),
            text=getattr(sources, name),
        )
        for name in SOURCE_ORDER
    ]


def allocate(sources: List[BudgetedSource], total_units: int = 16_000, chars_per_unit: int = 3) -> Allocation:
    present = [source for source in sources if source.present and source.weight > 0]
    allocation = Allocation(units={source.name: 0 for source in sources})
    weight_sum = sum(source.weight for source in present)
    if not weight_sum:
        return allocation

    for source in present:
        units = total_units * source.weight // weight_sum
        allocation.units[source.name] = units
        text = (source.text or "")[: units * chars_per_unit]
        allocation.blocks[source.name] = f"{source.label}: {text}"

    ordered = sorted(allocation.blocks, key=_order_key)
    allocation.blocks = {name: allocation.blocks[name] for name in ordered}
    return allocation


def _order_key(name: str) -> int:
    try:
        return SOURCE_ORDER.index(name)
    except ValueError:
        return len(SOURCE_ORDER)
