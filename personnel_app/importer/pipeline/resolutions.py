"""Per-session store of operator decisions for conflicts."""

from __future__ import annotations

from typing import Iterable, Mapping

from .records import ConflictRecord, Resolution

DEFAULT_RESOLUTION = Resolution.SKIP


class ResolutionStore:
    """
    Decisions keyed by tax id.

    Undecided conflicts resolve to ``skip`` so an unattended continuation
    never overwrites stored employees.
    """

    def __init__(self, conflicts: Iterable[ConflictRecord] = ()) -> None:
        self._tax_ids: tuple[str, ...] = tuple(dict.fromkeys(conflict.tax_id for conflict in conflicts))
        self._decisions: dict[str, Resolution] = {}

    @property
    def tax_ids(self) -> tuple[str, ...]:
        return self._tax_ids

    def set(self, tax_id: str, resolution: Resolution | str) -> None:
        if tax_id not in self._tax_ids:
            raise KeyError(tax_id)
        self._decisions[tax_id] = Resolution.parse(resolution)

    def get(self, tax_id: str) -> Resolution:
        return self._decisions.get(tax_id, DEFAULT_RESOLUTION)

    def is_explicit(self, tax_id: str) -> bool:
        return tax_id in self._decisions

    def resolve_all(self, resolution: Resolution | str) -> None:
        decision = Resolution.parse(resolution)
        self._decisions = {tax_id: decision for tax_id in self._tax_ids}

    def pending(self) -> tuple[str, ...]:
        return tuple(tax_id for tax_id in self._tax_ids if tax_id not in self._decisions)

    def as_mapping(self) -> Mapping[str, Resolution]:
        """Complete mapping with defaults materialized for every conflict."""
        return {tax_id: self.get(tax_id) for tax_id in self._tax_ids}

    def as_payload(self) -> dict[str, str]:
        return {tax_id: resolution.value for tax_id, resolution in self.as_mapping().items()}

    def __len__(self) -> int:
        return len(self._tax_ids)
