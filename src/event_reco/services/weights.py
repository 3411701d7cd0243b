from __future__ import annotations

from typing import Mapping

from event_reco.core.constants import ActionKind
from event_reco.core.errors import UnknownActionKind, ValidationError


class ActionWeightTable:
    """Read-only mapping from action kind to importance weight."""

    def __init__(self, weights: Mapping[str, float]):
        table: dict[ActionKind, float] = {}
        for raw_kind, raw_weight in weights.items():
            try:
                kind = ActionKind.parse(raw_kind)
            except ValueError:
                raise UnknownActionKind(raw_kind) from None
            weight = float(raw_weight)
            if weight <= 0:
                raise ValidationError(f"weight for {kind.value} must be > 0, got {weight}")
            table[kind] = weight
        self._weights = table

    @staticmethod
    def parse_kind(kind: "ActionKind | str") -> ActionKind:
        try:
            return ActionKind.parse(kind)
        except ValueError:
            raise UnknownActionKind(kind) from None

    def weight_of(self, kind: "ActionKind | str") -> float:
        w = self._weights.get(self.parse_kind(kind))
        if w is None:
            raise UnknownActionKind(kind)
        return w

    def kinds(self) -> list[ActionKind]:
        return sorted(self._weights, key=lambda k: (self._weights[k], k.value))

    def as_dict(self) -> dict[str, float]:
        return {k.value: w for k, w in self._weights.items()}
