from __future__ import annotations

from enum import Enum


class ActionKind(str, Enum):
    VIEW = "VIEW"
    REGISTER = "REGISTER"
    LIKE = "LIKE"

    @classmethod
    def parse(cls, value: "str | ActionKind") -> "ActionKind":
        if isinstance(value, ActionKind):
            return value
        return cls(str(value).strip().upper())


# Baseline weights; VIEW < REGISTER < LIKE
DEFAULT_ACTION_WEIGHTS: dict[str, float] = {
    "VIEW": 0.4,
    "REGISTER": 0.8,
    "LIKE": 1.0,
}
