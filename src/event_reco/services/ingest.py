from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from event_reco.core.constants import ActionKind
from event_reco.core.errors import UnknownActionKind, ValidationError
from event_reco.core.time import to_utc, utcnow
from event_reco.core.types import UserAction


def build_action(
    *,
    user_id: int,
    event_id: int,
    action_kind: str | ActionKind,
    timestamp: Optional[datetime] = None,
) -> UserAction:
    if user_id < 1 or event_id < 1:
        raise ValidationError("user_id and event_id must be >= 1")

    try:
        kind = ActionKind.parse(action_kind)
    except ValueError:
        raise UnknownActionKind(action_kind) from None

    occurred_at = to_utc(timestamp) if timestamp is not None else utcnow()
    return UserAction(user_id=int(user_id), event_id=int(event_id), action_kind=kind, timestamp=occurred_at)


def action_from_record(record: Mapping[str, Any]) -> UserAction:
    """
    Accept a raw stream record, either snake_case or camelCase:
    {"userId": 1, "eventId": 2, "actionType": "ACTION_LIKE", "timestamp": "..."}
    """

    def _pick(*names: str) -> Any:
        for n in names:
            if n in record:
                return record[n]
        return None

    user_id = _pick("user_id", "userId")
    event_id = _pick("event_id", "eventId")
    kind = _pick("action_kind", "actionKind", "action_type", "actionType")
    if user_id is None or event_id is None or kind is None:
        raise ValidationError(f"incomplete action record: {dict(record)!r}")

    kind_str = str(kind.value if isinstance(kind, ActionKind) else kind).strip().upper()
    if kind_str.startswith("ACTION_"):
        kind_str = kind_str[len("ACTION_"):]

    raw_ts = _pick("timestamp", "ts")
    if raw_ts is None or isinstance(raw_ts, datetime):
        ts = raw_ts
    else:
        try:
            ts = datetime.fromisoformat(str(raw_ts).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"malformed timestamp: {raw_ts!r}") from None

    try:
        uid, eid = int(user_id), int(event_id)
    except (TypeError, ValueError):
        raise ValidationError(f"malformed ids in action record: {dict(record)!r}") from None
    return build_action(user_id=uid, event_id=eid, action_kind=kind_str, timestamp=ts)
