# mappers.py
from typing import Any, List

from pydantic import ValidationError

from models import Item

PASSTHROUGH_KINDS = ("story", "job", "poll")


def to_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError):
        return default


def item_kind(raw_type: Any, title: str) -> str:
    """Classify an upstream item; raises ValueError for kinds outside the catalog."""
    if raw_type not in PASSTHROUGH_KINDS:
        raise ValueError(f"unsupported item type: {raw_type!r}")
    if raw_type == "story":
        head = title.lstrip().lower()
        if head.startswith("ask hn"):
            return "ask"
        if head.startswith("show hn"):
            return "show"
    return raw_type


def map_hn_item(raw: Any) -> Item:
    """Map an upstream item payload onto ``Item``.

    Raises ValueError when the payload is not an object, has no usable id, or is
    of a kind this catalog does not carry (comments, poll options).
    """
    if not isinstance(raw, dict):
        raise ValueError(f"item payload must be an object, got {type(raw).__name__}")
    title = raw.get("title") or ""
    if not isinstance(title, str):
        raise ValueError("item title must be a string")
    descendants = raw.get("descendants")
    try:
        return Item(
            id=to_int(raw.get("id")),
            title=title,
            url=raw.get("url") or None,
            by=raw.get("by") or "",
            time=to_int(raw.get("time")),
            score=to_int(raw.get("score")),
            descendants=to_int(descendants) if descendants is not None else None,
            type=item_kind(raw.get("type"), title),
        )
    except ValidationError as e:
        raise ValueError(f"invalid item payload: {e.errors()[0].get('msg')}") from e


def map_id_listing(raw: Any) -> List[int]:
    """Validate the listing payload: a JSON array of positive integer ids."""
    if not isinstance(raw, list):
        raise ValueError(f"listing payload must be an array, got {type(raw).__name__}")
    ids: List[int] = []
    for v in raw:
        if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
            raise ValueError(f"listing contains a non-id value: {v!r}")
        ids.append(v)
    return ids
