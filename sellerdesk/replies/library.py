"""Shared library of canned reply texts.

The whole list lives in one document and is rewritten on every change.
Normalization runs on every load and before every save, so the stored list
always has at most REPLY_LIMIT entries with unique positive ids.
"""

import math

from sellerdesk.documents.cache import CachedDocument
from sellerdesk.errors import EmptyText, LimitExceeded, NotFound

REPLY_LIMIT = 50
REPLY_TEXT_MAX = 4000

Replies = list[dict]


def normalize_replies(raw) -> list[dict]:
    """Clamp, de-duplicate and re-number a raw reply list.

    1. Keep at most REPLY_LIMIT entries and REPLY_TEXT_MAX characters of
       text; skip entries with neither text nor id.
    2. Drop later entries repeating a nonzero id.
    3. Give every entry with id <= 0 or a repeated id the next id above the
       current maximum.
    """
    entries = raw if isinstance(raw, list) else []

    clamped = []
    for entry in entries:
        if len(clamped) >= REPLY_LIMIT:
            break
        entry = entry if isinstance(entry, dict) else {}
        reply_id = _coerce_id(entry.get("id"))
        text = _coerce_text(entry.get("text"))[:REPLY_TEXT_MAX]
        if not text and not reply_id:
            continue
        clamped.append({"id": reply_id, "text": text})

    seen = set()
    deduped = []
    for reply in clamped:
        if reply["id"] and reply["id"] in seen:
            continue
        if reply["id"]:
            seen.add(reply["id"])
        deduped.append(reply)

    max_id = max((r["id"] for r in deduped), default=0)
    assigned = set()
    for reply in deduped:
        if reply["id"] <= 0 or reply["id"] in assigned:
            max_id = max(max_id, 0) + 1
            reply["id"] = max_id
        assigned.add(reply["id"])

    return deduped


class ReplyLibrary:
    """CRUD over the reply document. Every mutation re-reads before writing."""

    def __init__(self, document: CachedDocument):
        self._document = document

    async def list(self) -> Replies:
        replies, _ = await self._document.load()
        return [dict(r) for r in replies]

    async def add(self, text: str) -> Replies:
        text = _clean_text(text)

        def append(replies: list[dict]) -> list[dict]:
            if len(replies) >= REPLY_LIMIT:
                raise LimitExceeded(f"Limit of {REPLY_LIMIT} replies reached")
            next_id = max((r["id"] for r in replies), default=0) + 1
            replies.append({"id": next_id, "text": text})
            return replies

        return await self._document.mutate(append, "Add quick reply")

    async def update(self, reply_id: int, text: str) -> Replies:
        text = _clean_text(text)

        def edit(replies: list[dict]) -> list[dict]:
            for reply in replies:
                if reply["id"] == reply_id:
                    reply["text"] = text
                    return replies
            raise NotFound(f"Reply {reply_id} not found")

        return await self._document.mutate(edit, "Edit quick reply")

    async def remove(self, reply_id: int) -> Replies:
        def drop(replies: list[dict]) -> list[dict]:
            kept = [r for r in replies if r["id"] != reply_id]
            if len(kept) == len(replies):
                raise NotFound(f"Reply {reply_id} not found")
            return kept

        return await self._document.mutate(drop, "Delete quick reply")


def _clean_text(text) -> str:
    text = _coerce_text(text).strip()
    if not text:
        raise EmptyText()
    return text[:REPLY_TEXT_MAX]


def _coerce_text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _coerce_id(value) -> int:
    """Numbers and numeric strings become ints; anything else is 0 (unassigned)."""
    if isinstance(value, bool) or value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or not number.is_integer():
        return 0
    return int(number)
