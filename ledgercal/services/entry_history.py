"""Autocomplete histories for the payee and description fields."""
from ledgercal.utils.constants import HISTORY_MAX_ITEMS, SUGGESTION_LIMIT


def add_to_history(history: list[str], value: str, max_items: int = HISTORY_MAX_ITEMS) -> list[str]:
    """Move value to the front, dropping case-insensitive duplicates; cap the length."""
    value = (value or "").strip()
    if not value:
        return list(history)
    folded = value.casefold()
    rest = [h for h in history if h.casefold() != folded]
    return [value, *rest][:max_items]


def suggestions(history: list[str], query: str, limit: int = SUGGESTION_LIMIT) -> list[str]:
    """Entries starting with the query first, then entries containing it."""
    query = (query or "").strip().casefold()
    if not query:
        return history[:limit]
    starts = [h for h in history if h.casefold().startswith(query)]
    contains = [h for h in history if query in h.casefold() and h not in starts]
    return (starts + contains)[:limit]


def normalize_history(entries, max_items: int = HISTORY_MAX_ITEMS) -> list[str]:
    """Clean a stored or posted list: strings only, trimmed, deduplicated, capped."""
    result: list[str] = []
    seen: set[str] = set()
    for entry in entries or []:
        if not isinstance(entry, str):
            continue
        entry = entry.strip()
        if not entry or entry.casefold() in seen:
            continue
        seen.add(entry.casefold())
        result.append(entry)
    return result[:max_items]
