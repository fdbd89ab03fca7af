import heapq
from typing import Dict, Iterable, List, Mapping, Tuple

from ..models import Item, SearchIndexEntry


def dedupe(items: Iterable[Item]) -> List[Item]:
    """Drop repeated identities, keeping the first occurrence."""
    seen = set()
    out = []
    for item in items:
        if item.identity in seen:
            continue
        seen.add(item.identity)
        out.append(item)
    return out


def newest_first(items: Iterable[Item]) -> List[Item]:
    """Dated items only, newest first. Equal dates keep their input order."""
    dated = [item for item in items if item.date is not None]
    return sorted(dated, key=lambda item: item.date, reverse=True)


def build_recency(
    per_program: Mapping[str, List[Item]],
    overall_limit: int = 5,
    program_limit: int = 10,
) -> Tuple[List[Item], Dict[str, List[Item]]]:
    """
    Per-program top lists, and an overall top list merged from them (not from
    a global re-sort of every item).
    """
    by_program: Dict[str, List[Item]] = {}
    for program, items in per_program.items():
        by_program[program] = newest_first(dedupe(items))[:program_limit]

    merged = heapq.merge(*by_program.values(), key=lambda item: item.date, reverse=True)
    overall = []
    for item in merged:
        if len(overall) >= overall_limit:
            break
        overall.append(item)
    return overall, by_program


def build_index(items: Iterable[Item]) -> List[SearchIndexEntry]:
    """
    Every item with a title and a url, newest first. Undated items are kept
    (the index is searched by text) and go after the dated ones.
    """
    usable = [item for item in dedupe(items) if item.title.strip() and item.url]
    dated = newest_first(usable)
    undated = [item for item in usable if item.date is None]
    return [SearchIndexEntry(item=item) for item in dated + undated]
