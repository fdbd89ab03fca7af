import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from ..models import Item, ItemId

MDY_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def parse_mdy(text: Any) -> Optional[datetime]:
    """
    Parse a strict M/D/YYYY date into midnight UTC.
    Returns None for anything else, including impossible days like 2/30/2024.
    """
    if not isinstance(text, str):
        return None
    m = MDY_PATTERN.match(text.strip())
    if not m:
        return None
    month, day, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def flatten_categories(
    tree: Any,
    program: str,
    kind: str,
    page: str,
    default_title: str,
) -> List[Item]:
    """
    Walk categories -> subcategories -> items and emit one Item per leaf with a
    parseable date. Leaves are read, never modified.
    """
    out: List[Item] = []
    dropped = 0

    for cat in _as_list(tree):
        if not isinstance(cat, dict):
            continue
        cat_name = str(cat.get("title") or cat.get("name") or "")
        for sub in _as_list(cat.get("subcategories")):
            if not isinstance(sub, dict):
                continue
            sub_name = str(sub.get("title") or sub.get("name") or "")
            for position, leaf in enumerate(_as_list(sub.get("items"))):
                if not isinstance(leaf, dict):
                    continue
                date = parse_mdy(leaf.get("note") or leaf.get("date"))
                if date is None:
                    dropped += 1
                    continue

                title = str(leaf.get("title") or "").strip() or default_title
                url = leaf.get("url") or None
                key = url or f"{cat_name}/{sub_name}/{position}/{title}"
                out.append(
                    Item(
                        identity=ItemId(program=program, source="page", key=key),
                        program=program,
                        kind=kind,
                        title=title,
                        date=date,
                        url=url,
                        page=page,
                    )
                )

    if dropped:
        print(f"    - {program}: dropped {dropped} item(s) with unparseable dates")
    return out
