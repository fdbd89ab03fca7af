import os
import requests
from typing import Any, List, Optional

from ..errors import SourceUnreachableError
from ..models import Item, ItemId
from ..transform.flatten import parse_mdy


def fetch_data_file(url: str, timeout: int = 30) -> Any:
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise SourceUnreachableError(f"could not fetch {url}: {e}") from e
    if response.status_code != 200:
        raise SourceUnreachableError(f"could not fetch {url}: HTTP {response.status_code}")
    try:
        return response.json()
    except ValueError as e:
        raise SourceUnreachableError(f"{url} is not valid JSON: {e}") from e


def records_from_document(document: Any, list_field: Optional[str] = None) -> List[dict]:
    """The file is either a bare list or an object holding the list under `list_field`."""
    if isinstance(document, list):
        records = document
    elif isinstance(document, dict):
        records = document.get(list_field or "items") or []
    else:
        records = []
    return [r for r in records if isinstance(r, dict)]


def items_from_records(
    records: List[dict],
    program: str,
    kind: str,
    page: str,
    default_title: str,
) -> List[Item]:
    items = []
    dropped = 0
    for position, rec in enumerate(records):
        date = parse_mdy(rec.get("date"))
        if date is None:
            dropped += 1
            continue

        filename = rec.get("filename")
        title = str(rec.get("description") or "").strip()
        if not title and filename:
            title = os.path.splitext(os.path.basename(str(filename)))[0]
        url = rec.get("url") or None
        key = rec.get("id")
        if key is None:
            key = url or filename or position

        items.append(
            Item(
                identity=ItemId(program=program, source="file", key=str(key)),
                program=program,
                kind=kind,
                title=title or default_title,
                date=date,
                url=url,
                page=page,
            )
        )

    if dropped:
        print(f"    - {program}: dropped {dropped} record(s) with unparseable dates")
    return items
