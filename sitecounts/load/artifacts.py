import json
import os
from pathlib import Path
from typing import Any, List, Tuple

from ..models import CountsDocument, SearchIndexEntry

COUNTS_FILE = "site-counts.json"
SEARCH_INDEX_FILE = "search-index.json"


def render_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def temp_path(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def stage_text(path: Path, text: str) -> Path:
    """Write text to a sibling temp file and return it. The target is not touched."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_path(path)
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
    return tmp


def counts_text(document: CountsDocument) -> str:
    return render_json(document.to_record())


def search_index_text(entries: List[SearchIndexEntry]) -> str:
    return render_json([entry.to_record() for entry in entries])


def write_artifacts(output_dir: str, document: CountsDocument, entries: List[SearchIndexEntry]) -> List[Path]:
    """
    Serialize both artifacts and stage both temp files before replacing
    either target, so a failure while staging leaves the previous pair as is.
    """
    out = Path(output_dir)
    payloads = [
        (out / COUNTS_FILE, counts_text(document)),
        (out / SEARCH_INDEX_FILE, search_index_text(entries)),
    ]

    staged: List[Tuple[Path, Path]] = []
    try:
        for path, text in payloads:
            staged.append((stage_text(path, text), path))
    except OSError:
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise

    for tmp, path in staged:
        os.replace(tmp, path)
    return [path for _, path in staged]
