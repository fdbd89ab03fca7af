import datetime
import httplib2
from typing import Callable, List, Optional
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pydantic import BaseModel

from ..config import CatalogConfig
from ..errors import CatalogAPIError, MissingCredentialError, SourceUnreachableError
from ..models import Item, ItemId

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
MAX_PAGE_SIZE = 50

Predicate = Callable[[str], bool]


class CatalogEntry(BaseModel):
    entry_id: str
    title: Optional[str] = None
    published_at: Optional[str] = None
    description: str = ""


class CatalogPage(BaseModel):
    items: List[CatalogEntry]
    next_cursor: Optional[str] = None


class CatalogScan(BaseModel):
    items: List[CatalogEntry]
    recent: List[CatalogEntry]


def description_predicate(keywords: List[str]) -> Predicate:
    """Case-insensitive 'contains any keyword'. No keywords matches everything."""
    needles = [k.lower() for k in keywords if k]

    def matches(description: str) -> bool:
        if not needles:
            return True
        text = (description or "").lower()
        return any(n in text for n in needles)

    return matches


def parse_published_at(value: Optional[str]) -> Optional[datetime.datetime]:
    if not value:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def build_client(api_key: Optional[str], catalog: CatalogConfig) -> "CatalogClient":
    if not api_key:
        raise MissingCredentialError("YOUTUBE_API_KEY is not set; catalog counts cannot be resolved.")
    youtube = build("youtube", "v3", developerKey=api_key, cache_discovery=False)
    return CatalogClient(youtube, catalog.playlist_id, page_size=catalog.page_size)


class CatalogClient:
    """Walks one playlist with playlistItems.list, newest first."""

    def __init__(self, youtube, playlist_id: str, page_size: int = MAX_PAGE_SIZE):
        self.youtube = youtube
        self.playlist_id = playlist_id
        self.page_size = min(page_size, MAX_PAGE_SIZE)

    def list_matching(self, predicate: Predicate, cursor: str = "") -> CatalogPage:
        params = {
            "part": "snippet,contentDetails",
            "playlistId": self.playlist_id,
            "maxResults": self.page_size,
        }
        if cursor:
            params["pageToken"] = cursor

        try:
            response = self.youtube.playlistItems().list(**params).execute()
        except HttpError as e:
            status = getattr(e.resp, "status", "?")
            raise CatalogAPIError(
                f"YouTube API returned HTTP {status} for playlist {self.playlist_id} "
                f"(check YOUTUBE_API_KEY and the playlist id): {e}"
            ) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise SourceUnreachableError(f"could not reach YouTube for playlist {self.playlist_id}: {e}") from e

        matches = []
        for res in response.get("items", []):
            snippet = res.get("snippet") or {}
            video_id = (snippet.get("resourceId") or {}).get("videoId") or (
                res.get("contentDetails") or {}
            ).get("videoId")
            if not video_id:
                continue

            description = snippet.get("description") or ""
            if not predicate(description):
                continue

            matches.append(
                CatalogEntry(
                    entry_id=video_id,
                    title=snippet.get("title"),
                    published_at=snippet.get("publishedAt"),
                    description=description,
                )
            )

        return CatalogPage(items=matches, next_cursor=response.get("nextPageToken") or None)

    def scan(self, predicate: Predicate, recent_limit: int = 10) -> CatalogScan:
        """
        Full scan of the playlist. `items` holds every match; `recent` keeps
        only the first `recent_limit` matches, which are the newest because
        the playlist is returned newest first.
        """
        items: List[CatalogEntry] = []
        recent: List[CatalogEntry] = []
        cursor = ""
        pages = 0

        while True:
            page = self.list_matching(predicate, cursor)
            pages += 1
            items.extend(page.items)
            for entry in page.items:
                if len(recent) >= recent_limit:
                    break
                recent.append(entry)

            if not page.next_cursor:
                break
            cursor = page.next_cursor

        print(f"    -> {self.playlist_id}: {len(items)} matching entries over {pages} page(s)")
        return CatalogScan(items=items, recent=recent)


def entries_to_items(
    entries: List[CatalogEntry],
    program: str,
    kind: str,
    page: str,
    default_title: str,
) -> List[Item]:
    items = []
    for entry in entries:
        items.append(
            Item(
                identity=ItemId(program=program, source="yt", key=entry.entry_id),
                program=program,
                kind=kind,
                title=(entry.title or "").strip() or default_title,
                date=parse_published_at(entry.published_at),
                url=WATCH_URL.format(video_id=entry.entry_id),
                page=page,
            )
        )
    return items
