"""Song catalog built from the media directory."""

import json
import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any
from urllib.parse import quote

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from frishta.config import settings
from frishta.constants import MUSIC_CATEGORIES

logger = logging.getLogger(__name__)

SONG_EXTENSIONS = frozenset({".mp3", ".wav", ".m4a", ".aac", ".ogg"})
THUMBNAIL_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp"})

OVERRIDES_FILENAME = "song-categories.json"
DEFAULT_ARTIST = "Frishta Artist"

# Keys an override object may use to point at a thumbnail, in priority order
THUMBNAIL_KEYS = ("thumbnailPath", "thumbnail", "thumbnailFile", "imagePath", "image")


def normalize_category_key(value: Any) -> str:
    """Case and whitespace-insensitive comparison key for a category."""
    return re.sub(r"\s+", " ", str(value or "").strip()).upper()


_CATEGORY_LOOKUP = {normalize_category_key(c): c for c in MUSIC_CATEGORIES}


def canonicalize_category(value: Any) -> str | None:
    """Map user input onto a canonical category, or ``None`` if unrecognized."""
    return _CATEGORY_LOOKUP.get(normalize_category_key(value))


class Song(BaseModel):
    """A playable item in the catalog."""

    id: str
    title: str
    artist: str = DEFAULT_ARTIST
    category: str
    audio_path: str
    thumbnail_path: str | None = None
    audio_url: str = ""
    thumbnail_url: str = ""


def format_title(filename: str) -> str:
    """Turn ``my_song-title.mp3`` into ``my song title``."""
    stem = Path(filename).stem
    return re.sub(r"\s+", " ", re.sub(r"[_-]+", " ", stem)).strip()


def media_path(folder: str, filename: str) -> str:
    return f"/media/{folder}/{quote(filename, safe='')}"


def absolute_url(base_url: str, path: str) -> str:
    if not base_url:
        return ""
    return f"{base_url.rstrip('/')}{path}"


def normalize_thumbnail_path(value: Any) -> str:
    """Accept a media path, relative path, or bare file name for a thumbnail."""
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""

    normalized = trimmed.replace("\\", "/")
    if normalized.startswith("/media/"):
        return normalized
    if normalized.startswith("media/"):
        return f"/{normalized}"

    parts = [part for part in normalized.split("/") if part]
    if not parts:
        return ""
    return media_path("thumbnails", parts[-1])


def songs_for_categories(songs: Iterable[Song], categories: Sequence[str]) -> list[Song]:
    """Filter songs down to the given categories (case/whitespace-insensitive)."""
    keys = {normalize_category_key(category) for category in categories}
    return [song for song in songs if normalize_category_key(song.category) in keys]


class SongCatalog:
    """Lists songs from ``<root>/songs`` with thumbnails from ``<root>/thumbnails``.

    Categories and thumbnails can be pinned per song in ``song-categories.json``,
    keyed by file name or stem. Songs without a usable override rotate through
    the canonical categories by position.
    """

    def __init__(self, root: str | Path, *, thumbnail_fallback_index: bool = False) -> None:
        self.root = Path(root)
        self.thumbnail_fallback_index = thumbnail_fallback_index

    async def list_songs(self, base_url: str = "") -> list[Song]:
        return await run_in_threadpool(self.scan, base_url)

    def scan(self, base_url: str = "") -> list[Song]:
        song_files = self._files(self.root / "songs", SONG_EXTENSIONS)
        thumbnail_files = self._files(self.root / "thumbnails", THUMBNAIL_EXTENSIONS)
        overrides = self._overrides()

        songs = []
        for index, song_file in enumerate(song_files):
            audio_path = media_path("songs", song_file)
            thumbnail_path = self._thumbnail_for(song_file, index, thumbnail_files, overrides)
            songs.append(
                Song(
                    id=f"song-{index + 1}",
                    title=format_title(song_file),
                    category=self._category_for(song_file, index, overrides),
                    audio_path=audio_path,
                    thumbnail_path=thumbnail_path,
                    audio_url=absolute_url(base_url, audio_path),
                    thumbnail_url=absolute_url(base_url, thumbnail_path) if thumbnail_path else "",
                )
            )
        return songs

    @staticmethod
    def _files(directory: Path, extensions: frozenset[str]) -> list[str]:
        if not directory.is_dir():
            return []
        return sorted(
            entry.name
            for entry in directory.iterdir()
            if entry.is_file() and entry.suffix.lower() in extensions
        )

    def _overrides(self) -> dict[str, Any]:
        path = self.root / OVERRIDES_FILENAME
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except ValueError as e:
            logger.warning(f"Ignoring unreadable {OVERRIDES_FILENAME}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _override_for(song_file: str, overrides: dict[str, Any]) -> Any:
        if song_file in overrides:
            return overrides[song_file]
        return overrides.get(Path(song_file).stem)

    def _category_for(self, song_file: str, index: int, overrides: dict[str, Any]) -> str:
        candidate = self._override_for(song_file, overrides)
        if isinstance(candidate, dict):
            candidate = candidate.get("category")

        if isinstance(candidate, str) and candidate in MUSIC_CATEGORIES:
            return candidate
        if isinstance(candidate, list):
            for item in candidate:
                if item in MUSIC_CATEGORIES:
                    return item

        return MUSIC_CATEGORIES[index % len(MUSIC_CATEGORIES)]

    def _thumbnail_for(
        self,
        song_file: str,
        index: int,
        thumbnail_files: list[str],
        overrides: dict[str, Any],
    ) -> str | None:
        candidate = self._override_for(song_file, overrides)
        if isinstance(candidate, dict):
            for key in THUMBNAIL_KEYS:
                path = normalize_thumbnail_path(candidate.get(key))
                if path:
                    return path

        stem = Path(song_file).stem.lower()
        for thumbnail in thumbnail_files:
            if Path(thumbnail).stem.lower() == stem:
                return media_path("thumbnails", thumbnail)

        if self.thumbnail_fallback_index and thumbnail_files:
            return media_path("thumbnails", thumbnail_files[index % len(thumbnail_files)])

        return None


song_catalog = SongCatalog(
    settings.media_path,
    thumbnail_fallback_index=settings.song_thumbnail_fallback_index,
)
