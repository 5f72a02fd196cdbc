"""Song catalog endpoints."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from frishta.api.deps import AuthContext, PublicBaseUrl, SongCatalogDep
from frishta.constants import MUSIC_CATEGORIES
from frishta.services.catalog import Song

logger = logging.getLogger(__name__)

router = APIRouter()


class SongListResponse(BaseModel):
    songs: list[Song]


class CategoryListResponse(BaseModel):
    categories: list[str]


@router.get("", response_model=SongListResponse)
async def list_songs(_auth: AuthContext, catalog: SongCatalogDep, base_url: PublicBaseUrl):
    """List every song in the media directory."""
    songs = await catalog.list_songs(base_url)
    return SongListResponse(songs=songs)


@router.get("/categories", response_model=CategoryListResponse)
async def list_categories(_auth: AuthContext):
    """List the canonical music categories."""
    return CategoryListResponse(categories=list(MUSIC_CATEGORIES))
