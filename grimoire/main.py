"""
Grimoire - Main FastAPI Application
Character-sheet reference data and campaign notes served through the cache layer
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel

from grimoire import db
from grimoire.cache import CacheRegistry, MemoryStorage, ReferenceDataError, SqlStorage
from grimoire.crud import DataAccess
from grimoire.schemas import CampaignNotesResponse, RaceNameResponse, RaceNamesResponse
from config.settings import Settings, settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.3.0"
APP_NAME = "Grimoire"


class CharacterClassRef(BaseModel):
    class_id: str
    level: int = 1
    subclass: Optional[str] = None


class CharacterRef(BaseModel):
    classes: list[CharacterClassRef] = []


class PreloadRequestBody(BaseModel):
    characters: list[CharacterRef]


def get_caches(request: Request) -> CacheRegistry:
    """Cache registry built at startup - use in FastAPI dependencies"""
    return request.app.state.caches


def get_data_access(request: Request) -> DataAccess:
    return request.app.state.data_access


def create_app(app_settings: Settings = settings, engine=None) -> FastAPI:
    """
    Build the application.

    Args:
        app_settings: Settings to build the caches from
        engine: SQLAlchemy engine; defaults to one for app_settings.database_url
    """
    bind = engine if engine is not None else db.make_engine(app_settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db.init_db(bind)
        session_factory = db.make_session_factory(bind)
        if app_settings.cache_storage_backend == "sql":
            storage = SqlStorage(session_factory)
        else:
            storage = MemoryStorage()

        data_access = DataAccess(session_factory)
        caches = CacheRegistry.from_settings(app_settings, data_access, storage)
        app.state.data_access = data_access
        app.state.caches = caches

        # Warm the race names map; a failure only means the first request loads it
        try:
            await caches.races.ensure_loaded()
        except ReferenceDataError as e:
            logger.warning(f"Race names not preloaded: {e}")

        yield

        await caches.close()

    app = FastAPI(
        title=APP_NAME,
        description="D&D 5e character sheet reference data and campaign notes",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/version")
    def version_info():
        """Version information endpoint."""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "full": f"{APP_NAME} {APP_VERSION}"
        }

    # ===== CACHE =====

    @app.get("/cache/stats")
    def cache_stats(caches: CacheRegistry = Depends(get_caches)):
        """Get cache statistics."""
        return caches.get_stats()

    @app.post("/cache/clear")
    def clear_cache(caches: CacheRegistry = Depends(get_caches)):
        """Bust every cache, including persisted snapshots."""
        caches.clear()
        return {"status": "cleared"}

    # ===== RACE NAMES =====

    @app.get("/races/names", response_model=RaceNamesResponse)
    async def race_names(caches: CacheRegistry = Depends(get_caches)):
        """All race names keyed by race id."""
        try:
            await caches.races.ensure_loaded()
        except ReferenceDataError as e:
            raise HTTPException(status_code=502, detail=str(e))
        mapping = caches.races.get() or {}
        return {"count": len(mapping), "races": dict(mapping)}

    @app.get("/races/names/{race_id}", response_model=RaceNameResponse)
    async def race_name(race_id: str, caches: CacheRegistry = Depends(get_caches)):
        """Name of a single race."""
        try:
            await caches.races.ensure_loaded()
        except ReferenceDataError as e:
            raise HTTPException(status_code=502, detail=str(e))
        name = caches.races.get_name(race_id)
        if name is None:
            raise HTTPException(status_code=404, detail="Race not found")
        return {"id": race_id, "name": name}

    @app.post("/races/cache/invalidate")
    def invalidate_race_names(caches: CacheRegistry = Depends(get_caches)):
        caches.races.invalidate()
        return {"status": "invalidated"}

    # ===== WIKI =====

    @app.get("/wiki/classes")
    async def wiki_classes(
        caches: CacheRegistry = Depends(get_caches),
        data_access: DataAccess = Depends(get_data_access),
    ):
        """Classes and subclasses for the wiki."""
        cached = caches.wiki.get_classes()
        if cached is not None:
            return {"classes": cached, "from_cache": True}
        classes = _require(await data_access.load_all_classes(), "classes")
        caches.wiki.set_classes(classes)
        return {"classes": classes, "from_cache": False}

    @app.get("/wiki/races")
    async def wiki_races(
        caches: CacheRegistry = Depends(get_caches),
        data_access: DataAccess = Depends(get_data_access),
    ):
        """Races for the wiki. A fresh load also refreshes the race names map."""
        cached = caches.wiki.get_races()
        if cached is not None:
            return {"races": cached, "from_cache": True}
        races = _require(await data_access.load_all_races(), "races")
        caches.wiki.set_races(races)
        caches.races.set_from_list(races)
        return {"races": races, "from_cache": False}

    @app.get("/wiki/backgrounds")
    async def wiki_backgrounds(
        caches: CacheRegistry = Depends(get_caches),
        data_access: DataAccess = Depends(get_data_access),
    ):
        cached = caches.wiki.get_backgrounds()
        if cached is not None:
            return {"backgrounds": cached, "from_cache": True}
        backgrounds = _require(await data_access.load_all_backgrounds(), "backgrounds")
        caches.wiki.set_backgrounds(backgrounds)
        return {"backgrounds": backgrounds, "from_cache": False}

    @app.get("/wiki/classes/{base_class_id}/features")
    async def wiki_class_features(
        base_class_id: str,
        caches: CacheRegistry = Depends(get_caches),
        data_access: DataAccess = Depends(get_data_access),
    ):
        """Every feature of a base class and its subclasses."""
        cached = caches.wiki.get_class_features(base_class_id)
        if cached is not None:
            return {"features": cached, "from_cache": True}
        features = _require(await data_access.load_features_for_base_class(base_class_id), "features")
        caches.wiki.set_class_features(base_class_id, features)
        return {"features": features, "from_cache": False}

    @app.post("/wiki/cache/clear")
    def clear_wiki_cache(caches: CacheRegistry = Depends(get_caches)):
        caches.wiki.clear()
        return {"status": "cleared"}

    # ===== CHARACTER CLASS FEATURES =====

    @app.get("/classes/{class_id}/features")
    async def class_features(
        class_id: str,
        level: int = Query(..., ge=1, le=20, description="Character level in this class"),
        subclass: Optional[str] = Query(None, description="Subclass name"),
        caches: CacheRegistry = Depends(get_caches),
        data_access: DataAccess = Depends(get_data_access),
    ):
        """Features unlocked by a class at a level."""
        cached = caches.class_features.get(class_id, level, subclass)
        if cached is not None:
            return {"features": cached, "from_cache": True}
        features = _require(await data_access.load_class_features(class_id, level, subclass), "features")
        caches.class_features.set(class_id, level, features, subclass)
        return {"features": features, "from_cache": False}

    @app.post("/classes/features/preload")
    async def preload_class_features(
        body: PreloadRequestBody,
        caches: CacheRegistry = Depends(get_caches),
    ):
        """Warm the class features cache for a set of characters."""
        await caches.class_features.preload_for_characters(
            [character.model_dump() for character in body.characters]
        )
        return {"cached": caches.class_features.get_stats()["size"]}

    # ===== CAMPAIGN NOTES =====

    @app.get("/campaigns/{campaign_id}/notes", response_model=CampaignNotesResponse)
    async def campaign_notes(
        campaign_id: str,
        background_tasks: BackgroundTasks,
        force_refresh: bool = Query(False, description="Bypass cache"),
        caches: CacheRegistry = Depends(get_caches),
    ):
        """
        Campaign notes, served from cache when available.

        Stale notes are returned immediately and refreshed after the response.
        """
        service = caches.campaign_notes
        result = await service.fetch_all_campaign_notes_with_cache(campaign_id, force_refresh)
        if result.error:
            raise HTTPException(status_code=502, detail=result.error)
        if result.is_stale and not force_refresh:
            background_tasks.add_task(service.refresh_stale_campaign_notes, campaign_id)
        return {
            "campaign_id": campaign_id,
            "notes": result.notes,
            "from_cache": result.from_cache,
            "is_stale": result.is_stale,
        }

    @app.post("/campaigns/{campaign_id}/notes/invalidate")
    def invalidate_campaign_notes(campaign_id: str, caches: CacheRegistry = Depends(get_caches)):
        caches.campaign_notes.invalidate_campaign_notes_cache_entry(campaign_id)
        return {"status": "invalidated"}


def _require(result: Dict[str, Any], name: str) -> list:
    """Unwrap a data-access result or fail the request with 502."""
    if result.get("error"):
        raise HTTPException(status_code=502, detail=f"Failed to load {name}")
    return result.get(name) or []


app = create_app()
