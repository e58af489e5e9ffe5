"""
CRUD operations (Create, Read, Update, Delete)
Database query functions for reference data and campaign notes, plus the
async data-access calls the caches load through
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from grimoire.models import Race, CharacterClass, Background, ClassFeature, CampaignNote
from grimoire.schemas import RaceRecord, ClassRecord, BackgroundRecord, FeatureRecord, NoteRecord

logger = logging.getLogger("crud")


# ===== RACES =====

def get_races(db: Session) -> List[Race]:
    """
    Get all races ordered by name
    """
    return db.query(Race).order_by(Race.name).all()


# ===== CLASSES =====

def get_classes(db: Session) -> List[CharacterClass]:
    """
    Get all classes and subclasses, base classes first within each name
    """
    return (
        db.query(CharacterClass)
        .order_by(CharacterClass.name, CharacterClass.subclass.isnot(None), CharacterClass.subclass)
        .all()
    )


def get_class_by_id(db: Session, class_id: str) -> Optional[CharacterClass]:
    return db.query(CharacterClass).filter(CharacterClass.id == class_id).first()


# ===== BACKGROUNDS =====

def get_backgrounds(db: Session) -> List[Background]:
    return db.query(Background).order_by(Background.name).all()


# ===== CLASS FEATURES =====

def get_class_features(
    db: Session,
    class_id: str,
    level: int,
    subclass: Optional[str] = None
) -> List[ClassFeature]:
    """
    Get features a class has unlocked up to level
    - subclass: include that subclass's features alongside the base ones
    """
    query = db.query(ClassFeature).filter(
        ClassFeature.class_id == class_id,
        ClassFeature.level <= level,
    )
    if subclass:
        query = query.filter(or_(ClassFeature.subclass.is_(None), ClassFeature.subclass == subclass))
    else:
        query = query.filter(ClassFeature.subclass.is_(None))
    return query.order_by(ClassFeature.level, ClassFeature.title).all()


def get_features_for_base_class(db: Session, base_class_id: str) -> List[ClassFeature]:
    """
    Get every feature of a base class and all of its subclasses
    Returns an empty list for an unknown class id
    """
    base_class = get_class_by_id(db, base_class_id)
    if base_class is None:
        return []
    class_ids = [
        row.id for row in
        db.query(CharacterClass.id).filter(CharacterClass.name == base_class.name).all()
    ]
    return (
        db.query(ClassFeature)
        .filter(ClassFeature.class_id.in_(class_ids))
        .order_by(ClassFeature.level, ClassFeature.title)
        .all()
    )


# ===== CAMPAIGN NOTES =====

def get_notes_for_campaign(db: Session, campaign_id: str) -> List[CampaignNote]:
    """
    Get notes for a campaign, newest first
    """
    return (
        db.query(CampaignNote)
        .filter(CampaignNote.campaign_id == campaign_id)
        .order_by(CampaignNote.created_at.desc())
        .all()
    )


# ===== ASYNC DATA ACCESS =====

class DataAccess:
    """
    Async data-access calls used by the caches.

    Every call returns {"<name>": [...], "error": None} on success and
    {"<name>": [], "error": "..."} on a database error, so callers decide
    whether a failure is fatal. Queries run in a worker thread with their
    own session.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def _run(self, name: str, query: Callable[[Session], List[Any]], schema) -> Dict[str, Any]:
        def work() -> List[Dict[str, Any]]:
            db = self._session_factory()
            try:
                return [schema.model_validate(row).model_dump(mode="json") for row in query(db)]
            finally:
                db.close()

        try:
            records = await asyncio.to_thread(work)
        except SQLAlchemyError as e:
            logger.error(f"Error loading {name}: {e}")
            return {name: [], "error": str(e)}
        return {name: records, "error": None}

    async def load_all_races(self) -> Dict[str, Any]:
        return await self._run("races", get_races, RaceRecord)

    async def load_all_classes(self) -> Dict[str, Any]:
        return await self._run("classes", get_classes, ClassRecord)

    async def load_all_backgrounds(self) -> Dict[str, Any]:
        return await self._run("backgrounds", get_backgrounds, BackgroundRecord)

    async def load_class_features(
        self,
        class_id: str,
        level: int,
        subclass: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._run(
            "features",
            lambda db: get_class_features(db, class_id, level, subclass),
            FeatureRecord,
        )

    async def load_features_for_base_class(self, base_class_id: str) -> Dict[str, Any]:
        return await self._run(
            "features",
            lambda db: get_features_for_base_class(db, base_class_id),
            FeatureRecord,
        )

    async def get_campaign_notes(self, campaign_id: str) -> Dict[str, Any]:
        return await self._run(
            "notes",
            lambda db: get_notes_for_campaign(db, campaign_id),
            NoteRecord,
        )
