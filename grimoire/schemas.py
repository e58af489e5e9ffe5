"""
Pydantic schemas for API request/response models
Also used to turn ORM rows into plain, JSON-safe records for the caches
"""
from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime


# ===== REFERENCE DATA SCHEMAS =====

class RaceRecord(BaseModel):
    """Race as served by the wiki"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    size: Optional[str] = None
    speed: Optional[int] = None


class ClassRecord(BaseModel):
    """Base class or subclass"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    subclass: Optional[str] = None
    description: Optional[str] = None
    hit_die: Optional[int] = None


class BackgroundRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None


class FeatureRecord(BaseModel):
    """Class feature unlocked at a level"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    class_id: str
    level: int
    title: str
    description: Optional[str] = None
    feature_type: str = "class"
    subclass: Optional[str] = None


# ===== CAMPAIGN SCHEMAS =====

class NoteRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    campaign_id: str
    title: str
    content: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CampaignNotesResponse(BaseModel):
    """Campaign notes with cache classification"""
    campaign_id: str
    notes: List[Dict[str, Any]]
    from_cache: bool
    is_stale: bool


# ===== CACHE SCHEMAS =====

class RaceNamesResponse(BaseModel):
    count: int
    races: Dict[str, str]


class RaceNameResponse(BaseModel):
    id: str
    name: str
