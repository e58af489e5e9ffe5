"""
Database models for Grimoire
SQLAlchemy ORM models for reference data, campaign notes and cache snapshots
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Race(Base):
    """
    Race entity - playable races (e.g., Elf, Dwarf)
    Referenced by characters through their id
    """
    __tablename__ = "races"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    size = Column(String, nullable=True)
    speed = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<Race(id='{self.id}', name='{self.name}')>"


class CharacterClass(Base):
    """
    Class entity - base classes and their subclasses
    A base class row has subclass = NULL; subclass rows share its name
    """
    __tablename__ = "classes"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False, index=True)
    subclass = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    hit_die = Column(Integer, nullable=True)

    # Relationships
    features = relationship("ClassFeature", back_populates="character_class")

    def __repr__(self):
        return f"<CharacterClass(id='{self.id}', name='{self.name}', subclass={self.subclass!r})>"


class Background(Base):
    """
    Background entity - character backgrounds (e.g., Acolyte, Sage)
    """
    __tablename__ = "backgrounds"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Background(id='{self.id}', name='{self.name}')>"


class ClassFeature(Base):
    """
    Class feature entity - features unlocked at a given class level
    Subclass-specific features carry the subclass name
    """
    __tablename__ = "class_features"

    id = Column(String, primary_key=True, default=_new_id)
    class_id = Column(String, ForeignKey("classes.id"), nullable=False, index=True)
    level = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    feature_type = Column(String, nullable=False, default="class")
    subclass = Column(String, nullable=True)

    # Relationships
    character_class = relationship("CharacterClass", back_populates="features")

    def __repr__(self):
        return f"<ClassFeature(class_id='{self.class_id}', level={self.level}, title='{self.title}')>"


class Campaign(Base):
    """
    Campaign entity - a group of characters playing together
    """
    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    notes = relationship("CampaignNote", back_populates="campaign")

    def __repr__(self):
        return f"<Campaign(id='{self.id}', name='{self.name}')>"


class CampaignNote(Base):
    """
    Campaign note entity - session notes written by players or the DM
    """
    __tablename__ = "campaign_notes"

    id = Column(String, primary_key=True, default=_new_id)
    campaign_id = Column(String, ForeignKey("campaigns.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    campaign = relationship("Campaign", back_populates="notes")

    def __repr__(self):
        return f"<CampaignNote(id='{self.id}', campaign_id='{self.campaign_id}', title='{self.title}')>"


class StorageRecord(Base):
    """
    Durable key-value record backing persisted cache snapshots
    One record per storage key, value is the serialized snapshot
    """
    __tablename__ = "cache_storage"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<StorageRecord(key='{self.key}')>"
