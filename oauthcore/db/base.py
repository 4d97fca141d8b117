"""Declarative base for oauthcore SQLAlchemy models."""

from sqlalchemy.orm import DeclarativeBase


class BaseEntity(DeclarativeBase):
    """Base class for all oauthcore database entities."""
