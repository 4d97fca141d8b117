"""SQLAlchemy model for stored authorized clients."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from oauthcore.db.base import BaseEntity


class AuthorizedClientEntity(BaseEntity):
    """Access/refresh tokens held for a principal at one provider."""

    __tablename__ = "authorized_clients"
    __table_args__ = (
        UniqueConstraint(
            "principal_name", "registration_id", name="uq_authorized_client_key"
        ),
    )

    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    principal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    registration_id: Mapped[str] = mapped_column(String(100), nullable=False)

    access_token_value: Mapped[str] = mapped_column(Text, nullable=False)
    access_token_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Bearer"
    )
    access_token_scopes: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    access_token_issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    access_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    refresh_token_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token_issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    id_token_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
