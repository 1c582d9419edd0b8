"""Settings and configuration models."""

import json
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class ScanSource(Base):
    """A configured backend (local, WebDAV or SMB) and the paths to scan on it."""

    __tablename__ = "scan_sources"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # Type values: local, webdav, smb

    url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    share: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    paths: Mapped[str] = mapped_column(Text, default="[]", nullable=False)  # JSON array
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<ScanSource(id='{self.id}', name='{self.name}', type='{self.source_type}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.source_type,
            "config": {
                "url": self.url,
                "path": self.path,
                "share": self.share,
                "username": self.username,
                "password": "***" if self.password else None,
                "domain": self.domain,
            },
            "paths": json.loads(self.paths) if self.paths else [],
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AppSettings(Base):
    """Application settings stored in database."""

    __tablename__ = "app_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AppSettings(key='{self.key}')>"
