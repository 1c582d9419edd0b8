"""API endpoints for application settings and scan sources."""

import json
import uuid
from dataclasses import asdict
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import DataSource, SourceConfig, settings
from ..database import get_db, get_session_maker
from ..models import AppSettings, ScanSource
from ..services.backends import BackendError, ListingEntry, get_backend
from ..services.ratings import RatingsStore

router = APIRouter(prefix="/api", tags=["settings"])


class SettingsUpdate(BaseModel):
    """Request model for updating settings."""

    tmdb_api_key: Optional[str] = None


class SourceCreate(BaseModel):
    """Request model for adding a scan source."""

    name: str
    type: Literal["local", "webdav", "smb"]
    config: SourceConfig = SourceConfig()
    paths: list[str] = ["/"]


class SourceBrowse(BaseModel):
    """Connection details of a source that may not be saved yet."""

    type: Literal["local", "webdav", "smb"]
    config: SourceConfig = SourceConfig()
    path: str = "/"


def get_setting(db: Session, key: str, default: str = "") -> str:
    """Get a setting value from the database."""
    setting = db.query(AppSettings).filter(AppSettings.key == key).first()
    return setting.value if setting else default


def set_setting(db: Session, key: str, value: str) -> None:
    """Set a setting value in the database."""
    setting = db.query(AppSettings).filter(AppSettings.key == key).first()
    if setting:
        setting.value = value
    else:
        setting = AppSettings(key=key, value=value)
        db.add(setting)
    db.commit()


def get_tmdb_api_key(db: Session) -> str:
    """The stored key wins over the environment."""
    return get_setting(db, "tmdb_api_key") or settings.tmdb_api_key


@router.get("/settings")
async def get_settings(db: Session = Depends(get_db)):
    """Get current settings."""
    api_key = get_tmdb_api_key(db)
    return {
        "tmdb_api_key": "***" if api_key else "",
        "tmdb_api_key_set": bool(api_key),
        "ratings": RatingsStore(get_session_maker()).status(),
    }


@router.put("/settings")
async def update_settings(data: SettingsUpdate, db: Session = Depends(get_db)):
    """Update settings."""
    if data.tmdb_api_key is not None:
        set_setting(db, "tmdb_api_key", data.tmdb_api_key.strip())
    return {"message": "Settings updated"}


@router.get("/sources")
async def list_sources(db: Session = Depends(get_db)):
    """List all configured scan sources."""
    sources = db.query(ScanSource).order_by(ScanSource.created_at).all()
    return [s.to_dict() for s in sources]


@router.post("/sources")
async def create_source(data: SourceCreate, db: Session = Depends(get_db)):
    """Add a scan source."""
    if data.type == "local" and not data.config.path:
        raise HTTPException(status_code=400, detail="Local sources need a path")
    if data.type == "webdav" and not data.config.url:
        raise HTTPException(status_code=400, detail="WebDAV sources need a URL")
    if data.type == "smb" and not data.config.share:
        raise HTTPException(status_code=400, detail="SMB sources need a share")
    if not data.paths:
        raise HTTPException(status_code=400, detail="At least one path is required")

    source = ScanSource(
        id=uuid.uuid4().hex[:12],
        name=data.name,
        source_type=data.type,
        url=data.config.url,
        path=data.config.path,
        share=data.config.share,
        username=data.config.username,
        password=data.config.password,
        domain=data.config.domain,
        paths=json.dumps(data.paths),
    )
    db.add(source)
    db.commit()
    db.refresh(source)
    return source.to_dict()


@router.delete("/sources/{source_id}")
async def delete_source(source_id: str, db: Session = Depends(get_db)):
    """Remove a scan source. Its files disappear from the library on the next scan."""
    source = db.query(ScanSource).filter(ScanSource.id == source_id).first()
    if not source:
        raise HTTPException(status_code=404, detail="Source not found")
    db.delete(source)
    db.commit()
    return {"message": "Source deleted"}


@router.put("/sources/{source_id}/toggle")
async def toggle_source(source_id: str, db: Session = Depends(get_db)):
    """Enable or disable a scan source."""
    source = db.query(ScanSource).filter(ScanSource.id == source_id).first()
    if not source:
        raise HTTPException(status_code=404, detail="Source not found")
    source.enabled = not source.enabled
    db.commit()
    return source.to_dict()


async def _list_directory(data: SourceBrowse) -> list[ListingEntry]:
    backend = None
    try:
        backend = get_backend(DataSource(id="unsaved", type=data.type, name="unsaved", config=data.config))
        return await backend.list(data.path)
    except BackendError as e:
        raise HTTPException(status_code=400, detail=str(e))
    finally:
        close = getattr(backend, "close", None)
        if close is not None:
            await close()


@router.post("/sources/test")
async def check_source(data: SourceBrowse):
    """Check that a source is reachable by listing its root."""
    entries = await _list_directory(data.model_copy(update={"path": "/"}))
    return {"ok": True, "entries": len(entries)}


@router.post("/sources/browse")
async def browse_source(data: SourceBrowse):
    """List one directory of a source, folders first."""
    entries = await _list_directory(data)
    entries.sort(key=lambda e: (not e.is_dir, e.name.lower()))
    return {"path": data.path, "entries": [asdict(e) for e in entries]}
