"""Dashboard folders for organizing a user's galleries."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def _clean_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Folder name can't be empty", field="name")
    if len(name) > 255:
        raise ValidationError("Folder name is too long", field="name")
    return name


def get_folder(db: Session, folder_id: int, user_id: str) -> models.Folder:
    folder = db.get(models.Folder, folder_id)
    if folder is None or folder.owner_user_id != user_id:
        raise NotFound("Folder not found")
    return folder


def list_folders(db: Session, user_id: str) -> list[tuple[models.Folder, int]]:
    """Folders with the number of live galleries in each."""
    counts = (
        db.query(models.Gallery.folder_id, func.count(models.Gallery.id))
        .filter(models.Gallery.owner_user_id == user_id, models.Gallery.deleted_at.is_(None))
        .group_by(models.Gallery.folder_id)
        .all()
    )
    by_folder = dict(counts)
    folders = (
        db.query(models.Folder)
        .filter(models.Folder.owner_user_id == user_id)
        .order_by(models.Folder.name)
        .all()
    )
    return [(folder, by_folder.get(folder.id, 0)) for folder in folders]


def create_folder(db: Session, user_id: str, name: str) -> models.Folder:
    folder = models.Folder(owner_user_id=user_id, name=_clean_name(name))
    db.add(folder)
    db.commit()
    db.refresh(folder)
    logger.info(f"Created folder {folder.id} for {user_id}")
    return folder


def rename_folder(db: Session, folder: models.Folder, name: str) -> models.Folder:
    folder.name = _clean_name(name)
    db.commit()
    return folder


def delete_folder(db: Session, folder: models.Folder) -> None:
    """Delete a folder; its galleries move back to the dashboard root."""
    folder_id = folder.id
    db.query(models.Gallery).filter(models.Gallery.folder_id == folder.id).update(
        {models.Gallery.folder_id: None}, synchronize_session=False
    )
    db.delete(folder)
    db.commit()
    logger.info(f"Deleted folder {folder_id}")
