"""Folder endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import CurrentUser, get_current_user
from ..deps import get_db
from ..services import folders as folder_service

router = APIRouter(prefix="/folders", tags=["Folders"])


@router.get("", response_model=list[schemas.FolderOut])
def list_folders(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[schemas.FolderOut]:
    return [
        schemas.FolderOut(id=folder.id, name=folder.name, created_at=folder.created_at, gallery_count=count)
        for folder, count in folder_service.list_folders(db, current_user.id)
    ]


@router.post("", response_model=schemas.FolderOut, status_code=status.HTTP_201_CREATED)
def create_folder(
    payload: schemas.FolderCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.FolderOut:
    return schemas.FolderOut.model_validate(folder_service.create_folder(db, current_user.id, payload.name))


@router.patch("/{folder_id}", response_model=schemas.FolderOut)
def rename_folder(
    folder_id: int,
    payload: schemas.FolderCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> schemas.FolderOut:
    folder = folder_service.get_folder(db, folder_id, current_user.id)
    return schemas.FolderOut.model_validate(folder_service.rename_folder(db, folder, payload.name))


@router.delete("/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    """Delete a folder; its galleries return to the dashboard root."""
    folder = folder_service.get_folder(db, folder_id, current_user.id)
    folder_service.delete_folder(db, folder)
