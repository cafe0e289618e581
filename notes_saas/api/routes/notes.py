"""
api/routes/notes.py
-------------------
Note endpoints, scoped to the caller's tenant.

POST   /notes        Create a note (canCreateNotes, subject to plan quota).
GET    /notes        List live notes (members: own notes; admins: all,
                      optionally filtered by userId).
GET    /notes/{id}   Fetch one note.
PUT    /notes/{id}   Edit title and/or content (canEditNotes; members: own only).
DELETE /notes/{id}   Soft-delete a note (canDeleteNotes; members: own only).
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from notes_saas.core.principal import Principal
from notes_saas.dependencies import CurrentPrincipal, StoreDep, require_permission
from notes_saas.models.user import Permission
from notes_saas.schemas.auth import MessageResponse
from notes_saas.schemas.note import NoteCreate, NoteListResponse, NoteUpdate, NoteView
from notes_saas.services.note_service import NoteService

router = APIRouter(prefix="/notes", tags=["Notes"])


@router.post(
    "",
    response_model=NoteView,
    status_code=status.HTTP_201_CREATED,
    summary="Create a note",
)
async def create_note(
    body: NoteCreate,
    store: StoreDep,
    principal: Annotated[Principal, Depends(require_permission(Permission.create_notes))],
) -> NoteView:
    """
    Fails with NOTE_LIMIT_REACHED (403) once the tenant has used its plan's
    note allowance, or while the tenant or its subscription is inactive.
    """
    note = await NoteService.create_note(store, principal, body.title, body.content)
    return NoteView.model_validate(note)


@router.get(
    "",
    response_model=NoteListResponse,
    summary="List notes",
)
async def list_notes(
    principal: CurrentPrincipal,
    store: StoreDep,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: Optional[str] = Query(default=None, alias="userId"),
) -> NoteListResponse:
    total, notes = await NoteService.list_notes(
        store, principal, skip=skip, limit=limit, user_id=user_id
    )
    return NoteListResponse(
        notes=[NoteView.model_validate(n) for n in notes],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{note_id}",
    response_model=NoteView,
    summary="Get a note",
)
async def get_note(note_id: str, principal: CurrentPrincipal, store: StoreDep) -> NoteView:
    note = await NoteService.get_note(store, principal, note_id)
    return NoteView.model_validate(note)


@router.put(
    "/{note_id}",
    response_model=NoteView,
    summary="Edit a note",
)
async def update_note(
    note_id: str,
    body: NoteUpdate,
    store: StoreDep,
    principal: Annotated[Principal, Depends(require_permission(Permission.edit_notes))],
) -> NoteView:
    note = await NoteService.update_note(store, principal, note_id, body.changes())
    return NoteView.model_validate(note)


@router.delete(
    "/{note_id}",
    response_model=MessageResponse,
    summary="Soft-delete a note",
)
async def delete_note(
    note_id: str,
    store: StoreDep,
    principal: Annotated[Principal, Depends(require_permission(Permission.delete_notes))],
) -> MessageResponse:
    await NoteService.delete_note(store, principal, note_id)
    return MessageResponse(message="Note deleted successfully")
