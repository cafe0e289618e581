"""
services/note_service.py
------------------------
Note creation, listing, lookup, editing and soft-delete.

Every store call takes a filter built by Principal.scope(), so the tenant
always comes from the token and never from the client. Members only see,
edit and delete their own notes. Admins see the whole tenant.
"""

from typing import Any, Dict, Optional, Tuple

from notes_saas.core.errors import NoteNotFoundError, TenantNotFoundError
from notes_saas.core.logging import get_logger
from notes_saas.core.principal import Principal
from notes_saas.db.store import CredentialStore
from notes_saas.models.note import Note
from notes_saas.services.quota_service import QuotaService, note_limit_error

logger = get_logger(__name__)


def note_scope(principal: Principal, requested_owner: Optional[str] = None) -> Dict[str, Any]:
    owner = requested_owner if principal.is_admin else principal.user_id
    return principal.scope({"user_id": owner} if owner else None)


class NoteService:

    @staticmethod
    async def create_note(
        store: CredentialStore, principal: Principal, title: str, content: str
    ) -> Note:
        """
        Create a note if the tenant has a free slot.

        Raises QuotaExceededError when the tenant is over its limit, inactive
        or without an active subscription.
        """
        tenant = await store.find_tenant_by_id(principal.tenant_id)
        if tenant is None:
            raise TenantNotFoundError()
        QuotaService.ensure_can_create_note(tenant)

        note = Note.new(title, content, **principal.scope({"user_id": principal.user_id}))
        if not await store.create_note(note):
            # Lost the last slot to a concurrent request
            tenant = await store.find_tenant_by_id(principal.tenant_id) or tenant
            logger.info(
                "Note creation refused at commit",
                tenant_id=principal.tenant_id,
                current_count=tenant.current_note_count,
                limit=tenant.note_limit,
            )
            raise note_limit_error(tenant)

        logger.info("Note created", note_id=note.id, tenant_id=note.tenant_id)
        return note

    @staticmethod
    async def list_notes(
        store: CredentialStore,
        principal: Principal,
        skip: int = 0,
        limit: int = 20,
        user_id: Optional[str] = None,
    ) -> Tuple[int, list[Note]]:
        return await store.list_notes(note_scope(principal, user_id), skip=skip, limit=limit)

    @staticmethod
    async def get_note(store: CredentialStore, principal: Principal, note_id: str) -> Note:
        note = await store.find_note(note_id, note_scope(principal))
        if note is None:
            raise NoteNotFoundError()
        return note

    @staticmethod
    async def update_note(
        store: CredentialStore, principal: Principal, note_id: str, changes: Dict[str, Any]
    ) -> Note:
        """Edit title and/or content. Another user's note reads as not found for members."""
        note = await store.update_note(note_id, note_scope(principal), changes)
        if note is None:
            raise NoteNotFoundError()
        logger.info(
            "Note updated",
            note_id=note_id,
            tenant_id=principal.tenant_id,
            fields=sorted(changes),
        )
        return note

    @staticmethod
    async def delete_note(store: CredentialStore, principal: Principal, note_id: str) -> None:
        deleted = await store.soft_delete_note(
            note_id, note_scope(principal), deleted_by=principal.user_id
        )
        if not deleted:
            raise NoteNotFoundError()
        logger.info("Note deleted", note_id=note_id, tenant_id=principal.tenant_id)
