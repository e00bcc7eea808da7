"""Preference JSON API routes."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_preference_store
from ..errors import NotFoundError, ValidationError
from .schemas import PreferenceCreateRequest, PreferenceResponse, PreferenceUpdateRequest
from .store import PreferenceStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.post("")
def create_preferences(
    payload: PreferenceCreateRequest,
    store: PreferenceStore = Depends(get_preference_store),
):
    record = store.create(payload.to_record())
    logger.info("Preferences created for user %s", record.user_id)
    return JSONResponse(PreferenceResponse.from_record(record).to_json(), status_code=201)


@router.get("/{user_id}")
def get_preferences(
    user_id: str,
    store: PreferenceStore = Depends(get_preference_store),
):
    record = store.get(user_id)
    if record is None:
        raise NotFoundError(f"No preferences found for user {user_id}")
    return JSONResponse(PreferenceResponse.from_record(record).to_json())


@router.patch("/{user_id}")
def update_preferences(
    user_id: str,
    payload: PreferenceUpdateRequest,
    store: PreferenceStore = Depends(get_preference_store),
):
    changes = payload.to_changes()
    if not changes:
        raise ValidationError("No fields to update")
    record = store.update(user_id, changes)
    logger.info("Preferences updated for user %s: %s", user_id, ", ".join(sorted(changes)))
    return JSONResponse(PreferenceResponse.from_record(record).to_json())


@router.delete("/{user_id}")
def delete_preferences(
    user_id: str,
    store: PreferenceStore = Depends(get_preference_store),
):
    # Idempotent: deleting an absent record is a successful no-op
    deleted = store.delete(user_id)
    if deleted:
        logger.info("Preferences deleted for user %s", user_id)
    return JSONResponse(
        {
            "ok": True,
            "deleted": deleted,
            "message": "Preferences deleted" if deleted else "No preferences on file",
        }
    )
