"""
Users API endpoints: the platform's customers, as seen by admins
"""

import logging
from functools import partial
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from tour_admin.api.listing import ListParams, get_or_404, load_page
from tour_admin.api.schemas import PageResponse, User, parse_document
from tour_admin.core.context import get_settings, get_store
from tour_admin.core.pagination import ListSource
from tour_admin.core.security import get_current_admin
from tour_admin.core.settings import Settings
from tour_admin.db.crud import DocumentStore
from tour_admin.db.models import Collection, UserRole

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", dependencies=[Depends(get_current_admin)])

USERS = Collection.USERS.value

user_source = ListSource(
    collection=USERS,
    parse=partial(parse_document, User),
    search_text=lambda user: (user.name, user.email),
)


@router.get("", response_model=PageResponse[User])
async def list_users_endpoint(
    params: ListParams = Depends(),
    role: Optional[UserRole] = None,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Page through users, newest first by default"""
    return await load_page(store, user_source, params, settings, {"role": role})


@router.get("/{user_id}", response_model=User)
async def get_user_endpoint(user_id: str, store: DocumentStore = Depends(get_store)):
    """Get user by ID"""
    return await get_or_404(store, USERS, user_id, User)


@router.delete("/{user_id}")
async def delete_user_endpoint(user_id: str, store: DocumentStore = Depends(get_store)):
    """Hard delete user; their bookings and reviews are left in place"""
    try:
        deleted = await store.delete(USERS, user_id)
        if not deleted:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )

        logger.info(f"Deleted user: {user_id}")
        return {"message": "User deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete user"
        )
