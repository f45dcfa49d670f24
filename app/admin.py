"""Administrative operations over all users and contacts.

Every route in this module requires the ``admin`` role.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import require_admin
from .contacts import MAX_PAGE_SIZE, build_page
from .database import get_db
from .errors import NotFoundError, ValidationError
from .models import Contact, User, UserRole
from .permissions import Identity
from .responses import wrap
from .schemas import SortBy, SortOrder
from .storage import discard_photo, get_photo_storage

logger = logging.getLogger("contacts_api.admin")

router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)

USER_NOT_FOUND = "User not found"
CONTACT_NOT_FOUND = "Contact not found"


def _check_paging(page: int, limit: int) -> None:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")


def annotate_contact(contact: Contact) -> schemas.AdminContactOut:
    """Attach the owner's email and display name (email local part)."""
    out = schemas.AdminContactOut.model_validate(contact)
    owner_email = contact.owner.email if contact.owner is not None else None
    out.owner_email = owner_email
    out.owner_name = owner_email.split("@")[0] if owner_email else None
    return out


def list_users(
    db: Session, page: int = 1, limit: int = 10, search: str | None = None
) -> dict:
    """Page through users, newest first, optionally filtered by email."""
    _check_paging(page, limit)
    users, total = crud.list_users(
        db, skip=(page - 1) * limit, limit=limit, search=search or None
    )
    items = [schemas.UserOut.model_validate(user) for user in users]
    return build_page(items, total, page, limit)


def get_user(db: Session, user_id: str) -> User:
    user = crud.get_user_by_id(db, user_id)
    if user is None:
        logger.info("User not found: %s", user_id)
        raise NotFoundError(USER_NOT_FOUND)
    return user


def delete_user(db: Session, user_id: str, storage=None) -> None:
    """
    Delete a user together with every contact they own.

    Photos of the removed contacts are discarded after the commit.
    """
    user = get_user(db, user_id)
    photos = [contact.photo for contact in user.contacts if contact.photo]
    contact_count = len(user.contacts)
    crud.delete_user(db, user)
    if photos:
        storage = storage or get_photo_storage()
        for reference in photos:
            discard_photo(storage, reference)
    logger.info("Deleted user %s and %d contacts", user_id, contact_count)


def update_user_role(db: Session, user_id: str, role: UserRole) -> User:
    user = get_user(db, user_id)
    user = crud.update_user_role(db, user, role)
    logger.info("Updated role for user %s: %s", user_id, role.value)
    return user


def list_contacts(
    db: Session,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    sort_by: SortBy = SortBy.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
) -> dict:
    """Unscoped contact listing with owner annotations."""
    _check_paging(page, limit)
    contacts, total = crud.get_contacts(
        db,
        owner_id=None,
        skip=(page - 1) * limit,
        limit=limit,
        search=search or None,
        sort_by=sort_by,
        sort_order=sort_order,
        with_owner=True,
    )
    items = [annotate_contact(contact) for contact in contacts]
    return build_page(items, total, page, limit)


def get_contact(db: Session, contact_id: str) -> schemas.AdminContactOut:
    contact = crud.get_contact(db, contact_id, with_owner=True)
    if contact is None:
        logger.info("Contact not found: %s", contact_id)
        raise NotFoundError(CONTACT_NOT_FOUND)
    return annotate_contact(contact)


def delete_contact(db: Session, contact_id: str, storage=None) -> None:
    contact = crud.get_contact(db, contact_id)
    if contact is None:
        logger.info("Contact not found: %s", contact_id)
        raise NotFoundError(CONTACT_NOT_FOUND)
    if contact.photo:
        discard_photo(storage or get_photo_storage(), contact.photo)
    crud.delete_contact(db, contact)
    logger.info("Admin deleted contact: %s", contact_id)


def stats(db: Session) -> schemas.Stats:
    return schemas.Stats(
        total_users=crud.count_users(db), total_contacts=crud.count_contacts(db)
    )


@router.get("/stats", response_model=schemas.Envelope[schemas.Stats])
def read_stats(db: Session = Depends(get_db)):
    """Total number of users and contacts."""
    return wrap(stats(db))


@router.get("/users", response_model=schemas.Page[schemas.UserOut])
def read_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """Page through all users."""
    return list_users(db, page, limit, search)


@router.get("/users/{user_id}", response_model=schemas.Envelope[schemas.UserOut])
def read_user(user_id: str, db: Session = Depends(get_db)):
    return wrap(schemas.UserOut.model_validate(get_user(db, user_id)))


@router.put("/users/{user_id}/role", response_model=schemas.Envelope[schemas.UserOut])
def change_user_role(
    user_id: str,
    payload: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
):
    """Promote or demote a user."""
    logger.info("Role change for %s requested by %s", user_id, identity.id)
    user = update_user_role(db, user_id, payload.role)
    return wrap(schemas.UserOut.model_validate(user), "User role updated successfully")


@router.delete("/users/{user_id}", response_model=schemas.Envelope[None])
def remove_user(
    user_id: str,
    db: Session = Depends(get_db),
    storage=Depends(get_photo_storage),
):
    """Delete a user and all of their contacts."""
    delete_user(db, user_id, storage)
    return wrap(None, "User deleted successfully")


@router.get("/contacts", response_model=schemas.Page[schemas.AdminContactOut])
def read_all_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = Query(None),
    sort_by: SortBy = Query(SortBy.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    db: Session = Depends(get_db),
):
    """Page through every contact with its owner."""
    return list_contacts(db, page, limit, search, sort_by, sort_order)


@router.get(
    "/contacts/{contact_id}", response_model=schemas.Envelope[schemas.AdminContactOut]
)
def read_any_contact(contact_id: str, db: Session = Depends(get_db)):
    return wrap(get_contact(db, contact_id))


@router.delete("/contacts/{contact_id}", response_model=schemas.Envelope[None])
def remove_any_contact(
    contact_id: str,
    db: Session = Depends(get_db),
    storage=Depends(get_photo_storage),
):
    delete_contact(db, contact_id, storage)
    return wrap(None, "Contact deleted successfully")
