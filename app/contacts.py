"""Contact management operations and routes for the Contacts API."""

import csv
import io
import logging
import math
import re
from datetime import date

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from . import crud, schemas
from .auth import get_current_identity
from .database import get_db
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import Contact
from .permissions import Action, Identity, authorize
from .responses import wrap
from .schemas import SortBy, SortOrder, isoformat_utc
from .storage import PhotoUpload, discard_photo, get_photo_storage, read_upload

logger = logging.getLogger("contacts_api.contacts")

router = APIRouter(prefix="/contacts", tags=["contacts"])

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CONTACT_NOT_FOUND = "Contact not found"
CSV_HEADER = ["Name", "Email", "Phone", "Created At"]
MAX_PAGE_SIZE = 100


def validate_email(email: str) -> str:
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("email must be a valid email address")
    return email


def _required(field: str, value: str | None) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} must not be empty")
    return value


def build_page(items, total: int, page: int, limit: int) -> dict:
    """Assemble the paginated response shape."""
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def list_contacts(
    db: Session,
    identity: Identity,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    sort_by: SortBy = SortBy.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
) -> dict:
    """
    List the contacts visible to ``identity``, one page at a time.

    Admins see every contact; other users only their own.
    """
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")
    owner_scope = None if identity.is_admin else identity.id
    items, total = crud.get_contacts(
        db,
        owner_id=owner_scope,
        skip=(page - 1) * limit,
        limit=limit,
        search=search or None,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return build_page(items, total, page, limit)


def create_contact(
    db: Session,
    identity: Identity,
    name: str,
    email: str,
    phone: str,
    photo: PhotoUpload | None = None,
    storage=None,
) -> Contact:
    """
    Create a contact owned by ``identity``.

    The photo, if any, is written to storage before the row referencing it.

    Raises:
        ValidationError: If a field is empty or the email is malformed.
    """
    name = _required("name", name)
    phone = _required("phone", phone)
    email = validate_email(_required("email", email))

    reference = None
    if photo is not None:
        storage = storage or get_photo_storage()
        reference = storage.save(photo)
    try:
        contact = crud.create_contact(db, identity.id, name, email, phone, reference)
    except Exception:
        db.rollback()
        if reference:
            discard_photo(storage, reference)
        raise
    logger.info("Contact %s created by %s", contact.id, identity.id)
    return contact


def get_contact(
    db: Session, contact_id: str, identity: Identity, action: Action = Action.READ
) -> Contact:
    """
    Load a contact and check that ``identity`` may act on it.

    Raises:
        NotFoundError: If no contact has this id.
        ForbiddenError: If the identity is neither owner nor admin.
    """
    contact = crud.get_contact(db, contact_id)
    if contact is None:
        logger.info("Contact not found with ID: %s", contact_id)
        raise NotFoundError(CONTACT_NOT_FOUND)
    if not authorize(identity, contact, action):
        logger.warning(
            "Denied %s on contact %s for user %s", action.value, contact_id, identity.id
        )
        raise ForbiddenError()
    return contact


def update_contact(
    db: Session,
    contact_id: str,
    identity: Identity,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    photo: PhotoUpload | None = None,
    storage=None,
) -> Contact:
    """
    Apply a partial update to a contact.

    Missing or blank fields leave the stored value unchanged. A replaced
    photo is deleted only once the new reference has been committed.
    """
    contact = get_contact(db, contact_id, identity, Action.UPDATE)

    changes = {}
    if name and name.strip():
        changes["name"] = name.strip()
    if phone and phone.strip():
        changes["phone"] = phone.strip()
    if email and email.strip():
        changes["email"] = validate_email(email.strip())

    old_photo = contact.photo
    new_photo = None
    if photo is not None:
        storage = storage or get_photo_storage()
        new_photo = storage.save(photo)
        changes["photo"] = new_photo

    if not changes:
        return contact

    try:
        contact = crud.update_contact(db, contact, changes)
    except Exception:
        db.rollback()
        discard_photo(storage, new_photo)
        raise

    if new_photo:
        discard_photo(storage, old_photo)
    logger.info("Contact %s updated by %s", contact.id, identity.id)
    return contact


def remove_contact(db: Session, contact_id: str, identity: Identity, storage=None) -> None:
    """Delete a contact and its photo."""
    contact = get_contact(db, contact_id, identity, Action.DELETE)
    if contact.photo:
        discard_photo(storage or get_photo_storage(), contact.photo)
    crud.delete_contact(db, contact)
    logger.info("Contact %s deleted by %s", contact_id, identity.id)


def export_csv(db: Session, identity: Identity) -> str:
    """
    Render every contact visible to ``identity`` as CSV.

    The header line is plain; every data field is quoted with embedded quotes
    doubled. Rows are newest first.
    """
    owner_scope = None if identity.is_admin else identity.id
    contacts = crud.get_contacts_for_export(db, owner_scope)

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    buf.write(",".join(CSV_HEADER) + "\n")
    for contact in contacts:
        writer.writerow(
            [contact.name, contact.email, contact.phone, isoformat_utc(contact.created_at)]
        )
    return buf.getvalue()


@router.get("/export")
def export_contacts(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Download visible contacts as a CSV attachment."""
    filename = f"contacts-{date.today().isoformat()}.csv"
    return Response(
        content=export_csv(db, identity).encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("", response_model=schemas.Page[schemas.ContactOut])
def read_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = Query(None),
    sort_by: SortBy = Query(SortBy.CREATED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Retrieve a page of contacts visible to the current user.

    Supports optional text search by name or email.

    Returns:
        Page[ContactOut]: Contacts with pagination metadata.
    """
    return list_contacts(db, identity, page, limit, search, sort_by, sort_order)


@router.post(
    "",
    response_model=schemas.Envelope[schemas.ContactOut],
    status_code=status.HTTP_201_CREATED,
)
def add_contact(
    name: str = Form(...),
    email: str = Form(...),
    phone: str = Form(...),
    photo: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    storage=Depends(get_photo_storage),
):
    """
    Create a new contact owned by the current user.

    Accepts multipart form data with an optional image ``photo``.
    """
    contact = create_contact(
        db, identity, name, email, phone, read_upload(photo), storage
    )
    return wrap(schemas.ContactOut.model_validate(contact), "Contact created successfully")


@router.get("/{contact_id}", response_model=schemas.Envelope[schemas.ContactOut])
def read_contact(
    contact_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Retrieve a single contact by ID.

    Raises:
        NotFoundError: If contact is not found.
        ForbiddenError: If the contact belongs to someone else.
    """
    contact = get_contact(db, contact_id, identity)
    return wrap(schemas.ContactOut.model_validate(contact))


@router.put("/{contact_id}", response_model=schemas.Envelope[schemas.ContactOut])
def edit_contact(
    contact_id: str,
    name: str | None = Form(None),
    email: str | None = Form(None),
    phone: str | None = Form(None),
    photo: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    storage=Depends(get_photo_storage),
):
    """
    Update an existing contact.

    Only non-empty fields provided in the request are changed.
    """
    contact = update_contact(
        db, contact_id, identity, name, email, phone, read_upload(photo), storage
    )
    return wrap(schemas.ContactOut.model_validate(contact), "Contact updated successfully")


@router.delete("/{contact_id}", response_model=schemas.Envelope[None])
def delete_contact(
    contact_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
    storage=Depends(get_photo_storage),
):
    """Delete a contact owned by the current user, or any contact for admins."""
    remove_contact(db, contact_id, identity, storage)
    return wrap(None, "Contact deleted successfully")
