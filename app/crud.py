"""CRUD operations for users and contacts.

This module contains database interaction logic for user and contact
entities, isolated from FastAPI route handlers.
"""

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import models
from .errors import ConflictError
from .schemas import SortBy, SortOrder

USER_EXISTS = "User with this email already exists"

LIKE_ESCAPE = "\\"


def _like_pattern(search: str) -> str:
    """Wrap ``search`` for a substring match with LIKE wildcards escaped."""
    escaped = (
        search.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


SORT_COLUMNS = {
    SortBy.NAME: models.Contact.name,
    SortBy.EMAIL: models.Contact.email,
    SortBy.CREATED_AT: models.Contact.created_at,
}


def create_user(
    db: Session,
    email: str,
    hashed_password: str,
    role: models.UserRole = models.UserRole.USER,
) -> models.User:
    """
    Create and persist a new user.

    Args:
        db (Session): SQLAlchemy database session.
        email (str): Normalized email address.
        hashed_password (str): Securely hashed password.
        role (UserRole): Initial role.

    Raises:
        ConflictError: If a user with the same email already exists.

    Returns:
        User: Newly created user instance.
    """
    if get_user_by_email(db, email) is not None:
        raise ConflictError(USER_EXISTS)

    user = models.User(email=email, hashed_password=hashed_password, role=role)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # lost a race against a concurrent registration
        db.rollback()
        raise ConflictError(USER_EXISTS)
    db.refresh(user)
    return user


def get_user_by_email(db: Session, email: str) -> models.User | None:
    """
    Retrieve a user by email address.

    Args:
        db (Session): Database session.
        email (str): User email.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User).where(models.User.email == email)
    ).scalar_one_or_none()


def get_user_by_id(db: Session, user_id: str) -> models.User | None:
    """
    Retrieve a user by primary key.

    Args:
        db (Session): Database session.
        user_id (str): User identifier.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.get(models.User, user_id)


def list_users(
    db: Session, skip: int = 0, limit: int = 10, search: str | None = None
) -> tuple[list[models.User], int]:
    """
    Retrieve one page of users, newest first.

    Args:
        db (Session): Database session.
        skip (int): Number of records to skip.
        limit (int): Maximum number of records to return.
        search (str | None): Case-insensitive email substring.

    Returns:
        tuple[list[User], int]: The page and the total match count.
    """
    stmt = select(models.User)
    if search:
        stmt = stmt.where(models.User.email.ilike(
            _like_pattern(search), escape=LIKE_ESCAPE
        ))

    total = db.scalar(select(func.count()).select_from(stmt.subquery()))
    stmt = (
        stmt.order_by(models.User.created_at.desc(), models.User.id)
        .offset(skip)
        .limit(limit)
    )
    return list(db.scalars(stmt).all()), total


def update_user_role(
    db: Session, user: models.User, role: models.UserRole
) -> models.User:
    """
    Change the role of a user.

    Args:
        db (Session): Database session.
        user (User): Target user.
        role (UserRole): New role.

    Returns:
        User: Updated user instance.
    """
    user.role = role
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user: models.User) -> None:
    """Delete a user; owned contacts go with it through the relationship cascade."""
    db.delete(user)
    db.commit()


def count_users(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(models.User))


def create_contact(
    db: Session,
    owner_id: str,
    name: str,
    email: str,
    phone: str,
    photo: str | None = None,
) -> models.Contact:
    """
    Create a new contact owned by the given user.

    Args:
        db (Session): Database session.
        owner_id (str): Identifier of the owner.
        name (str): Contact name.
        email (str): Contact email.
        phone (str): Contact phone.
        photo (str | None): Reference of an already stored photo.

    Returns:
        Contact: Newly created contact.
    """
    contact = models.Contact(
        name=name, email=email, phone=phone, photo=photo, owner_id=owner_id
    )
    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def get_contact(
    db: Session, contact_id: str, with_owner: bool = False
) -> models.Contact | None:
    """
    Retrieve a single contact regardless of owner.

    Args:
        db (Session): Database session.
        contact_id (str): Contact identifier.
        with_owner (bool): Eagerly load the owning user.

    Returns:
        Contact | None: Contact if found, otherwise ``None``.
    """
    stmt = select(models.Contact).where(models.Contact.id == contact_id)
    if with_owner:
        stmt = stmt.options(joinedload(models.Contact.owner))
    return db.execute(stmt).scalar_one_or_none()


def _contacts_query(owner_id: str | None, search: str | None):
    stmt = select(models.Contact)
    if owner_id is not None:
        stmt = stmt.where(models.Contact.owner_id == owner_id)
    if search:
        like_q = _like_pattern(search)
        stmt = stmt.where(
            or_(
                models.Contact.name.ilike(like_q, escape=LIKE_ESCAPE),
                models.Contact.email.ilike(like_q, escape=LIKE_ESCAPE),
            )
        )
    return stmt


def get_contacts(
    db: Session,
    owner_id: str | None = None,
    skip: int = 0,
    limit: int = 10,
    search: str | None = None,
    sort_by: SortBy = SortBy.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    with_owner: bool = False,
) -> tuple[list[models.Contact], int]:
    """
    Retrieve one page of contacts.

    Supports optional case-insensitive search by name or email.

    Args:
        db (Session): Database session.
        owner_id (str | None): Restrict to one owner; ``None`` means all.
        skip (int): Number of records to skip.
        limit (int): Maximum number of records to return.
        search (str | None): Optional search query.
        sort_by (SortBy): Ordering column.
        sort_order (SortOrder): Ordering direction.
        with_owner (bool): Eagerly load owners.

    Returns:
        tuple[list[Contact], int]: The page and the total match count.
    """
    stmt = _contacts_query(owner_id, search)
    total = db.scalar(select(func.count()).select_from(stmt.subquery()))

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if sort_order == SortOrder.ASC else column.desc()
    stmt = stmt.order_by(ordering, models.Contact.id).offset(skip).limit(limit)
    if with_owner:
        stmt = stmt.options(joinedload(models.Contact.owner))
    return list(db.scalars(stmt).all()), total


def get_contacts_for_export(
    db: Session, owner_id: str | None = None
) -> list[models.Contact]:
    """Every visible contact, newest first."""
    stmt = _contacts_query(owner_id, None).order_by(
        models.Contact.created_at.desc(), models.Contact.id
    )
    return list(db.scalars(stmt).all())


def update_contact(db: Session, contact: models.Contact, changes: dict):
    """
    Update mutable fields of a contact.

    Args:
        db (Session): Database session.
        contact (Contact): Contact instance.
        changes (dict): Fields to update.

    Returns:
        Contact: Updated contact.
    """
    for key, value in changes.items():
        setattr(contact, key, value)

    db.add(contact)
    db.commit()
    db.refresh(contact)
    return contact


def delete_contact(db: Session, contact: models.Contact):
    """
    Delete a contact from the database.

    Args:
        db (Session): Database session.
        contact (Contact): Contact to delete.
    """
    db.delete(contact)
    db.commit()
    return None


def count_contacts(db: Session) -> int:
    return db.scalar(select(func.count()).select_from(models.Contact))
