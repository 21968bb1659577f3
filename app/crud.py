# app/crud.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config, models
from .responses import DatabaseError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Налаштування контексту для хешування паролів
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
CONFIRMATION_TOKEN = "confirm"


def get_password_hash(password: str) -> str:
    """
    Хешує пароль користувача.

    Args:
        password (str): Звичайний текст пароля.

    Returns:
        str: Захешований пароль.
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Перевіряє відповідність звичайного пароля та захешованого.

    Args:
        plain_password (str): Звичайний текст пароля.
        hashed_password (str): Захешований пароль.

    Returns:
        bool: True, якщо паролі співпадають, інакше False.
    """
    return pwd_context.verify(plain_password, hashed_password)


# --- Токени ---

def create_token(data: dict, token_type: str, expires_delta: timedelta) -> str:
    """
    Створює підписаний JWT токен заданого типу.

    Токен адресовано проєкту (aud = публічний ключ сервісу), тож токени,
    видані для іншого проєкту, не пройдуть перевірку.

    Args:
        data (dict): Дані, які будуть закодовані в токені (sub, email, ...).
        token_type (str): Тип токена: "access", "refresh" або "confirm".
        expires_delta (timedelta): Тривалість життя токена.

    Returns:
        str: Закодований JWT токен.
    """
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        "iss": config.CRM_SERVICE_URL,
        "aud": config.CRM_SERVICE_KEY,
    })
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_token(token: str, token_type: str) -> Optional[dict]:
    """
    Перевіряє JWT токен і повертає його вміст.

    Args:
        token (str): JWT токен.
        token_type (str): Очікуваний тип токена.

    Returns:
        dict або None: Вміст токена або None, якщо токен недійсний, прострочений
        чи іншого типу.
    """
    if not token or not isinstance(token, str):
        return None
    try:
        payload = jwt.decode(
            token,
            config.SECRET_KEY,
            algorithms=[config.ALGORITHM],
            audience=config.CRM_SERVICE_KEY,
            issuer=config.CRM_SERVICE_URL,
        )
    except (JWTError, AttributeError, TypeError, ValueError):
        return None
    if payload.get("type") != token_type or not payload.get("sub"):
        return None
    return payload


# --- Робота з користувачами ---

def user_to_dict(user: models.User) -> dict:
    """Серіалізує користувача у словник, який повертає сесійний клієнт."""
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "is_active": bool(user.is_active),
        "is_verified": bool(user.is_verified),
    }


def get_user(db: Session, user_id: str) -> Optional[models.User]:
    return db.get(models.User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    """
    Отримує користувача з бази даних за email.

    Args:
        db (Session): Сесія бази даних.
        email (str): Електронна пошта користувача.

    Returns:
        models.User або None: Об'єкт користувача або None, якщо не знайдено.
    """
    return db.query(models.User).filter(models.User.email == email.lower()).first()


def create_user(db: Session, email: str, password: str, full_name: Optional[str] = None) -> models.User:
    """
    Створює нового користувача та зберігає його в базі даних.

    Args:
        db (Session): Сесія бази даних.
        email (str): Електронна пошта.
        password (str): Пароль у відкритому вигляді.
        full_name (str, optional): Повне ім'я.

    Returns:
        models.User: Створений об'єкт користувача.
    """
    db_user = models.User(
        email=email.lower(),
        full_name=full_name,
        hashed_password=get_password_hash(password),
    )
    return _commit(db, db_user)


def authenticate_user(db: Session, email: str, password: str) -> Optional[models.User]:
    """
    Перевіряє дані користувача для аутентифікації.

    Returns:
        models.User або None: Користувач, якщо email і пароль правильні.
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def mark_verified(db: Session, user: models.User) -> models.User:
    user.is_verified = True
    return _commit(db, user)


def _commit(db: Session, row):
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error while saving {row.__class__.__name__}: {e}")
        raise DatabaseError(f"Could not save {row.__class__.__name__.lower()}") from e
    return row


# --- Ресурси, що належать користувачу ---

TABLES = {
    "events": models.Event,
    "contacts": models.Contact,
    "action_items": models.ActionItem,
    "notes": models.Note,
}

PROTECTED_FIELDS = ("id", "user_id", "created_at", "updated_at")


class OwnedResource:
    """
    CRUD над однією таблицею, обмежений рядками поточного власника.

    Args:
        db (Session): Сесія бази даних.
        table (str): Назва таблиці ("events", "contacts", "action_items", "notes").
        owner_id (str): Ідентифікатор автентифікованого користувача.
    """

    def __init__(self, db: Session, table: str, owner_id: str):
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        self.db = db
        self.table = table
        self.model = TABLES[table]
        self.owner_id = owner_id

    def query(self):
        return self.db.query(self.model).filter(self.model.user_id == self.owner_id)

    def list(self, filters: Optional[Dict[str, Any]] = None, order_by: Iterable = ()) -> List:
        """
        Повертає рядки власника з додатковими фільтрами за рівністю полів.

        Args:
            filters (dict, optional): Поле -> значення; значення None ігноруються.
            order_by (Iterable): Вирази сортування SQLAlchemy.

        Returns:
            list: Список рядків (порожній, якщо нічого не знайдено).
        """
        query = self.query()
        for field, value in (filters or {}).items():
            if value is not None:
                query = query.filter(getattr(self.model, field) == value)
        try:
            return query.order_by(*order_by).all()
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching {self.table}: {e}")
            raise DatabaseError(f"Could not fetch {self.table}", e.__class__.__name__) from e

    def get(self, row_id: str):
        """
        Шукає рядок за id і перевіряє власника.

        Чужий рядок повертається як None - так само, як і відсутній,
        щоб не розкривати сам факт його існування.
        """
        try:
            row = self.db.get(self.model, row_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error fetching {self.table}: {e}")
            raise DatabaseError(f"Could not fetch {self.table}", e.__class__.__name__) from e
        if row is None:
            return None
        if row.user_id != self.owner_id:
            logger.warning(f"User {self.owner_id} requested {self.table}/{row_id} owned by another user")
            return None
        return row

    def get_or_404(self, row_id: str, label: str):
        row = self.get(row_id)
        if row is None:
            raise NotFoundError(f"{label} not found")
        return row

    def insert(self, values: Dict[str, Any]):
        """
        Створює рядок із проставленим власником і часом створення.

        Returns:
            Створений рядок.
        """
        now = models.utcnow()
        data = {key: value for key, value in values.items() if key not in PROTECTED_FIELDS}
        row = self.model(**data, user_id=self.owner_id, created_at=now, updated_at=now)
        return _commit(self.db, row)

    def update(self, row_id: str, values: Dict[str, Any]):
        """
        Оновлює лише передані поля рядка власника.

        Returns:
            Оновлений рядок або None, якщо рядок не знайдено чи він чужий.
        """
        row = self.get(row_id)
        if row is None:
            return None
        for key, value in values.items():
            if key not in PROTECTED_FIELDS:
                setattr(row, key, value)
        row.updated_at = models.utcnow()
        return _commit(self.db, row)

    def delete(self, row_id: str) -> int:
        """
        Видаляє рядок власника.

        Returns:
            int: Кількість видалених рядків (0 - рядок не знайдено або чужий).

        Raises:
            DatabaseError: Якщо видалення не вдалося.
        """
        return self.delete_many([row_id])

    def delete_many(self, row_ids: List[str]) -> int:
        if not row_ids:
            return 0
        try:
            count = self.query().filter(self.model.id.in_(row_ids)).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error deleting {self.table} {row_ids}: {e}")
            raise DatabaseError(f"Could not delete {self.table}", e.__class__.__name__) from e
        return count

    def count_owned(self, row_ids: List[str]) -> int:
        return self.query().filter(self.model.id.in_(row_ids)).count()


def assert_owned_relations(db: Session, owner_id: str, event_id: Optional[str] = None, contact_id: Optional[str] = None) -> None:
    """
    Перевіряє, що зовнішні ключі вказують на рядки того самого власника.

    Args:
        db (Session): Сесія бази даних.
        owner_id (str): Ідентифікатор власника.
        event_id (str, optional): Подія, на яку посилається запис.
        contact_id (str, optional): Контакт, на який посилається запис.

    Raises:
        ValidationError: Якщо посилання веде на відсутній або чужий рядок.
    """
    checks = (("event_id", event_id, models.Event), ("contact_id", contact_id, models.Contact))
    for field, value, model in checks:
        if value is None:
            continue
        row = db.get(model, value)
        if row is None or row.user_id != owner_id:
            raise ValidationError(
                f"{field} does not reference an existing {model.__tablename__[:-1]}",
                [{"field": field, "message": "Unknown or inaccessible reference"}],
            )


def delete_event_with_contacts(db: Session, owner_id: str, event_id: str, contact_ids: List[str]) -> Dict[str, Any]:
    """
    Видаляє подію разом з обраними контактами.

    Спершу перевіряється, що подія належить користувачу. Контакти видаляються
    по одному і без гарантій: невдача записується як попередження, але не
    блокує видалення самої події.

    Args:
        db (Session): Сесія бази даних.
        owner_id (str): Ідентифікатор власника.
        event_id (str): Подія для видалення.
        contact_ids (list): Контакти, які треба видалити разом з подією.

    Returns:
        dict: deleted_contact_ids, failed_contact_ids, warnings.

    Raises:
        NotFoundError: Якщо подію не знайдено або вона чужа.
    """
    events = OwnedResource(db, "events", owner_id)
    contacts = OwnedResource(db, "contacts", owner_id)
    events.get_or_404(event_id, "Event")

    deleted, failed, warnings = [], [], []
    for contact_id in contact_ids:
        try:
            count = contacts.delete(contact_id)
        except DatabaseError as e:
            count = 0
            warnings.append(f"Contact {contact_id} could not be deleted: {e.message}")
        else:
            if count == 0:
                warnings.append(f"Contact {contact_id} not found")
        (deleted if count else failed).append(contact_id)

    if warnings:
        logger.warning(f"Partial contact deletion for event {event_id}: {warnings}")

    if events.delete(event_id) == 0:
        raise NotFoundError("Event not found")
    return {"deleted_contact_ids": deleted, "failed_contact_ids": failed, "warnings": warnings}


# --- Профіль ---

def get_profile(db: Session, user_id: str) -> Optional[models.Profile]:
    return db.get(models.Profile, user_id)


def upsert_profile(db: Session, user_id: str, values: Dict[str, Any]) -> models.Profile:
    """
    Створює профіль при першому збереженні або оновлює наявний.

    Args:
        db (Session): Сесія бази даних.
        user_id (str): Власник профілю (він же первинний ключ).
        values (dict): Поля профілю.

    Returns:
        models.Profile: Збережений профіль.
    """
    now = models.utcnow()
    profile = get_profile(db, user_id)
    if profile is None:
        profile = models.Profile(id=user_id, created_at=now)
    for key, value in values.items():
        if key not in PROTECTED_FIELDS:
            setattr(profile, key, value)
    profile.updated_at = now
    return _commit(db, profile)
