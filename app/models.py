# app/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from .database import Base


def new_id() -> str:
    """Генерує рядковий UUID для первинного ключа."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Поточний час у UTC (з часовою зоною)."""
    return datetime.now(timezone.utc)


class User(Base):
    """
    Модель користувача сервісу аутентифікації.

    Attributes:
        id (str): Унікальний ідентифікатор користувача.
        email (str): Електронна пошта користувача.
        full_name (str, optional): Повне ім'я користувача.
        hashed_password (str): Захешований пароль користувача.
        is_active (bool): Статус активності користувача.
        is_verified (bool): Чи підтверджена електронна пошта.
        created_at (datetime): Час реєстрації.
    """
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    is_verified = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    profile = relationship("Profile", back_populates="owner", uselist=False)


class Profile(Base):
    """
    Профіль користувача. Первинний ключ збігається з ідентифікатором власника,
    тому на одного користувача припадає не більше одного профілю.
    """
    __tablename__ = "profiles"
    id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    job_title = Column(String, nullable=True)
    company = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    social_links = Column(JSON, nullable=True)
    preferences = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    owner = relationship("User", back_populates="profile")


class Event(Base):
    """
    Подія, яку відвідав користувач.

    Attributes:
        id (str): Ідентифікатор події.
        user_id (str): Власник події.
        title (str): Назва події.
        location (str, optional): Місце проведення.
        company (str, optional): Компанія-організатор.
        date (date): Дата події.
        color_index (str, optional): Індекс палітри для відображення.
    """
    __tablename__ = "events"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    company = Column(String, nullable=True)
    date = Column(Date, nullable=False)
    color_index = Column(String(8), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class Contact(Base):
    """
    Контакт, з яким користувач познайомився (зазвичай на події).

    Attributes:
        event_id (str, optional): Подія, до якої прив'язаний контакт.
        name (str): Ім'я контакту.
        voice_memo (dict, optional): Голосова нотатка: url, transcript, key_points.
    """
    __tablename__ = "contacts"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="SET NULL"), index=True, nullable=True)
    name = Column(String, nullable=False)
    position = Column(String, nullable=True)
    company = Column(String, nullable=True)
    summary = Column(Text, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    linkedin_url = Column(String, nullable=True)
    voice_memo = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class ActionItem(Base):
    """
    Завдання (action item), зазвичай прив'язане до контакту.
    """
    __tablename__ = "action_items"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="SET NULL"), index=True, nullable=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="SET NULL"), index=True, nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class Note(Base):
    """
    Нотатка до контакту.
    """
    __tablename__ = "notes"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    contact_id = Column(String(36), ForeignKey("contacts.id", ondelete="CASCADE"), index=True, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
