# app/schemas.py
import datetime as dt
from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, StrictBool
from pydantic import ValidationError as PydanticValidationError

from .responses import BadRequestError, ValidationError


def _not_blank(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValueError("must not be empty")
    return value.strip() if isinstance(value, str) else value


def _not_null(value: Any) -> Any:
    if value is None:
        raise ValueError("must not be null")
    return value


def _color_to_str(value: Any) -> Any:
    # індекс палітри приходить і числом, і рядком
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


# Обов'язковий текст; для часткових оновлень - необов'язковий, але не null/порожній
Label = Annotated[str, BeforeValidator(_not_blank)]
OptionalLabel = Annotated[Optional[str], BeforeValidator(_not_blank)]
OptionalDate = Annotated[Optional[dt.date], BeforeValidator(_not_null)]
OptionalFlag = Annotated[Optional[bool], BeforeValidator(_not_null)]
ColorIndex = Annotated[Optional[str], BeforeValidator(_color_to_str)]


# --- Схеми для подій ---

class EventBase(BaseModel):
    """
    Спільні поля події.

    Attributes:
        description (Optional[str]): Опис події.
        location (Optional[str]): Місце проведення.
        company (Optional[str]): Компанія-організатор.
        color_index (Optional[str]): Індекс палітри для відображення.
    """
    description: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    color_index: ColorIndex = None


class EventCreate(EventBase):
    """
    Схема для створення події.

    Attributes:
        title (str): Назва події.
        date (date): Дата події.
    """
    title: Label
    date: dt.date


class EventUpdate(EventBase):
    """
    Схема для часткового оновлення події. Передані поля не можуть бути порожніми.
    """
    title: OptionalLabel = None
    date: OptionalDate = None


class EventOut(EventBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    date: dt.date
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# --- Схеми для контактів ---

class VoiceMemo(BaseModel):
    """
    Голосова нотатка контакту.

    Attributes:
        url (Optional[str]): Посилання на запис.
        transcript (Optional[str]): Розшифровка.
        key_points (List[str]): Ключові тези.
    """
    url: Optional[str] = None
    transcript: Optional[str] = None
    key_points: List[str] = Field(default_factory=list)


class ContactBase(BaseModel):
    """
    Спільні поля контакту.

    Attributes:
        event_id (Optional[str]): Подія, на якій відбулося знайомство.
        position (Optional[str]): Посада.
        company (Optional[str]): Компанія.
        summary (Optional[str]): Короткий опис розмови.
        email (Optional[EmailStr]): Електронна пошта.
        phone (Optional[str]): Телефон.
        linkedin_url (Optional[str]): Профіль LinkedIn.
        voice_memo (Optional[VoiceMemo]): Голосова нотатка.
    """
    event_id: Optional[str] = None
    position: Optional[str] = None
    company: Optional[str] = None
    summary: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    linkedin_url: Optional[str] = None
    voice_memo: Optional[VoiceMemo] = None


class ContactCreate(ContactBase):
    name: Label


class ContactUpdate(ContactBase):
    name: OptionalLabel = None


class ContactOut(ContactBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# --- Схеми для завдань (action items) ---

class TaskBase(BaseModel):
    contact_id: Optional[str] = None
    event_id: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[dt.date] = None


class TaskCreate(TaskBase):
    """
    Схема для створення завдання. Текст завдання приймається як `title` або `text`.
    """
    title: Label = Field(validation_alias=AliasChoices("title", "text"))
    completed: bool = False


class TaskUpdate(TaskBase):
    title: OptionalLabel = Field(default=None, validation_alias=AliasChoices("title", "text"))
    completed: OptionalFlag = None


class TaskCompletion(BaseModel):
    """
    Тіло запиту для позначення завдання виконаним. Приймається лише
    {"completed": true|false}.
    """
    model_config = ConfigDict(extra="forbid")

    completed: StrictBool


class TaskOut(TaskBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    completed: bool
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# --- Схеми для нотаток ---

class NoteCreate(BaseModel):
    contact_id: str
    content: Label


class NoteUpdate(BaseModel):
    content: OptionalLabel = None


class NoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    contact_id: str
    content: str
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# --- Схеми для профілю ---

class SocialLinks(BaseModel):
    model_config = ConfigDict(extra="allow")

    linkedin: Optional[str] = None
    twitter: Optional[str] = None
    website: Optional[str] = None


class ProfileUpdate(BaseModel):
    """
    Схема для створення/оновлення профілю.

    Attributes:
        full_name (Optional[str]): Відображуване ім'я (приймається також як `display_name`).
        social_links (Optional[SocialLinks]): Посилання на соцмережі.
        preferences (Optional[dict]): Налаштування користувача.
    """
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("full_name", "display_name"))
    avatar_url: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    bio: Optional[str] = None
    social_links: Optional[SocialLinks] = None
    preferences: Optional[Dict[str, Any]] = None


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    bio: Optional[str] = None
    social_links: Optional[Dict[str, Any]] = None
    preferences: Optional[Dict[str, Any]] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


# --- Схеми для аутентифікації ---

class SignupRequest(BaseModel):
    """
    Схема для реєстрації користувача.

    Attributes:
        email (EmailStr): Електронна пошта користувача.
        password (str): Пароль (щонайменше 6 символів).
        full_name (Optional[str]): Повне ім'я.
    """
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class ResendConfirmationRequest(BaseModel):
    email: EmailStr


class UserOut(BaseModel):
    """
    Схема для виводу даних користувача.
    """
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False


# --- Нормалізація вхідних даних ---

def field_errors(error: PydanticValidationError) -> List[Dict[str, str]]:
    """Перетворює помилки pydantic на список {field, message} для форм."""
    return [
        {"field": ".".join(str(part) for part in item["loc"]) or "body", "message": item["msg"]}
        for item in error.errors()
    ]


def normalize(schema: Type[BaseModel], raw: Any, partial: bool = False) -> Dict[str, Any]:
    """
    Перевіряє сире тіло запиту один раз на межі обробника.

    Args:
        schema (Type[BaseModel]): Схема операції.
        raw (Any): Розібране JSON тіло запиту.
        partial (bool): Часткове оновлення - повертаються лише передані поля.

    Returns:
        dict: Перевірені дані.

    Raises:
        ValidationError: Якщо тіло не відповідає схемі.
        BadRequestError: Якщо для часткового оновлення не передано жодного поля.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        model = schema.model_validate(raw)
    except PydanticValidationError as e:
        errors = field_errors(e)
        raise ValidationError(f"Validation failed: {errors[0]['field']} {errors[0]['message']}", errors) from e
    data = model.model_dump(exclude_unset=partial)
    if partial and not data:
        raise BadRequestError("No update data provided")
    return data


def dump(schema: Type[BaseModel], row: Any) -> Dict[str, Any]:
    """Серіалізує рядок бази даних через вихідну схему."""
    return schema.model_validate(row).model_dump(mode="json")
