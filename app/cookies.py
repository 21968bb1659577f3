# app/cookies.py
"""
Кодек фрагментованих cookies.

Одне логічне значення (токен сесії) зберігається або в одній cookie `<base>`,
або, якщо воно довше за безпечний розмір, у послідовності `<base>.0 … <base>.N`.
Фрагмент 0 містить заголовок "<кількість>:" - за ним перевіряється, що жоден
фрагмент не загубився, перш ніж значення буде зібране.
"""
import logging
import re
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from . import config

logger = logging.getLogger(__name__)

MAX_CHUNK_SIZE = config.COOKIE_MAX_CHUNK_SIZE
MAX_CHUNKS = config.COOKIE_MAX_CHUNKS
COOKIE_CACHE_TTL = 1.0  # секунд
AUTH_TOKEN_MARKER = "auth-token"

_FRAGMENT_NAME = re.compile(r"^(?P<base>.+)\.(?P<index>\d+)$")
_COUNT_HEADER = re.compile(r"^(?P<count>\d+):")


class CookieFragmentError(Exception):
    """Значення неможливо записати або зібрати з фрагментів."""


class CookieSource(Protocol):
    def get(self, name: str) -> Optional[str]: ...


class CookieWriter(Protocol):
    def set(self, name: str, value: str, **options) -> None: ...

    def delete(self, name: str, **options) -> None: ...


def fragment_name(base: str, index: int) -> str:
    return f"{base}.{index}"


def split_fragment_name(name: str) -> Tuple[str, Optional[int]]:
    """
    Розбирає назву cookie на базову назву та індекс фрагмента.

    Args:
        name (str): Назва cookie, напр. "sb-x-auth-token.1".

    Returns:
        tuple: (базова назва, індекс або None, якщо це не фрагмент).
    """
    match = _FRAGMENT_NAME.match(name)
    if not match:
        return name, None
    return match.group("base"), int(match.group("index"))


def is_auth_cookie(name: str) -> bool:
    """Чи належить cookie (або її фрагмент) до токена аутентифікації."""
    return AUTH_TOKEN_MARKER in name


def chunk_string(value: str, size: int) -> list:
    """Ділить рядок на шматки фіксованого розміру (останній може бути коротшим)."""
    return [value[i:i + size] for i in range(0, len(value), size)]


class CookieFragmentCodec:
    """
    Кодує та декодує значення, яке може бути розбите на кілька cookies.

    Читання кешуються на `ttl` секунд за назвою cookie. Кодек створюється
    на кожен запит, тому кеш не виходить за межі одного запиту. Будь-який запис
    чи видалення базової cookie або її фрагмента скидає кеш для цієї назви.

    Args:
        max_chunk_size (int): Максимальна довжина значення в одній cookie.
        max_chunks (int): Максимальна кількість фрагментів.
        ttl (float): Час життя кешу читань, секунд.
        clock (Callable): Джерело часу (для тестів).
    """

    def __init__(
        self,
        max_chunk_size: int = MAX_CHUNK_SIZE,
        max_chunks: int = MAX_CHUNKS,
        ttl: float = COOKIE_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_chunk_size = max_chunk_size
        self.max_chunks = max_chunks
        self.ttl = ttl
        self._clock = clock
        self._cache: Dict[str, Tuple[str, float]] = {}

    # --- кеш ---

    def _cached(self, name: str) -> Optional[str]:
        entry = self._cache.get(name)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl:
            del self._cache[name]
            return None
        return value

    def _remember(self, name: str, value: str) -> None:
        self._cache[name] = (value, self._clock())

    def invalidate(self, name: str) -> None:
        """
        Скидає кешоване значення для cookie та її базової назви.

        Args:
            name (str): Базова назва або назва фрагмента.
        """
        base, _ = split_fragment_name(name)
        self._cache.pop(name, None)
        self._cache.pop(base, None)

    # --- читання ---

    def decode_strict(self, base: str, source: CookieSource) -> str:
        """
        Збирає значення з cookie `<base>` або з її фрагментів.

        Args:
            base (str): Базова назва cookie.
            source (CookieSource): Джерело cookies поточного запиту.

        Returns:
            str: Значення або "" якщо нічого не знайдено.

        Raises:
            CookieFragmentError: Якщо фрагменти пошкоджені або неповні.
        """
        cached = self._cached(base)
        if cached is not None:
            return cached

        direct = source.get(base)
        if direct:
            self._remember(base, direct)
            return direct

        fragments = {}
        for index in range(self.max_chunks):
            value = source.get(fragment_name(base, index))
            if value:
                fragments[index] = value

        if not fragments:
            return ""

        head = fragments.get(0)
        if head is None:
            raise CookieFragmentError(f"Fragment 0 of cookie '{base}' is missing")
        match = _COUNT_HEADER.match(head)
        if not match:
            raise CookieFragmentError(f"Fragment 0 of cookie '{base}' has no fragment count header")

        count = int(match.group("count"))
        if count < 1 or count > self.max_chunks:
            raise CookieFragmentError(f"Cookie '{base}' declares {count} fragments (limit {self.max_chunks})")
        missing = [index for index in range(count) if index not in fragments]
        if missing:
            raise CookieFragmentError(f"Cookie '{base}' is missing fragments {missing}")

        parts = [head[match.end():]] + [fragments[index] for index in range(1, count)]
        value = "".join(parts)
        logger.debug(f"[Cookie] Reconstructed '{base}' from {count} fragments")
        self._remember(base, value)
        return value

    def decode(self, base: str, source: CookieSource) -> str:
        """
        Те саме, що `decode_strict`, але ніколи не кидає винятків:
        будь-яка помилка логується, а результатом стає "".
        """
        try:
            return self.decode_strict(base, source)
        except Exception as exc:
            logger.error(f"[Cookie Error] Failed to decode cookie '{base}': {exc}")
            return ""

    # --- запис ---

    def clear(self, base: str, writer: CookieWriter, **options) -> None:
        """
        Видаляє базову cookie та всі можливі фрагменти.

        Args:
            base (str): Базова назва cookie.
            writer (CookieWriter): Сховище, куди записуються зміни.
        """
        writer.delete(base, **options)
        for index in range(self.max_chunks):
            writer.delete(fragment_name(base, index), **options)
        self.invalidate(base)

    def encode(self, base: str, value: str, writer: CookieWriter, max_chunk_size: Optional[int] = None, **options) -> int:
        """
        Записує значення, розбиваючи його на фрагменти за потреби.

        Перед записом завжди видаляються і базова cookie, і всі фрагменти, щоб
        старе представлення не змішалося з новим.

        Args:
            base (str): Базова назва cookie.
            value (str): Значення для запису.
            writer (CookieWriter): Сховище, куди записуються зміни.
            max_chunk_size (int, optional): Розмір фрагмента (за замовчуванням - налаштування кодека).
            **options: Параметри cookie (path, max_age, httponly, ...).

        Returns:
            int: Кількість записаних cookies (1 для нефрагментованого значення).

        Raises:
            CookieFragmentError: Якщо для значення знадобиться більше фрагментів, ніж дозволено.
        """
        size = max_chunk_size or self.max_chunk_size
        if size < 1:
            raise CookieFragmentError("Chunk size must be positive")

        chunks = [] if len(value) <= size else _split_with_header(value, size)
        if len(chunks) > self.max_chunks:
            raise CookieFragmentError(
                f"Cookie value too large to be fragmented within limits "
                f"({len(chunks)} fragments needed, {self.max_chunks} allowed)"
            )

        self.clear(base, writer, **_delete_options(options))

        if not chunks:
            writer.set(base, value, **options)
            self.invalidate(base)
            return 1

        for index, chunk in enumerate(chunks):
            writer.set(fragment_name(base, index), chunk, **options)
        self.invalidate(base)
        logger.debug(f"[Cookie] Split '{base}' into {len(chunks)} fragments")
        return len(chunks)


def _split_with_header(value: str, size: int) -> list:
    """
    Ділить значення на фрагменти; перший фрагмент починається із заголовка
    "<кількість>:" і разом із ним не перевищує `size`.
    """
    count = 2
    while True:
        header = f"{count}:"
        first = size - len(header)
        if first < 1:
            raise CookieFragmentError(f"Chunk size {size} is too small for the fragment header")
        chunks = [header + value[:first]] + chunk_string(value[first:], size)
        if len(chunks) == count:
            return chunks
        count = len(chunks)


def _delete_options(options: dict) -> dict:
    """Для видалення потрібні лише path і domain."""
    return {key: options[key] for key in ("path", "domain") if key in options}
