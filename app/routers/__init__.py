# app/routers/__init__.py
from typing import List, Optional


def split_ids(raw: Optional[str]) -> List[str]:
    """
    Розбирає список ідентифікаторів з query параметра ("a,b,c").

    Args:
        raw (str, optional): Значення параметра.

    Returns:
        List[str]: Непорожні ідентифікатори без дублікатів, у вихідному порядку.
    """
    ids = []
    for item in (raw or "").split(","):
        item = item.strip()
        if item and item not in ids:
            ids.append(item)
    return ids
