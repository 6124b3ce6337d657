"""
Кодек для сериализации встроенных записей (embeds_many)
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Union


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Значение типа {type(value).__name__} не сериализуется")


class JSONCoder:
    """Сериализация словаря атрибутов в JSON-байты"""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def dump(self, attributes: Mapping[str, Any]) -> bytes:
        return json.dumps(
            dict(attributes), default=_default, sort_keys=True, ensure_ascii=False
        ).encode(self.encoding)

    def load(self, raw: Union[bytes, str]) -> Any:
        if isinstance(raw, bytes):
            raw = raw.decode(self.encoding)
        return json.loads(raw)


default_coder = JSONCoder()
