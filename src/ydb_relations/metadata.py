"""
Описание объявленного отношения (метаданные)
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional, Type, Union

from .exceptions import RelationshipError
from .utils.inflection import classify


class RelationType(str, Enum):
    """Вид отношения"""

    REFERENCES_ONE = "references_one"
    REFERENCES_MANY = "references_many"
    EMBEDS_MANY = "embeds_many"

    @property
    def is_collection(self) -> bool:
        return self is not RelationType.REFERENCES_ONE


@dataclass(eq=False, frozen=True)
class Metadata:
    """
    Информация об отношении между моделями

    Создаётся один раз при объявлении отношения и дальше не меняется.
    Значения по умолчанию вычисляются из имени отношения:

    - references_one "boss": class_name "Boss", foreign_key "boss_id"
    - references_many "cars": class_name "Car", foreign_key "cars_ids"
    - embeds_many "addresses": class_name "Address", store_in "addresses"
    """

    name: str
    relation_type: RelationType
    class_name: Optional[Union[str, Type[Any]]] = None
    foreign_key: Optional[str] = None
    store_in: Optional[str] = None
    polymorphic: bool = False
    find_with: Optional[Callable[..., Any]] = field(default=None, repr=False)
    starts_with: Optional[str] = None

    def __post_init__(self):
        if not self.name or not str(self.name).strip():
            raise ValueError("Имя отношения не может быть пустым")

        # Экземпляр заморожен, вычисленные значения записываются в обход __setattr__
        set_default = partial(object.__setattr__, self)
        set_default("name", str(self.name))
        set_default("relation_type", RelationType(self.relation_type))

        if self.polymorphic and self.relation_type is not RelationType.REFERENCES_ONE:
            raise RelationshipError(
                f"Полиморфным может быть только references_one (отношение '{self.name}')"
            )

        if self.class_name is None:
            set_default("class_name", classify(
                self.name, singular=self.relation_type.is_collection
            ))

        if self.foreign_key is None:
            suffix = "_id" if self.relation_type is RelationType.REFERENCES_ONE else "_ids"
            set_default("foreign_key", f"{self.name}{suffix}")

        if self.store_in is None and self.relation_type is RelationType.EMBEDS_MANY:
            set_default("store_in", self.name)

        if self.store_in is not None:
            set_default("store_in", str(self.store_in))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Metadata):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    @property
    def target_type_name(self) -> str:
        """Имя класса цели"""
        if isinstance(self.class_name, str):
            return self.class_name
        return self.class_name.__name__

    @property
    def persisting_foreign_key(self) -> bool:
        """
        Отвечает ли библиотека за хранение внешнего ключа в владельце.

        Если store_in не задан, внешний ключ вычисляется самим владельцем.
        """
        return self.store_in is not None

    @property
    def polymorphic_type_column(self) -> Optional[str]:
        """Атрибут владельца для хранения типа цели: boss_id -> boss_type"""
        if not self.polymorphic:
            return None
        base = self.foreign_key[:-3] if self.foreign_key.endswith("_id") else self.foreign_key
        return f"{base}_type"

    @property
    def has_custom_finder(self) -> bool:
        return self.find_with is not None
