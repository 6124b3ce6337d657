"""
Объявление отношений между моделями (relationships)

Пример::

    @register_model
    class Person(Record, RelationsMixin):
        __relations__ = [
            references_one("boss", class_name="Person", store_in="info"),
            references_many("cars", store_in="info"),
            embeds_many("addresses"),
        ]

    person.read_relation("boss")            # запись или None
    person.write_relation("boss", other)
    person.relation_proxy("cars").add(car)
"""

import logging
from typing import Any, Callable, ClassVar, Dict, Optional, Sequence, Type, Union

from .exceptions import RelationAlreadyDefined, RelationshipError
from .metadata import Metadata, RelationType
from .proxy import Proxy
from .registry import Accessor, RelationRegistry
from .utils.cache import RelationProxyCache

logger = logging.getLogger(__name__)


def relationship(
    name: str,
    relation_type: Union[RelationType, str],
    class_name: Optional[Union[str, Type[Any]]] = None,
    foreign_key: Optional[str] = None,
    store_in: Optional[str] = None,
    polymorphic: bool = False,
    find_with: Optional[Callable[..., Any]] = None,
    starts_with: Optional[str] = None,
) -> Metadata:
    """
    Фабрика для создания метаданных отношения
    """
    return Metadata(
        name=name,
        relation_type=RelationType(relation_type),
        class_name=class_name,
        foreign_key=foreign_key,
        store_in=store_in,
        polymorphic=polymorphic,
        find_with=find_with,
        starts_with=starts_with,
    )


def references_one(name: str, **kwargs) -> Metadata:
    """
    Отношение к одной записи

    Options:
        class_name: Класс цели (по умолчанию из имени: "boss" -> "Boss")
        foreign_key: Атрибут владельца с id цели (по умолчанию "<name>_id")
        store_in: Семейство колонок для хранения внешнего ключа. Если не задано,
            владелец сам вычисляет внешний ключ
        polymorphic: Хранить рядом с id имя класса цели ("<name>_type")
        find_with: Функция (owner, **options) для полного контроля над поиском
    """
    return relationship(name, RelationType.REFERENCES_ONE, **kwargs)


def references_many(name: str, **kwargs) -> Metadata:
    """
    Отношение ко многим записям, id которых хранятся списком в владельце

    Options:
        class_name: Класс цели (по умолчанию из имени: "cars" -> "Car")
        foreign_key: Атрибут владельца со списком id (по умолчанию "<name>_ids")
        store_in: Семейство колонок для хранения списка id
        starts_with: Атрибут владельца, значение которого - префикс id целей.
            Например, если id машин имеют вид "<person_id>-<n>", можно указать
            starts_with="id"
        find_with: Функция (owner, **options) для полного контроля над поиском
    """
    return relationship(name, RelationType.REFERENCES_MANY, **kwargs)


def embeds_many(name: str, **kwargs) -> Metadata:
    """
    Встроенная коллекция: записи сериализуются прямо в данные владельца

    Options:
        class_name: Класс цели (по умолчанию из имени: "addresses" -> "Address")
        store_in: Семейство колонок с записями (по умолчанию имя отношения)
    """
    return relationship(name, RelationType.EMBEDS_MANY, **kwargs)


def _single_accessor(metadata: Metadata) -> Accessor:
    name = metadata.name

    def reader(owner: Any) -> Any:
        return owner.relation_proxy(name).load()

    def writer(owner: Any, record: Any) -> Any:
        return owner.relation_proxy(name).replace(record)

    return Accessor(reader, writer)


def _collection_accessor(metadata: Metadata) -> Accessor:
    name = metadata.name

    def reader(owner: Any) -> Proxy:
        return owner.relation_proxy(name)

    def writer(owner: Any, records: Any) -> Any:
        if isinstance(records, (list, tuple)):
            return owner.relation_proxy(name).replace(*records)
        return owner.relation_proxy(name).replace(records)

    return Accessor(reader, writer)


ACCESSOR_FACTORIES: Dict[RelationType, Callable[[Metadata], Accessor]] = {
    RelationType.REFERENCES_ONE: _single_accessor,
    RelationType.REFERENCES_MANY: _collection_accessor,
    RelationType.EMBEDS_MANY: _collection_accessor,
}


class RelationsMixin:
    """
    Поддержка отношений для класса записи.

    Класс-владелец объявляет отношения в __relations__ (или через
    declare_relation). Если у отношения задан store_in, владелец должен
    уметь add_field_to_column_family(family, field, default) - туда
    добавляются поля внешнего ключа.
    """

    __relations__: ClassVar[Sequence[Metadata]] = ()
    _relations: ClassVar[RelationRegistry]

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        parent = getattr(cls, "_relations", None)
        if parent is not None:
            cls._relations = parent.copy(cls.__name__)
        else:
            cls._relations = RelationRegistry(cls.__name__)

        for metadata in cls.__dict__.get("__relations__", ()):
            cls.declare_relation(metadata)

    @classmethod
    def declare_relation(cls, metadata: Metadata) -> Metadata:
        """
        Регистрация отношения у класса

        Raises:
            RelationAlreadyDefined: Отношение с таким именем уже объявлено
            RelationshipError: Класс не умеет добавлять поля внешнего ключа
        """
        if metadata.name in cls._relations:
            raise RelationAlreadyDefined(cls.__name__, metadata.name)

        if metadata.persisting_foreign_key and metadata.relation_type is not RelationType.EMBEDS_MANY:
            cls._add_foreign_key_fields(metadata)

        cls._relations.add(metadata, ACCESSOR_FACTORIES[metadata.relation_type](metadata))
        logger.debug("%s: объявлено отношение %s", cls.__name__, metadata)
        return metadata

    @classmethod
    def _add_foreign_key_fields(cls, metadata: Metadata) -> None:
        add_field = getattr(cls, "add_field_to_column_family", None)
        if add_field is None:
            raise RelationshipError(
                f"{cls.__name__} не умеет добавлять поля, а отношение "
                f"'{metadata.name}' хранит внешний ключ в '{metadata.store_in}'"
            )

        default = [] if metadata.relation_type is RelationType.REFERENCES_MANY else None
        add_field(metadata.store_in, metadata.foreign_key, default)
        if metadata.polymorphic:
            add_field(metadata.store_in, metadata.polymorphic_type_column, None)

    @classmethod
    def relations(cls) -> RelationRegistry:
        return cls._relations

    @property
    def relation_proxies(self) -> RelationProxyCache:
        """Кэш прокси этой записи (создаётся при первом обращении)"""
        cache = self.__dict__.get("_relation_proxy_cache")
        if cache is None:
            cache = RelationProxyCache(self, type(self)._relations)
            self.__dict__["_relation_proxy_cache"] = cache
        return cache

    def relation_proxy(self, name: str) -> Optional[Proxy]:
        """Прокси отношения или None, если отношение не объявлено"""
        return self.relation_proxies.get(name)

    def read_relation(self, name: str) -> Any:
        """Значение отношения: запись для references_one, прокси для коллекций"""
        return self._accessor(name).reader(self)

    def write_relation(self, name: str, value: Any) -> Any:
        """Замена значения отношения"""
        return self._accessor(name).writer(self, value)

    def reset_relations(self) -> None:
        """Сброс загруженных отношений (например, после reload записи)"""
        self.relation_proxies.reset_all()

    def _accessor(self, name: str) -> Accessor:
        accessor = type(self)._relations.accessor(name)
        if accessor is None:
            raise RelationshipError(f"У {type(self).__name__} нет отношения '{name}'")
        return accessor
