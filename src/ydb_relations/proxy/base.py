"""
Базовый прокси для ленивой загрузки отношений
"""

import logging
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Iterable, List, Optional, Type

from ..exceptions import RecordNotFound, RelationshipError, RelationTypeMismatch
from ..metadata import Metadata, RelationType
from ..registry import ModelRegistry, default_registry

logger = logging.getLogger(__name__)


class LoadState(Enum):
    """Состояние загрузки прокси"""

    UNLOADED = "unloaded"
    LOADED = "loaded"


@dataclass
class ForeignKeyChange:
    """Какие id добавлены в список внешних ключей владельца и какие удалены"""

    added: List[Any] = field(default_factory=list)
    removed: List[Any] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed)


def identity_key(record: Any) -> Hashable:
    """
    Ключ идентичности записи: (тип, id).

    Записи без id сравниваются как объекты.
    """
    record_id = getattr(record, "id", None)
    if record_id is None:
        return (type(record), "object", id(record))
    return (type(record), record_id)


def unique_records(records: Iterable[Any]) -> List[Any]:
    """Записи без повторов по идентичности, порядок первых вхождений сохраняется"""
    seen = set()
    result = []
    for record in records:
        key = identity_key(record)
        if key not in seen:
            seen.add(key)
            result.append(record)
    return result


def flatten_records(records: Iterable[Any]) -> List[Any]:
    """(a, [b, c]) -> [a, b, c]"""
    result: List[Any] = []
    for record in records:
        if isinstance(record, (list, tuple)):
            result.extend(flatten_records(record))
        else:
            result.append(record)
    return result


class Proxy:
    """
    Прокси одного отношения одной записи-владельца.

    Данные цели загружаются при первом обращении. После загрузки повторные
    обращения не ходят в хранилище, пока прокси не сброшен через reset().
    """

    relation_type: RelationType

    def __init__(self, owner: Any, metadata: Metadata):
        """
        Args:
            owner: Запись-владелец (хранится слабая ссылка)
            metadata: Метаданные отношения
        """
        if owner is None:
            raise RelationshipError(f"Для прокси '{metadata.name}' не передан владелец")

        self._owner_ref = weakref.ref(owner)
        self.metadata = metadata
        self._state = LoadState.UNLOADED
        self._target: Any = self._empty_target()
        self.last_change = ForeignKeyChange()

    @property
    def owner(self) -> Any:
        owner = self._owner_ref()
        if owner is None:
            raise RelationshipError(
                f"Владелец отношения '{self.metadata.name}' уже удалён из памяти"
            )
        return owner

    @property
    def target(self) -> Any:
        """Текущее значение цели в памяти (без загрузки)"""
        return self._target

    @property
    def target_class(self) -> Type[Any]:
        """Класс цели, разрешённый через реестр моделей"""
        return self._model_registry().resolve(self.metadata.class_name)

    def _model_registry(self) -> ModelRegistry:
        return getattr(type(self.owner), "_registry", None) or default_registry

    def is_loaded(self) -> bool:
        """Проверка, загружена ли цель"""
        return self._state is LoadState.LOADED

    def mark_loaded(self) -> None:
        self._state = LoadState.LOADED

    def reset(self) -> None:
        """Сброс загруженного значения; следующее обращение загрузит его заново"""
        self._state = LoadState.UNLOADED
        self._target = self._empty_target()

    def can_load(self) -> bool:
        """Имеет ли смысл обращаться к хранилищу"""
        return self.metadata.has_custom_finder or self._can_find_target()

    def load(self, reload: bool = False, **options: Any) -> Any:
        """
        Загрузка цели (с ленивой загрузкой)

        Args:
            reload: Загрузить заново, даже если цель уже загружена
            **options: Опции, передаваемые пользовательскому поиску

        Returns:
            Загруженная цель
        """
        if self.is_loaded() and not reload:
            return self._target

        target = self._empty_target()
        if self.can_load():
            try:
                if self.metadata.has_custom_finder:
                    target = self._find_target_with_finder(**options)
                else:
                    target = self._find_target(**options)
            except RecordNotFound as e:
                logger.debug("Цель отношения '%s' не найдена: %s", self.metadata.name, e)
                target = self._empty_target()

        self._target = target
        self.mark_loaded()
        logger.debug(
            "Загружено отношение %s.%s", type(self.owner).__name__, self.metadata.name
        )
        return self._target

    def _empty_target(self) -> Any:
        return None

    def _can_find_target(self) -> bool:
        raise NotImplementedError

    def _find_target(self, **options: Any) -> Any:
        raise NotImplementedError

    def _find_target_with_finder(self, **options: Any) -> Any:
        return self.metadata.find_with(self.owner, **options)

    def _foreign_key_value(self) -> Any:
        return getattr(self.owner, self.metadata.foreign_key, None)

    def _write_owner_attribute(self, name: str, value: Any) -> None:
        """Запись атрибута владельца с отметкой об изменении"""
        owner = self.owner
        mark_changed = getattr(owner, "mark_attribute_changed", None)
        if mark_changed is not None:
            mark_changed(name)
        setattr(owner, name, value)

    def _raise_if_type_mismatch(self, record: Any) -> None:
        if self.metadata.polymorphic:
            return

        target_class = self.target_class
        if not isinstance(record, target_class):
            raise RelationTypeMismatch(target_class.__name__, type(record).__name__)

    def __repr__(self) -> str:
        state = "loaded" if self.is_loaded() else "unloaded"
        return f"<{type(self).__name__} {self.metadata.name} ({state})>"


class CollectionProxy(Proxy):
    """Общее поведение прокси, представляющих несколько записей"""

    def _empty_target(self) -> List[Any]:
        return []

    def load(self, reload: bool = False, **options: Any) -> List[Any]:
        """
        Загрузка с объединением: записи, добавленные в память до загрузки,
        не теряются, повторов по идентичности нет.
        """
        target_before_load = list(self._target)
        target_after_load = super().load(reload=reload, **options)

        self._target = self._order_loaded(unique_records(target_before_load + target_after_load))
        return self._target

    def _order_loaded(self, records: List[Any]) -> List[Any]:
        return records

    def _find_target_with_finder(self, **options: Any) -> List[Any]:
        result = super()._find_target_with_finder(**options)
        if result is None:
            return []
        if not isinstance(result, (list, tuple)):
            result = [result]
        return [record for record in result if record is not None]

    def _validate(self, records: List[Any]) -> bool:
        """Все записи пачки должны быть валидны, иначе пачка отклоняется целиком"""
        invalid = [record for record in records if not record.is_valid()]
        if invalid:
            logger.warning(
                "Отклонено добавление в %s.%s: невалидных записей %d из %d",
                type(self.owner).__name__, self.metadata.name, len(invalid), len(records),
            )
            return False
        return True

    def _save_owner_if_persisted(self) -> None:
        owner = self.owner
        if owner.is_persisted():
            owner.save()

    def includes(self, record_or_id: Any) -> bool:
        raise NotImplementedError

    def length(self) -> int:
        raise NotImplementedError

    def limit(self, limit: int) -> List[Any]:
        raise NotImplementedError

    def add(self, *records: Any) -> Optional['CollectionProxy']:
        raise NotImplementedError

    def delete(self, *records: Any) -> ForeignKeyChange:
        raise NotImplementedError

    def destroy(self, *records: Any) -> ForeignKeyChange:
        raise NotImplementedError

    def replace(self, *records: Any) -> Optional['CollectionProxy']:
        """
        Полная замена содержимого (не дифф): удалить всё, затем добавить новые.

        replace(None) очищает отношение. Если среди новых записей есть
        невалидные, ничего не меняется и возвращается None.

        Raises:
            RelationTypeMismatch: Тип одной из записей не совпадает с объявленным
                (коллекция при этом не меняется)
        """
        records = flatten_records(records)

        if len(records) == 1 and records[0] is None:
            self.delete_all()
            return self

        if not self._validate(records):
            return None
        for record in records:
            self._raise_if_type_mismatch(record)

        removed = self.delete_all().removed
        result = self.add(*records)
        self.last_change = ForeignKeyChange(added=list(self.last_change.added), removed=removed)
        return result

    def delete_all(self) -> ForeignKeyChange:
        """Удаляет все записи из отношения, сами записи не уничтожаются"""
        change = self.delete(*list(self.load()))
        self.reset()
        self.mark_loaded()
        self.last_change = change
        return change

    def destroy_all(self) -> ForeignKeyChange:
        """Удаляет все записи из отношения и уничтожает их"""
        change = self.destroy(*list(self.load()))
        self.reset()
        self.mark_loaded()
        self.last_change = change
        return change

    def is_empty(self) -> bool:
        return self.length() == 0

    def first(self) -> Optional[Any]:
        records = self.limit(1)
        return records[0] if records else None

    def all(self, **options: Any) -> List[Any]:
        return list(self.load(**options))

    def __len__(self) -> int:
        return self.length()

    def __iter__(self):
        return iter(list(self.load()))

    def __contains__(self, record_or_id: object) -> bool:
        return self.includes(record_or_id)

    def __getitem__(self, index):
        return self.load()[index]
