"""
Прокси для отношения references_one
"""

import logging
from typing import Any, Optional, Type

from ..metadata import RelationType
from .base import ForeignKeyChange, Proxy

logger = logging.getLogger(__name__)


class ReferencesOneProxy(Proxy):
    """
    Одна связанная запись, внешний ключ - скалярный id в владельце.

    Для полиморфного отношения рядом с id хранится имя класса цели.
    """

    relation_type = RelationType.REFERENCES_ONE

    def get(self) -> Optional[Any]:
        """Цель отношения или None"""
        return self.load()

    def replace(self, record: Optional[Any]) -> Optional[Any]:
        """
        Замена цели отношения

        Args:
            record: Новая цель или None для очистки

        Returns:
            Новая цель

        Raises:
            RelationTypeMismatch: Тип записи не совпадает с объявленным
        """
        if record is not None:
            self._raise_if_type_mismatch(record)

        # Без store_in внешний ключ вычисляет сам владелец, изменений нет
        self.last_change = ForeignKeyChange()
        if self.metadata.persisting_foreign_key:
            old_id = self._foreign_key_value()
            new_id = record.id if record is not None else None
            self._write_owner_attribute(self.metadata.foreign_key, new_id)
            if self.metadata.polymorphic:
                self._write_owner_attribute(
                    self.metadata.polymorphic_type_column,
                    type(record).__name__ if record is not None else None,
                )
            self.last_change = ForeignKeyChange(
                added=[new_id] if new_id is not None else [],
                removed=[old_id] if old_id is not None and old_id != new_id else [],
            )

        self._target = record
        self.mark_loaded()
        logger.debug("%s.%s -> %r", type(self.owner).__name__, self.metadata.name, record)
        return record

    def _can_find_target(self) -> bool:
        return self._foreign_key_value() is not None

    def _find_target(self, **options: Any) -> Any:
        return self._target_class_for_owner().find(self._foreign_key_value())

    def _find_target_with_finder(self, **options: Any) -> Any:
        result = super()._find_target_with_finder(**options)
        if isinstance(result, (list, tuple)):
            return result[0] if result else None
        return result

    def _target_class_for_owner(self) -> Type[Any]:
        """Класс цели; для полиморфного отношения берётся из атрибута типа владельца"""
        if self.metadata.polymorphic:
            type_name = getattr(self.owner, self.metadata.polymorphic_type_column, None)
            if type_name:
                return self._model_registry().resolve(type_name)
        return self.target_class
