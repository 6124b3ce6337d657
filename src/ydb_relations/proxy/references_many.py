"""
Прокси для отношения references_many
"""

import logging
from typing import Any, Iterator, List, Optional

from ..config import get_settings
from ..exceptions import RecordNotFound, UnsupportedFinderOption
from ..metadata import RelationType
from .base import CollectionProxy, ForeignKeyChange, flatten_records

logger = logging.getLogger(__name__)


def _starts_with(record_id: Any, prefix: Optional[str]) -> bool:
    if not prefix:
        return True
    return str(record_id).startswith(str(prefix))


def _in_batches(items: List[Any], batch_size: int) -> Iterator[List[Any]]:
    for start in range(0, len(items), batch_size):
        yield items[start:start + batch_size]


class ReferencesManyProxy(CollectionProxy):
    """
    Коллекция связанных записей, id которых хранятся списком в владельце
    (по умолчанию атрибут <relation>_ids).

    Класс цели должен уметь find(id) и find_many(ids).
    """

    relation_type = RelationType.REFERENCES_MANY

    SUPPORTED_FINDER_OPTIONS = ("limit", "starts_with")

    def add(self, *records: Any) -> Optional['ReferencesManyProxy']:
        """
        Добавление записей в коллекцию

        Пачка добавляется целиком или не добавляется вовсе: если хотя бы
        одна запись невалидна, ничего не меняется и возвращается None.
        Если владелец сохранён, добавленные записи и сам владелец сохраняются.

        Returns:
            self или None, если пачка отклонена

        Raises:
            RelationTypeMismatch: Тип записи не совпадает с объявленным
        """
        records = flatten_records(records)
        if not self._validate(records):
            return None

        for record in records:
            self._raise_if_type_mismatch(record)

        owner = self.owner
        save_records = owner.is_persisted()
        change = ForeignKeyChange()

        for record in records:
            if self.includes(record):
                continue

            if self._add_foreign_key_in_owner(record.id):
                change.added.append(record.id)
            self._target.append(record)
            if save_records:
                record.save()

        if save_records:
            owner.save()

        self.last_change = change
        if change:
            logger.debug(
                "%s.%s: добавлены id %s", type(owner).__name__, self.metadata.name, change.added
            )
        return self

    def push(self, *records: Any) -> Optional['ReferencesManyProxy']:
        return self.add(*records)

    concat = push

    def delete(self, *records: Any) -> ForeignKeyChange:
        """Удаляет записи из коллекции, сами записи не уничтожаются"""
        return self._delete_or_destroy(records, destroy=False)

    def destroy(self, *records: Any) -> ForeignKeyChange:
        """Удаляет записи из коллекции и уничтожает каждую из них"""
        return self._delete_or_destroy(records, destroy=True)

    def delete_all(self) -> ForeignKeyChange:
        """Удаляет все записи из отношения, сами записи не уничтожаются"""
        return self._delete_or_destroy_all(destroy=False)

    def destroy_all(self) -> ForeignKeyChange:
        """Удаляет все записи из отношения и уничтожает их"""
        return self._delete_or_destroy_all(destroy=True)

    def includes(self, record_or_id: Any) -> bool:
        """Проверка, входит ли запись (или id) в коллекцию"""
        record_id = getattr(record_or_id, "id", record_or_id)
        if self._in_memory(record_or_id) is not None:
            return True
        try:
            return self.find(record_id) is not None
        except RecordNotFound:
            return False

    def length(self) -> int:
        """Количество записей; без загрузки, если хватает списка id"""
        if self.is_loaded():
            return len(self._target)
        if self.metadata.has_custom_finder:
            return len(self.load())
        return len(self._foreign_keys_in_owner())

    def find(self, id: Any) -> Any:
        """
        Поиск записи коллекции по id

        Raises:
            RecordNotFound: Запись не входит в коллекцию или не найдена
        """
        record = self._in_memory(id)

        if record is None and not self.is_loaded():
            if self.metadata.has_custom_finder:
                if _starts_with(id, self._starts_with_prefix()):
                    record = self._lookup(id)
            elif self._foreign_key_in_owner_exists(id):
                record = self._lookup(id)

        if record is None:
            raise RecordNotFound(self.metadata.target_type_name, id)
        return record

    def all(self, **options: Any) -> List[Any]:
        """
        Все записи коллекции

        Без опций коллекция загружается целиком. Если внешние ключи хранятся
        в владельце, limit и starts_with применяются к списку id без полной
        загрузки, остальные опции не поддерживаются.

        Raises:
            UnsupportedFinderOption: Опция не может быть выполнена над списком id
        """
        if not options:
            return list(self.load())

        if self.metadata.has_custom_finder:
            if self.is_loaded():
                return self._select_loaded(**options)
            return self._find_target_with_finder(**options)

        unsupported = [name for name in options if name not in self.SUPPORTED_FINDER_OPTIONS]
        if unsupported:
            raise UnsupportedFinderOption(unsupported, type(self.owner).__name__)

        if self.is_loaded():
            return self._select_loaded(**options)

        ids = [i for i in self._foreign_keys_in_owner() if _starts_with(i, options.get("starts_with"))]
        if options.get("limit") is not None:
            ids = ids[:options["limit"]]
        return self._find_many(ids)

    def limit(self, limit: int) -> List[Any]:
        """
        Первые limit записей коллекции.

        Если коллекция не загружена, берутся первые limit id из владельца и
        запрашиваются одним вызовом; прокси при этом не помечается загруженным.
        """
        if self.is_loaded():
            return self._target[:limit]
        if self.metadata.has_custom_finder:
            return self._find_target_with_finder(limit=limit)[:limit]

        return self._find_many(self._foreign_keys_in_owner()[:limit])

    def find_each_batch(
        self, batch_size: Optional[int] = None, starts_with: Optional[str] = None
    ) -> Iterator[List[Any]]:
        """
        Записи коллекции пачками

        Если коллекция не загружена, список id владельца режется на пачки и
        каждая пачка запрашивается отдельно, только когда до неё дошла очередь.
        Каждый вызов начинает с первой пачки.

        Args:
            batch_size: Размер пачки (по умолчанию из настроек, 1000)
            starts_with: Брать только записи, id которых начинаются с префикса

        Returns:
            Генератор списков записей

        Raises:
            ValueError: batch_size меньше 1 (сразу при вызове)
        """
        if batch_size is None:
            batch_size = get_settings().batch_size
        if batch_size < 1:
            raise ValueError("batch_size должен быть положительным")

        return self._each_batch(batch_size, starts_with)

    def _each_batch(self, batch_size: int, starts_with: Optional[str]) -> Iterator[List[Any]]:
        if self.is_loaded():
            records = [r for r in self._target if _starts_with(r.id, starts_with)]
            yield from _in_batches(records, batch_size)
        elif self.metadata.has_custom_finder:
            options = {"batch_size": batch_size}
            if starts_with:
                options["starts_with"] = starts_with
            records = self._find_target_with_finder(**options)
            records = [r for r in records if _starts_with(r.id, starts_with)]
            yield from _in_batches(records, batch_size)
        else:
            ids = [i for i in self._foreign_keys_in_owner() if _starts_with(i, starts_with)]
            for ids_in_batch in _in_batches(ids, batch_size):
                yield self._find_many(ids_in_batch)

    def find_each(
        self, batch_size: Optional[int] = None, starts_with: Optional[str] = None
    ) -> Iterator[Any]:
        """Записи коллекции по одной (внутри - пачками, см. find_each_batch)"""
        for batch in self.find_each_batch(batch_size=batch_size, starts_with=starts_with):
            yield from batch

    def _in_memory(self, record_or_id: Any) -> Optional[Any]:
        """Запись из памяти: тот же объект или запись с тем же id"""
        record_id = getattr(record_or_id, "id", record_or_id)
        for record in self._target:
            if record is record_or_id or (record_id is not None and record.id == record_id):
                return record
        return None

    def _select_loaded(self, limit: Optional[int] = None, starts_with: Optional[str] = None, **_) -> List[Any]:
        records = [r for r in self._target if _starts_with(r.id, starts_with)]
        return records[:limit] if limit is not None else records

    def _delete_or_destroy_all(self, destroy: bool) -> ForeignKeyChange:
        change = self._delete_or_destroy(list(self.load()), destroy=destroy, save_owner=False)

        # id, для которых не нашлось записей, после удаления всех тоже не нужны
        leftover = self._foreign_keys_in_owner()
        if leftover and self._updates_foreign_keys():
            self._write_owner_attribute(self.metadata.foreign_key, [])
            change.removed.extend(leftover)

        self.reset()
        self.mark_loaded()
        self._save_owner_if_persisted()
        self.last_change = change
        return change

    def _delete_or_destroy(self, records: Any, destroy: bool, save_owner: bool = True) -> ForeignKeyChange:
        change = ForeignKeyChange()

        for record in flatten_records(records):
            if not self.includes(record):
                continue

            if self._remove_foreign_key_in_owner(record.id):
                change.removed.append(record.id)
            self._target = [r for r in self._target if r is not record and r.id != record.id]
            if destroy:
                record.destroy()

        if save_owner:
            self._save_owner_if_persisted()

        self.last_change = change
        if change:
            logger.debug(
                "%s.%s: удалены id %s",
                type(self.owner).__name__, self.metadata.name, change.removed,
            )
        return change

    def _order_loaded(self, records: List[Any]) -> List[Any]:
        # Порядок как в списке id владельца; записи вне списка остаются в конце
        positions = {fk: index for index, fk in enumerate(self._foreign_keys_in_owner())}
        return sorted(records, key=lambda r: positions.get(r.id, len(positions)))

    def _find_target(self, **options: Any) -> List[Any]:
        unsupported = [name for name in options if name in UnsupportedFinderOption.OPTIONS]
        if unsupported:
            raise UnsupportedFinderOption(unsupported, type(self.owner).__name__)
        return self._find_many(self._foreign_keys_in_owner())

    def _find_many(self, ids: List[Any]) -> List[Any]:
        """Записи по списку id в порядке этого списка (порядок ответа хранилища не важен)"""
        if not ids:
            return []
        logger.debug("%s.find_many: %d id", self.metadata.target_type_name, len(ids))
        records = [r for r in self.target_class.find_many(list(ids)) if r is not None]

        positions = {id: index for index, id in reversed(list(enumerate(ids)))}
        return sorted(records, key=lambda r: positions.get(r.id, len(positions)))

    def _lookup(self, id: Any) -> Any:
        try:
            return self.target_class.find(id)
        except RecordNotFound:
            return None

    def _can_find_target(self) -> bool:
        return bool(self._foreign_keys_in_owner())

    def _starts_with_prefix(self) -> Optional[str]:
        if not self.metadata.starts_with:
            return None
        return getattr(self.owner, self.metadata.starts_with, None)

    def _updates_foreign_keys(self) -> bool:
        return self.metadata.persisting_foreign_key and hasattr(self.owner, self.metadata.foreign_key)

    def _foreign_keys_in_owner(self) -> List[Any]:
        return list(getattr(self.owner, self.metadata.foreign_key, None) or [])

    def _foreign_key_in_owner_exists(self, id: Any) -> bool:
        return id in self._foreign_keys_in_owner()

    def _add_foreign_key_in_owner(self, id: Any) -> bool:
        if not self._updates_foreign_keys():
            return False
        ids = self._foreign_keys_in_owner()
        if id in ids:
            return False
        self._write_owner_attribute(self.metadata.foreign_key, ids + [id])
        return True

    def _remove_foreign_key_in_owner(self, id: Any) -> bool:
        if not self._updates_foreign_keys():
            return False
        ids = self._foreign_keys_in_owner()
        if id not in ids:
            return False
        self._write_owner_attribute(self.metadata.foreign_key, [i for i in ids if i != id])
        return True
