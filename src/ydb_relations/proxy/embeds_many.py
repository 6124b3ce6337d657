"""
Прокси для отношения embeds_many
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..coder import default_coder
from ..exceptions import RecordNotFound
from ..metadata import RelationType
from .base import CollectionProxy, ForeignKeyChange, flatten_records, identity_key

logger = logging.getLogger(__name__)


class EmbedsManyProxy(CollectionProxy):
    """
    Коллекция записей, сериализованных прямо в данных владельца.

    В owner.raw_data[store_in] лежит словарь id -> сериализованные атрибуты.
    Отдельного списка внешних ключей нет: состав коллекции попадает
    в хранилище при сохранении владельца (см. update_hash).
    Класс цели должен уметь from_raw(id, attributes).
    """

    relation_type = RelationType.EMBEDS_MANY

    def __init__(self, owner: Any, metadata):
        super().__init__(owner, metadata)
        # Удалённые из коллекции записи, ещё не стёртые в хранилище
        self._removed: List[Any] = []

    @property
    def coder(self):
        return getattr(type(self.owner), "coder", None) or default_coder

    def raw_targets(self) -> Mapping[Any, Any]:
        """Словарь id -> сериализованные атрибуты из данных владельца"""
        raw_data = getattr(self.owner, "raw_data", None) or {}
        return raw_data.get(self.metadata.store_in) or {}

    def update_hash(self) -> Dict[Any, Optional[bytes]]:
        """
        Что записать во встроенное поле при сохранении владельца

        Returns:
            id -> сериализованный снимок (новые и изменённые записи)
            или None (удалённые записи); неизменённые записи не попадают
        """
        result: Dict[Any, Optional[bytes]] = {}

        for record in self._removed:
            result[record.id] = None

        for record in self._target:
            if record.is_destroyed():
                result[record.id] = None
            elif record.is_new_record() or record.is_changed():
                result[record.id] = self.coder.dump(record.attributes_snapshot())

        return result

    def changes_applied(self) -> None:
        """Вызывается владельцем после сохранения update_hash"""
        self._removed = []
        self._target = [record for record in self._target if not record.is_destroyed()]

    def changed(self) -> bool:
        """Есть ли новые, изменённые или удалённые записи"""
        if self._removed:
            return True
        return any(
            record.is_new_record() or record.is_destroyed() or record.is_changed()
            for record in self._target
        )

    def changes(self) -> Dict[Any, Mapping[str, Any]]:
        """id -> изменения для изменённых записей"""
        return {
            record.id: record.changes()
            for record in self._target
            if record.is_changed()
        }

    def add(self, *records: Any) -> Optional['EmbedsManyProxy']:
        """
        Добавление записей в коллекцию

        Если хотя бы одна запись невалидна, ничего не меняется и
        возвращается None. Сохранённый владелец сохраняется сразу.
        """
        records = flatten_records(records)
        if not self._validate(records):
            return None

        for record in records:
            self._raise_if_type_mismatch(record)

        change = ForeignKeyChange()
        for record in records:
            if not self.includes(record):
                self._target.append(record)
                self._removed = [r for r in self._removed if identity_key(r) != identity_key(record)]
                change.added.append(record.id)

        self.last_change = change
        self._save_owner_if_persisted()
        return self

    def push(self, *records: Any) -> Optional['EmbedsManyProxy']:
        return self.add(*records)

    concat = push

    def delete(self, *records: Any) -> ForeignKeyChange:
        """Удаляет записи из коллекции (и из данных владельца при сохранении)"""
        return self._delete_or_destroy(records, destroy=False)

    def destroy(self, *records: Any) -> ForeignKeyChange:
        """Удаляет записи из коллекции и уничтожает каждую из них"""
        return self._delete_or_destroy(records, destroy=True)

    def includes(self, record_or_id: Any) -> bool:
        record_id = getattr(record_or_id, "id", record_or_id)
        return any(
            record is record_or_id or (record_id is not None and record.id == record_id)
            for record in self.load()
        )

    def length(self) -> int:
        return len(self.load())

    def find(self, id: Any) -> Any:
        """
        Поиск записи коллекции по id

        Raises:
            RecordNotFound: Записи с таким id нет в коллекции
        """
        for record in self.load():
            if record.id == id:
                return record
        raise RecordNotFound(self.metadata.target_type_name, id)

    def limit(self, limit: int) -> List[Any]:
        return self.load()[:limit]

    def _delete_or_destroy(self, records: Any, destroy: bool) -> ForeignKeyChange:
        change = ForeignKeyChange()

        for record in flatten_records(records):
            if not self.includes(record):
                continue

            self._target = [
                r for r in self._target
                if r is not record and (record.id is None or r.id != record.id)
            ]
            if destroy:
                record.destroy()
            if record.id is not None and record.id in self.raw_targets():
                self._removed.append(record)
            change.removed.append(record.id)

        self.last_change = change
        self._save_owner_if_persisted()
        return change

    def _can_find_target(self) -> bool:
        return bool(self.raw_targets())

    def _find_target(self, **options: Any) -> List[Any]:
        target_class = self.target_class
        records = []
        removed = {identity_key(r) for r in self._removed}

        for id, raw in self.raw_targets().items():
            if raw is None:
                continue
            attributes = self.coder.load(raw) if isinstance(raw, (bytes, str)) else raw
            record = target_class.from_raw(id, attributes)
            if identity_key(record) not in removed:
                records.append(record)

        logger.debug("%s: восстановлено встроенных записей %d", self.metadata.name, len(records))
        return records
