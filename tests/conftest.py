"""
Общие фикстуры: записи и хранилище в памяти
"""

from typing import Any, ClassVar, Dict, List, Optional

import pytest

from ydb_relations import (
    EmbedsManyProxy,
    RecordNotFound,
    RelationsMixin,
    Schema,
    embeds_many,
    references_many,
    references_one,
    register_model,
)


class InMemoryStore:
    """Хранилище записей в памяти со счётчиками обращений"""

    def __init__(self):
        self.records: Dict[Any, Any] = {}
        self.find_calls: List[Any] = []
        self.find_many_calls: List[List[Any]] = []

    def save(self, record):
        self.records[(type(record), record.id)] = record

    def delete(self, record):
        self.records.pop((type(record), record.id), None)

    def find(self, model, id):
        self.find_calls.append(id)
        try:
            return self.records[(model, id)]
        except KeyError:
            raise RecordNotFound(model.__name__, id) from None

    def find_many(self, model, ids):
        self.find_many_calls.append(list(ids))
        return [self.records[(model, id)] for id in ids if (model, id) in self.records]

    @property
    def lookups(self) -> int:
        return len(self.find_calls) + len(self.find_many_calls)


class Record(RelationsMixin):
    """Простейшая запись: атрибуты, флаги состояния, сохранение в InMemoryStore"""

    store: ClassVar[Optional[InMemoryStore]] = None
    schema: ClassVar[Schema] = Schema()

    def __init_subclass__(cls, **kwargs):
        cls.schema = cls.schema.copy()
        super().__init_subclass__(**kwargs)

    def __init__(self, id=None, valid=True, **attributes):
        self.id = id
        self.valid = valid
        self.raw_data: Dict[str, Dict[Any, Any]] = {}
        self.changed_attributes: List[str] = []
        self.save_count = 0
        self._persisted = False
        self._destroyed = False

        for name, default in type(self).schema.defaults().items():
            setattr(self, name, default)
        for name, value in attributes.items():
            setattr(self, name, value)

    def __repr__(self):
        return f"<{type(self).__name__} {self.id}>"

    @classmethod
    def add_field_to_column_family(cls, family, field, default=None):
        cls.schema.add_field(family, field, default)

    @classmethod
    def find(cls, id):
        return cls.store.find(cls, id)

    @classmethod
    def find_many(cls, ids):
        return cls.store.find_many(cls, ids)

    @classmethod
    def from_raw(cls, id, attributes):
        record = cls(id=id, **{k: v for k, v in attributes.items() if k != "id"})
        record._persisted = True
        return record

    def is_valid(self):
        return self.valid

    def is_persisted(self):
        return self._persisted and not self._destroyed

    def is_new_record(self):
        return not self._persisted and not self._destroyed

    def is_destroyed(self):
        return self._destroyed

    def is_changed(self):
        return bool(self.changed_attributes)

    def changes(self):
        return {name: getattr(self, name, None) for name in self.changed_attributes}

    def mark_attribute_changed(self, name):
        if name not in self.changed_attributes:
            self.changed_attributes.append(name)

    def attributes_snapshot(self):
        snapshot = {"id": self.id}
        if hasattr(self, "name"):
            snapshot["name"] = self.name
        return snapshot

    def save(self):
        self.save_count += 1
        for name in list(self.relation_proxies):
            proxy = self.relation_proxies.peek(name)
            if isinstance(proxy, EmbedsManyProxy):
                family = self.raw_data.setdefault(proxy.metadata.store_in, {})
                for id, payload in proxy.update_hash().items():
                    if payload is None:
                        family.pop(id, None)
                    else:
                        family[id] = payload
                for record in proxy.target:
                    record._persisted = True
                    record.changed_attributes = []
                proxy.changes_applied()

        type(self).store.save(self)
        self._persisted = True
        self.changed_attributes = []
        return True

    def destroy(self):
        self._destroyed = True
        type(self).store.delete(self)
        return True


def find_cars_by_prefix(owner, limit=None, starts_with=None, batch_size=None):
    """Пользовательский поиск: машины, id которых начинаются с id владельца"""
    owner.finder_calls.append({"limit": limit, "starts_with": starts_with, "batch_size": batch_size})
    prefix = starts_with or f"{owner.id}-"
    cars = sorted(
        (r for (model, id), r in Record.store.records.items() if model is Car and str(id).startswith(prefix)),
        key=lambda r: r.id,
    )
    return cars[:limit] if limit is not None else cars


@register_model
class Person(Record):
    __relations__ = [
        references_one("boss", class_name="Person", store_in="info"),
        references_one("favorite", polymorphic=True, store_in="info"),
        references_many("cars", store_in="info"),
        references_many("owned_cars", class_name="Car", find_with=find_cars_by_prefix, starts_with="id"),
        embeds_many("addresses"),
    ]

    def __init__(self, id=None, **attributes):
        self.finder_calls = []
        super().__init__(id=id, **attributes)


@register_model
class Car(Record):
    pass


@register_model
class Address(Record):
    pass


@pytest.fixture(autouse=True)
def store():
    Record.store = InMemoryStore()
    yield Record.store
    Record.store = None


def persisted(record):
    """Сохранить запись в хранилище, не считая это обращением из прокси"""
    Record.store.save(record)
    record._persisted = True
    return record


@pytest.fixture
def person(store):
    return persisted(Person("p1", name="Иван"))


@pytest.fixture
def cars(store):
    return [persisted(Car(f"c{i}", name=f"car {i}")) for i in range(1, 6)]
