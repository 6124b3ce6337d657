"""
Тесты ReferencesManyProxy
"""

import dataclasses

import pytest

from ydb_relations import (
    RecordNotFound,
    ReferencesManyProxy,
    RelationTypeMismatch,
    UnsupportedFinderOption,
)
from ydb_relations.config import reset_settings

from conftest import Address, Car, Person, persisted


@pytest.fixture
def proxy(person):
    return person.relation_proxy("cars")


def assert_consistent(owner, proxy):
    assert owner.cars_ids == [record.id for record in proxy.target]


class TestAdd:
    def test_add_to_persisted_owner_saves_everything(self, person, proxy, cars, store):
        c1, c2 = cars[:2]

        result = proxy.add(c1, c2)

        assert result is proxy
        assert person.cars_ids == ["c1", "c2"]
        assert c1.save_count == 1
        assert c2.save_count == 1
        assert person.save_count == 1
        assert proxy.length() == 2
        assert proxy.last_change.added == ["c1", "c2"]
        assert store.lookups == 0

    def test_add_to_new_owner_does_not_save(self, cars):
        owner = Person("p2")
        proxy = owner.relation_proxy("cars")

        proxy.add(cars[0])

        assert owner.cars_ids == ["c1"]
        assert owner.save_count == 0
        assert cars[0].save_count == 0
        assert "cars_ids" in owner.changed_attributes

    def test_invalid_record_rejects_whole_batch(self, person, proxy, cars):
        proxy.add(cars[0])
        invalid = Car("bad", valid=False)

        result = proxy.add(cars[1], invalid)

        assert result is None
        assert person.cars_ids == ["c1"]
        assert proxy.target == [cars[0]]

    def test_add_nothing_returns_proxy(self, person, proxy):
        assert proxy.add() is proxy
        assert person.cars_ids == []

    def test_type_mismatch_raises_before_any_change(self, person, proxy, cars):
        with pytest.raises(RelationTypeMismatch):
            proxy.add(cars[0], Address("a1"))

        assert person.cars_ids == []
        assert proxy.target == []

    def test_same_record_twice_is_added_once(self, person, proxy, cars):
        proxy.add(cars[0], cars[0])
        proxy.add(cars[0])

        assert person.cars_ids == ["c1"]
        assert proxy.target == [cars[0]]

    def test_push_and_concat_are_aliases(self, person, proxy, cars):
        proxy.push(cars[0])
        proxy.concat([cars[1], cars[2]])

        assert person.cars_ids == ["c1", "c2", "c3"]


class TestFind:
    def test_id_not_in_foreign_keys_raises_without_lookup(self, person, proxy, store):
        person.cars_ids = ["x", "y"]

        with pytest.raises(RecordNotFound) as exc:
            proxy.find("z")

        assert exc.value.id == "z"
        assert exc.value.model_name == "Car"
        assert store.lookups == 0

    def test_id_in_foreign_keys_is_looked_up(self, person, proxy, cars, store):
        person.cars_ids = ["c1", "c2"]

        assert proxy.find("c2") is cars[1]
        assert store.find_calls == ["c2"]
        assert not proxy.is_loaded()

    def test_loaded_proxy_searches_in_memory(self, person, proxy, cars, store):
        person.cars_ids = ["c1", "c2"]
        proxy.load()
        lookups = store.lookups

        assert proxy.find("c1") is cars[0]
        with pytest.raises(RecordNotFound):
            proxy.find("c3")
        assert store.lookups == lookups

    def test_includes(self, person, proxy, cars):
        person.cars_ids = ["c1"]

        assert proxy.includes("c1")
        assert proxy.includes(cars[0])
        assert cars[0] in proxy
        assert not proxy.includes("c2")
        assert not proxy.includes(cars[1])

    def test_includes_dangling_id_is_false(self, person, proxy):
        person.cars_ids = ["ghost"]

        assert not proxy.includes("ghost")


class TestLoad:
    def test_nothing_to_load_skips_storage(self, proxy, store):
        assert not proxy.can_load()
        assert proxy.load() == []
        assert proxy.is_loaded()
        assert store.lookups == 0

    def test_load_fetches_ids_in_one_call(self, person, proxy, cars, store):
        person.cars_ids = ["c3", "c1"]

        assert proxy.load() == [cars[2], cars[0]]
        assert store.find_many_calls == [["c3", "c1"]]

    def test_loaded_proxy_does_not_refetch(self, person, proxy, cars, store):
        person.cars_ids = ["c1"]
        proxy.load()
        proxy.load()
        list(proxy)

        assert len(store.find_many_calls) == 1

    def test_reload_does_not_duplicate(self, person, proxy, cars, store):
        person.cars_ids = ["c1", "c2"]
        proxy.load()
        proxy.load(reload=True)

        assert proxy.target == [cars[0], cars[1]]
        assert len(store.find_many_calls) == 2

    def test_load_keeps_unsaved_records(self, cars):
        owner = Person("p2", cars_ids=["c1"])
        proxy = owner.relation_proxy("cars")
        fresh = Car("new")

        proxy.add(fresh)
        proxy.load()

        assert proxy.target == [cars[0], fresh]
        assert_consistent(owner, proxy)

    def test_reset_forces_reload(self, person, proxy, cars, store):
        person.cars_ids = ["c1"]
        proxy.load()
        proxy.reset()

        assert not proxy.is_loaded()
        assert proxy.target == []
        proxy.load()
        assert len(store.find_many_calls) == 2


class TestReads:
    def test_length_uses_foreign_keys_without_loading(self, person, proxy, store):
        person.cars_ids = ["c1", "c2", "c3"]

        assert proxy.length() == 3
        assert len(proxy) == 3
        assert not proxy.is_empty()
        assert not proxy.is_loaded()
        assert store.lookups == 0

    def test_limit_fetches_only_prefix(self, person, proxy, cars, store):
        person.cars_ids = ["c1", "c2", "c3", "c4"]

        assert proxy.limit(2) == [cars[0], cars[1]]
        assert store.find_many_calls == [["c1", "c2"]]
        assert not proxy.is_loaded()

    def test_limit_on_loaded_proxy_slices_memory(self, person, proxy, cars, store):
        person.cars_ids = ["c1", "c2", "c3"]
        proxy.load()

        assert proxy.limit(2) == [cars[0], cars[1]]
        assert len(store.find_many_calls) == 1

    def test_first(self, person, proxy, cars):
        assert proxy.first() is None
        person.cars_ids = ["c2", "c1"]
        assert proxy.first() is cars[1]

    def test_unloaded_reads_keep_foreign_key_order(self, person, proxy, cars, store, monkeypatch):
        find_many = store.find_many
        monkeypatch.setattr(store, "find_many", lambda model, ids: list(reversed(find_many(model, ids))))
        person.cars_ids = ["c1", "c2", "c3"]

        assert proxy.limit(2) == [cars[0], cars[1]]
        assert proxy.first() is cars[0]
        assert proxy.all(limit=2) == [cars[0], cars[1]]
        assert list(proxy.find_each_batch(batch_size=2)) == [[cars[0], cars[1]], [cars[2]]]

        proxy.load()
        assert proxy.limit(2) == [cars[0], cars[1]]

    def test_all_with_offset_is_unsupported(self, person, proxy):
        person.cars_ids = ["c1"]

        with pytest.raises(UnsupportedFinderOption) as exc:
            proxy.all(offset=5)

        assert exc.value.options == ["offset"]
        assert "offset" in str(exc.value)

    def test_all_with_limit_and_prefix_does_not_load(self, person, proxy, cars, store):
        persisted(Car("x1"))
        person.cars_ids = ["c1", "x1", "c2", "c3"]

        assert proxy.all(limit=2, starts_with="c") == [cars[0], cars[1]]
        assert store.find_many_calls == [["c1", "c2"]]
        assert not proxy.is_loaded()

    def test_all_loads_everything(self, person, proxy, cars):
        person.cars_ids = ["c1", "c2"]

        assert proxy.all() == [cars[0], cars[1]]
        assert proxy.is_loaded()


class TestBatches:
    def test_batches_cover_all_ids_once(self, person, proxy, cars, store):
        person.cars_ids = [car.id for car in cars]

        batches = list(proxy.find_each_batch(batch_size=2))

        assert [len(batch) for batch in batches] == [2, 2, 1]
        ids = [record.id for batch in batches for record in batch]
        assert sorted(ids) == sorted(person.cars_ids)
        assert len(set(ids)) == len(ids)
        assert store.find_many_calls == [["c1", "c2"], ["c3", "c4"], ["c5"]]
        assert not proxy.is_loaded()

    def test_batches_are_fetched_lazily(self, person, proxy, cars, store):
        person.cars_ids = [car.id for car in cars]

        batches = proxy.find_each_batch(batch_size=2)
        assert store.lookups == 0
        next(batches)
        assert len(store.find_many_calls) == 1

    def test_each_call_starts_over(self, person, proxy, cars):
        person.cars_ids = ["c1", "c2", "c3"]

        first = [r.id for b in proxy.find_each_batch(batch_size=2) for r in b]
        second = [r.id for b in proxy.find_each_batch(batch_size=2) for r in b]
        assert first == second == ["c1", "c2", "c3"]

    def test_batches_filtered_by_prefix(self, person, proxy, cars, store):
        persisted(Car("x1"))
        person.cars_ids = ["c1", "x1", "c2"]

        batches = list(proxy.find_each_batch(batch_size=10, starts_with="x"))

        assert [[r.id for r in b] for b in batches] == [["x1"]]

    def test_loaded_batches_come_from_memory(self, person, proxy, cars, store):
        person.cars_ids = ["c1", "c2", "c3"]
        proxy.load()
        lookups = store.lookups

        batches = list(proxy.find_each_batch(batch_size=2))

        assert batches == [[cars[0], cars[1]], [cars[2]]]
        assert store.lookups == lookups

    def test_find_each_yields_records(self, person, proxy, cars):
        person.cars_ids = ["c1", "c2", "c3"]

        assert list(proxy.find_each(batch_size=2)) == cars[:3]

    def test_bad_batch_size_raises_on_call(self, person, proxy, store):
        person.cars_ids = ["c1"]

        with pytest.raises(ValueError):
            proxy.find_each_batch(batch_size=0)
        assert store.lookups == 0

    def test_default_batch_size_from_settings(self, person, proxy, cars, store, monkeypatch):
        monkeypatch.setenv("YDB_RELATIONS_BATCH_SIZE", "3")
        reset_settings()
        try:
            person.cars_ids = [car.id for car in cars]
            batches = list(proxy.find_each_batch())
        finally:
            reset_settings()

        assert [len(b) for b in batches] == [3, 2]


class TestDelete:
    def test_delete_removes_id_and_saves_owner_once(self, person, proxy, cars):
        proxy.add(cars[0], cars[1], cars[2])
        saves = person.save_count

        change = proxy.delete(cars[0], cars[2])

        assert change.removed == ["c1", "c3"]
        assert person.cars_ids == ["c2"]
        assert proxy.target == [cars[1]]
        assert person.save_count == saves + 1
        assert not cars[0].is_destroyed()

    def test_delete_ignores_records_outside_collection(self, person, proxy, cars):
        proxy.add(cars[0])

        change = proxy.delete(cars[1])

        assert not change
        assert person.cars_ids == ["c1"]

    def test_destroy_destroys_records(self, person, proxy, cars, store):
        proxy.add(cars[0], cars[1])

        proxy.destroy(cars[0])

        assert cars[0].is_destroyed()
        assert (Car, "c1") not in store.records
        assert person.cars_ids == ["c2"]

    def test_delete_all_loads_first(self, person, proxy, cars, store):
        person.cars_ids = ["c1", "c2", "c3"]

        change = proxy.delete_all()

        assert sorted(change.removed) == ["c1", "c2", "c3"]
        assert person.cars_ids == []
        assert proxy.is_loaded()
        assert proxy.target == []
        assert store.find_many_calls == [["c1", "c2", "c3"]]

    def test_delete_all_drops_dangling_ids(self, person, proxy, cars):
        person.cars_ids = ["c1", "ghost"]

        change = proxy.delete_all()

        assert person.cars_ids == []
        assert sorted(change.removed) == ["c1", "ghost"]
        assert person.save_count == 1

    def test_destroy_all(self, person, proxy, cars):
        proxy.add(cars[0], cars[1])

        proxy.destroy_all()

        assert cars[0].is_destroyed() and cars[1].is_destroyed()
        assert person.cars_ids == []
        assert len(proxy) == 0


class TestReplace:
    def test_replace_with_none_empties_relation(self, person, proxy, cars):
        proxy.add(cars[0], cars[1], cars[2])
        proxy.load()

        assert proxy.replace(None) is proxy

        assert proxy.is_loaded()
        assert proxy.target == []
        assert person.cars_ids == []

    def test_replace_sets_new_collection(self, person, proxy, cars):
        proxy.add(cars[0], cars[1])

        proxy.replace([cars[2], cars[3]])

        assert person.cars_ids == ["c3", "c4"]
        assert proxy.target == [cars[2], cars[3]]
        assert proxy.last_change.added == ["c3", "c4"]
        assert proxy.last_change.removed == ["c1", "c2"]

    def test_replace_with_invalid_changes_nothing(self, person, proxy, cars):
        proxy.add(cars[0])

        assert proxy.replace(cars[1], Car("bad", valid=False)) is None
        assert person.cars_ids == ["c1"]

    def test_replace_with_wrong_type_changes_nothing(self, person, proxy, cars):
        proxy.add(cars[0], cars[1])
        saves = person.save_count

        with pytest.raises(RelationTypeMismatch):
            proxy.replace([cars[2], Address("a1")])

        assert person.cars_ids == ["c1", "c2"]
        assert proxy.target == [cars[0], cars[1]]
        assert person.save_count == saves


def test_foreign_keys_follow_collection(person, proxy, cars):
    proxy.load()
    steps = [
        lambda: proxy.add(cars[0]),
        lambda: proxy.add(cars[1], cars[2]),
        lambda: proxy.delete(cars[1]),
        lambda: proxy.add(cars[3]),
        lambda: proxy.delete(cars[0], cars[3]),
        lambda: proxy.add(cars[4], cars[0]),
    ]

    for step in steps:
        step()
        assert_consistent(person, proxy)

    assert person.cars_ids == ["c3", "c5", "c1"]


class TestCustomFinder:
    @pytest.fixture
    def owned(self, person, store):
        for n in range(1, 4):
            persisted(Car(f"p1-{n}"))
        persisted(Car("p2-1"))
        return person.relation_proxy("owned_cars")

    def test_load_uses_finder(self, person, owned):
        assert [r.id for r in owned.load()] == ["p1-1", "p1-2", "p1-3"]
        assert person.finder_calls == [{"limit": None, "starts_with": None, "batch_size": None}]

    def test_length_loads_through_finder(self, person, owned):
        assert owned.length() == 3
        assert owned.is_loaded()

    def test_limit_is_delegated(self, person, owned):
        assert [r.id for r in owned.limit(2)] == ["p1-1", "p1-2"]
        assert person.finder_calls[-1]["limit"] == 2
        assert not owned.is_loaded()

    def test_find_checks_prefix(self, owned, store):
        assert owned.find("p1-2").id == "p1-2"
        assert store.find_calls == ["p1-2"]

        with pytest.raises(RecordNotFound):
            owned.find("p2-1")
        assert store.find_calls == ["p1-2"]

    def test_all_passes_options_to_finder(self, person, owned):
        assert [r.id for r in owned.all(limit=1)] == ["p1-1"]
        assert not owned.is_loaded()

    def test_finder_result_is_compacted(self, person, owned):
        metadata = dataclasses.replace(
            owned.metadata, find_with=lambda owner, **options: [None, Car("p1-9"), None]
        )
        proxy = ReferencesManyProxy(person, metadata)

        assert [r.id for r in proxy.load()] == ["p1-9"]
