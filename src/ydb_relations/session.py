"""
Сессия YDB: поиск, сохранение и удаление записей

Реализует для классов цели контракт поиска, которым пользуются прокси:
find(id) и find_many(ids).
"""

import logging
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Type, TypeVar

import ydb

from .config import RelationsSettings, get_settings
from .exceptions import RecordNotFound, SessionError
from .query import Query
from .utils.sql_builder import delete_query, prepare_params, upsert_query

T = TypeVar('T')

logger = logging.getLogger(__name__)


class YDBSession:
    """Сессия для работы с YDB"""

    def __init__(self, driver: ydb.Driver, timeout: Optional[float] = None):
        """
        Инициализация сессии

        Args:
            driver: Драйвер YDB
            timeout: Время ожидания подключения в секундах
        """
        self._driver = driver
        self._timeout = timeout if timeout is not None else get_settings().ydb_timeout
        self._pool: Optional[ydb.SessionPool] = None
        self._identity_map: Dict[Type, Dict[Any, Any]] = {}
        self._query_cache: Dict[Any, str] = {}
        # Драйвер, созданный самой сессией, останавливается в close()
        self._owns_driver = False

    @classmethod
    def from_settings(cls, settings: Optional[RelationsSettings] = None) -> 'YDBSession':
        """Сессия по настройкам (YDB_RELATIONS_YDB_ENDPOINT и т.д.)"""
        settings = settings or get_settings()
        driver = ydb.Driver(endpoint=settings.ydb_endpoint, database=settings.ydb_database)
        session = cls(driver, timeout=settings.ydb_timeout)
        session._owns_driver = True
        return session

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Закрытие сессии при выходе из контекста"""
        self.close()

    def connect(self) -> None:
        """Подключение драйвера и создание пула сессий YDB"""
        if self._pool is not None:
            return
        try:
            self._driver.wait(timeout=self._timeout, fail_fast=True)
            self._pool = ydb.SessionPool(self._driver)
        except (ydb.Error, TimeoutError) as e:
            raise SessionError(f"Не удалось подключиться к YDB: {e}") from e

    def close(self) -> None:
        """Закрытие пула и очистка ресурсов"""
        if self._pool is not None:
            try:
                self._pool.stop()
            finally:
                self._pool = None

        if self._owns_driver:
            self._driver.stop()

        self._identity_map.clear()

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Выполнение запроса в отдельной транзакции

        Returns:
            Список result set'ов
        """
        if self._pool is None:
            self.connect()

        def callee(session):
            prepared = session.prepare(sql)
            return session.transaction(ydb.SerializableReadWrite()).execute(
                prepared, params or {}, commit_tx=True
            )

        try:
            return self._pool.retry_operation_sync(callee)
        except ydb.Error as e:
            raise SessionError(f"Ошибка выполнения запроса: {e}") from e

    def query(self, model: Type[T]) -> Query[T]:
        """Создание Query builder для модели"""
        return Query(self, model)

    def find(self, model: Type[T], id: Any) -> T:
        """
        Запись по первичному ключу

        Raises:
            RecordNotFound: Если записи нет
        """
        cached = self.get_from_identity_map(model, id)
        if cached is not None:
            return cached

        pk_field = getattr(model, '_primary_key', 'id')
        record = self.query(model).filter_by(**{pk_field: id}).first()
        if record is None:
            raise RecordNotFound(model.__name__, id)
        return record

    def find_many(self, model: Type[T], ids: Iterable[Any]) -> List[T]:
        """
        Записи по списку ключей одним запросом; отсутствующие пропускаются
        """
        ids = list(dict.fromkeys(ids))
        found: Dict[Any, T] = {}
        missing = []

        for id in ids:
            cached = self.get_from_identity_map(model, id)
            if cached is not None:
                found[id] = cached
            else:
                missing.append(id)

        if missing:
            pk_field = getattr(model, '_primary_key', 'id')
            for record in self.query(model).where_in(pk_field, missing).all():
                found[self._get_pk_value(record)] = record

        logger.debug("%s.find_many: запрошено %d, найдено %d", model.__name__, len(ids), len(found))
        return [found[id] for id in ids if id in found]

    def save(self, instance: Any) -> None:
        """
        Сохранение (UPSERT) объекта

        Args:
            instance: Экземпляр модели с to_ydb_dict()
        """
        model_type = type(instance)
        key = ("upsert", model_type)
        if key not in self._query_cache:
            table_name = getattr(model_type, '__tablename__', model_type.__name__.lower())
            self._query_cache[key] = upsert_query(table_name, model_type._ydb_fields)

        self.execute(self._query_cache[key], prepare_params(instance.to_ydb_dict()))
        self._add_to_identity_map(instance)

    def delete(self, instance: Any) -> None:
        """Удаление объекта по первичному ключу"""
        model_type = type(instance)
        pk_field = getattr(model_type, '_primary_key', 'id')
        key = ("delete", model_type)
        if key not in self._query_cache:
            table_name = getattr(model_type, '__tablename__', model_type.__name__.lower())
            self._query_cache[key] = delete_query(
                table_name, {pk_field: model_type._ydb_fields[pk_field]}
            )

        self.execute(self._query_cache[key], prepare_params({pk_field: getattr(instance, pk_field)}))
        self._remove_from_identity_map(instance)

    def _add_to_identity_map(self, instance: Any):
        """Добавление объекта в identity map"""
        model_type = type(instance)
        pk_value = self._get_pk_value(instance)
        self._identity_map.setdefault(model_type, {})[pk_value] = instance

    def _remove_from_identity_map(self, instance: Any):
        """Удаление объекта из identity map"""
        model_type = type(instance)
        pk_value = self._get_pk_value(instance)

        if model_type in self._identity_map:
            self._identity_map[model_type].pop(pk_value, None)

    def _get_pk_value(self, instance: Any) -> Any:
        """Получение значения первичного ключа"""
        pk_field = getattr(type(instance), '_primary_key', 'id')
        return getattr(instance, pk_field)

    def get_from_identity_map(self, model: Type[T], pk_value: Any) -> Optional[T]:
        """Получение объекта из identity map по первичному ключу"""
        if model in self._identity_map:
            return self._identity_map[model].get(pk_value)
        return None


class SessionLookup:
    """
    Примесь для класса цели: find/find_many через привязанную YDBSession

    Пример::

        class Car(Record, SessionLookup):
            __tablename__ = "cars"
            _ydb_fields = {"id": "Utf8", "name": "Utf8"}

        Car.bind_session(session)
        Car.find_many(["c1", "c2"])
    """

    _session: ClassVar[Optional[YDBSession]] = None

    @classmethod
    def bind_session(cls, session: YDBSession) -> None:
        cls._session = session

    @classmethod
    def _require_session(cls) -> YDBSession:
        if cls._session is None:
            raise SessionError(f"Модель {cls.__name__} не привязана к сессии YDB")
        return cls._session

    @classmethod
    def find(cls, id: Any) -> Any:
        return cls._require_session().find(cls, id)

    @classmethod
    def find_many(cls, ids: Iterable[Any]) -> List[Any]:
        return cls._require_session().find_many(cls, ids)
