"""
Query builder для ydb-relations
"""

from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, cast

from .exceptions import MultipleResultsFound, NoResultFound, QueryError
from .utils.sql_builder import Condition, eq, in_, select_query, starts_with

T = TypeVar('T')


class Query(Generic[T]):
    """Построитель запросов с цепочным интерфейсом"""

    def __init__(self, session: Any, model: Type[T]):
        """
        Инициализация Query builder

        Args:
            session: Сессия YDBSession
            model: Класс модели (с _ydb_fields и from_ydb_row)
        """
        self._session = session
        self._model = model
        self._table_name = getattr(model, '__tablename__', model.__name__.lower())

        # Параметры запроса
        self._where_conditions: List[Condition] = []
        self._order_by: List[str] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    def filter(self, *conditions: Condition) -> 'Query[T]':
        """
        Добавление условий фильтрации

        Args:
            *conditions: Объекты Condition (см. utils.sql_builder)

        Returns:
            self для цепочных вызовов
        """
        for cond in conditions:
            if not isinstance(cond, Condition):
                raise QueryError(f"Неподдерживаемый тип условия: {type(cond)}")
            self._where_conditions.append(cond)

        return self

    def filter_by(self, **kwargs) -> 'Query[T]':
        """
        Фильтрация по равенству полей (удобный синтаксис)

        Args:
            **kwargs: Пары поле=значение
        """
        for field, value in kwargs.items():
            self._where_conditions.append(eq(field, value))

        return self

    def where_in(self, field: str, values: Sequence[Any]) -> 'Query[T]':
        """Фильтрация field IN (values)"""
        self._where_conditions.append(in_(field, values))
        return self

    def starts_with(self, field: str, prefix: str) -> 'Query[T]':
        """Фильтрация по префиксу значения"""
        self._where_conditions.append(starts_with(field, prefix))
        return self

    def order_by(self, *columns: str) -> 'Query[T]':
        """Указание сортировки (можно с DESC/ASC)"""
        self._order_by.extend(columns)
        return self

    def limit(self, limit: int) -> 'Query[T]':
        """Ограничение количества результатов"""
        self._limit = limit
        return self

    def offset(self, offset: int) -> 'Query[T]':
        """Смещение результатов (для пагинации)"""
        self._offset = offset
        return self

    def all(self) -> List[T]:
        """
        Выполнение запроса и возврат всех результатов

        Returns:
            Список объектов модели
        """
        sql, params = self._build_query()
        result_sets = self._session.execute(sql, params)

        # Конвертация результатов в модели
        instances: List[T] = []
        for row in result_sets[0].rows:
            instance = self._model.from_ydb_row(row)

            # Проверка identity map и сохранение
            pk_value = self._session._get_pk_value(instance)
            cached = self._session.get_from_identity_map(self._model, pk_value)

            if cached is not None:
                instances.append(cast(T, cached))
            else:
                self._session._add_to_identity_map(instance)
                instances.append(cast(T, instance))

        return instances

    def first(self) -> Optional[T]:
        """
        Возврат первого результата или None
        """
        self._limit = 1
        results = self.all()
        return cast(Optional[T], results[0] if results else None)

    def one(self) -> T:
        """
        Возврат одного результата с проверкой уникальности

        Raises:
            NoResultFound: Если нет результатов
            MultipleResultsFound: Если больше одного результата
        """
        results = self.all()

        if not results:
            raise NoResultFound(f"Запрос не вернул результатов для модели {self._model.__name__}")

        if len(results) > 1:
            raise MultipleResultsFound(
                f"Запрос вернул {len(results)} результатов, ожидался один для модели {self._model.__name__}"
            )

        return cast(T, results[0])

    def one_or_none(self) -> Optional[T]:
        """
        Возврат одного результата или None

        Raises:
            MultipleResultsFound: Если больше одного результата
        """
        results = self.all()

        if len(results) > 1:
            raise MultipleResultsFound(
                f"Запрос вернул {len(results)} результатов, ожидался один для модели {self._model.__name__}"
            )

        return cast(Optional[T], results[0] if results else None)

    def _build_query(self) -> Tuple[str, Dict[str, Any]]:
        """
        Построение YQL запроса и параметров

        Returns:
            Кортеж (YQL запрос, параметры)
        """
        field_types = getattr(self._model, '_ydb_fields', None)
        if not field_types:
            raise QueryError(f"У модели {self._model.__name__} не описаны колонки (_ydb_fields)")

        try:
            return select_query(
                table_name=self._table_name,
                field_types=field_types,
                conditions=self._where_conditions,
                order_by=self._order_by or None,
                limit=self._limit,
                offset=self._offset,
            )
        except KeyError as e:
            raise QueryError(f"Ошибка построения запроса для {self._model.__name__}: {e}") from e

    def __repr__(self) -> str:
        sql, _ = self._build_query()
        return f"<Query {sql}>"
