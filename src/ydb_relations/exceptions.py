"""
Кастомные исключения для ydb-relations
"""

from typing import Any, Iterable


class YDBRelationsError(Exception):
    """Базовое исключение для всех ошибок ydb-relations"""
    pass


class RelationshipError(YDBRelationsError):
    """Ошибка в описании или использовании отношения между моделями"""
    pass


class RelationAlreadyDefined(RelationshipError):
    """Отношение с таким именем уже объявлено у модели"""

    def __init__(self, owner_name: str, relation_name: str):
        self.owner_name = owner_name
        self.relation_name = relation_name
        super().__init__(
            f"Отношение '{relation_name}' уже объявлено в модели {owner_name}"
        )


class RecordNotFound(YDBRelationsError):
    """Запись с указанным id не найдена"""

    def __init__(self, model_name: str, id: Any):
        self.model_name = model_name
        self.id = id
        super().__init__(f"Не найдена запись {model_name} с id={id!r}")


class UnsupportedFinderOption(YDBRelationsError):
    """
    Опция поиска не поддерживается, когда внешние ключи хранятся в владельце.

    Список id в владельце - это просто массив, и часть опций
    пришлось бы эмулировать на стороне клиента.
    """

    OPTIONS = ("offset",)

    def __init__(self, options: Iterable[str], owner_name: str = ""):
        self.options = list(options)
        owner = f" {owner_name}" if owner_name else ""
        super().__init__(
            f"Опции поиска не поддерживаются: {', '.join(self.options)} "
            f"(внешние ключи хранятся в владельце{owner})"
        )


class RelationTypeMismatch(RelationshipError):
    """Тип записи не совпадает с объявленным типом цели отношения"""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Ожидалась запись {expected}, получена {actual}")


class NoResultFound(YDBRelationsError):
    """Исключение, когда запрос не вернул результатов"""
    pass


class MultipleResultsFound(YDBRelationsError):
    """Исключение, когда запрос вернул несколько результатов, а ожидался один"""
    pass


class SessionError(YDBRelationsError):
    """Ошибка сессии (не подключена, уже закрыта и т.д.)"""
    pass


class QueryError(YDBRelationsError):
    """Ошибка построения или выполнения запроса"""
    pass
