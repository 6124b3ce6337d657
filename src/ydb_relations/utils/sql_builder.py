"""
Утилиты для построения YQL запросов
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

_OPERATORS = {"=", "!=", ">", ">=", "<", "<=", "in", "like", "starts_with"}


@dataclass
class Condition:
    """Структурированное условие для фильтрации"""
    field: str
    operator: str = "="
    value: Any = None

    def __post_init__(self):
        if self.operator not in _OPERATORS:
            raise ValueError(f"Неподдерживаемый оператор: {self.operator}")

    def render(self, param: str) -> str:
        """
        Условие с параметром вместо значения

        Args:
            param: Имя параметра вместе с $, например "$p0"
        """
        if self.operator == "in":
            return f"{self.field} IN {param}"
        if self.operator == "like":
            return f"{self.field} LIKE {param}"
        if self.operator == "starts_with":
            return f"StartsWith({self.field}, {param})"
        return f"{self.field} {self.operator} {param}"

    def param_type(self, field_type: str) -> str:
        """YQL тип параметра по типу колонки"""
        if self.operator == "in":
            return f"List<{field_type}>"
        return field_type

    def __str__(self) -> str:
        """Строковое представление условия"""
        return self.render(repr(self.value))


def declare(params: Mapping[str, str]) -> str:
    """DECLARE для каждого параметра: {"$id": "Utf8"} -> "DECLARE $id AS Utf8;" """
    return "\n".join(f"DECLARE {name} AS {yql_type};" for name, yql_type in params.items())


def build_where_conditions(
    conditions: Sequence[Condition],
    field_types: Mapping[str, str],
) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
    """
    Построение WHERE clause из списка условий

    Args:
        conditions: Список объектов Condition
        field_types: Колонка -> YQL тип

    Returns:
        Кортеж (WHERE clause, значения параметров, типы параметров)
    """
    parts: List[str] = []
    values: Dict[str, Any] = {}
    types: Dict[str, str] = {}

    for index, cond in enumerate(conditions):
        if cond.field not in field_types:
            raise KeyError(f"Неизвестная колонка: {cond.field}")
        param = f"$p{index}"
        parts.append(cond.render(param))
        values[param] = list(cond.value) if cond.operator == "in" else cond.value
        types[param] = cond.param_type(field_types[cond.field])

    return " AND ".join(parts), values, types


def select_query(
    table_name: str,
    field_types: Mapping[str, str],
    conditions: Sequence[Condition] = (),
    columns: Optional[Sequence[str]] = None,
    order_by: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Tuple[str, Dict[str, Any]]:
    """
    SELECT запрос с параметрами

    Returns:
        Кортеж (YQL запрос, параметры)
    """
    where, values, types = build_where_conditions(conditions, field_types)

    sql = f"SELECT {', '.join(columns or field_types)} FROM `{table_name}`"
    if where:
        sql += f" WHERE {where}"
    if order_by:
        sql += f" ORDER BY {', '.join(order_by)}"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    if offset is not None:
        sql += f" OFFSET {int(offset)}"

    header = declare(types)
    return (f"{header}\n{sql};" if header else f"{sql};"), values


def upsert_query(table_name: str, field_types: Mapping[str, str]) -> str:
    """UPSERT всех колонок таблицы, параметры называются как колонки"""
    columns = list(field_types)
    header = declare({f"${name}": yql_type for name, yql_type in field_types.items()})
    placeholders = ", ".join(f"${name}" for name in columns)
    return (
        f"{header}\n"
        f"UPSERT INTO `{table_name}` ({', '.join(columns)}) VALUES ({placeholders});"
    )


def delete_query(table_name: str, key_types: Mapping[str, str]) -> str:
    """DELETE по первичному ключу, параметры называются как колонки ключа"""
    header = declare({f"${name}": yql_type for name, yql_type in key_types.items()})
    where = " AND ".join(f"{name} = ${name}" for name in key_types)
    return f"{header}\nDELETE FROM `{table_name}` WHERE {where};"


def prepare_params(values: Mapping[str, Any]) -> Dict[str, Any]:
    """{"id": 1} -> {"$id": 1}"""
    return {
        (name if name.startswith("$") else f"${name}"): value
        for name, value in values.items()
    }


# Удобные фабричные функции для создания условий
def eq(field: str, value: Any) -> Condition:
    """Создание условия равенства"""
    return Condition(field, "=", value)


def ne(field: str, value: Any) -> Condition:
    """Создание условия неравенства"""
    return Condition(field, "!=", value)


def gt(field: str, value: Any) -> Condition:
    return Condition(field, ">", value)


def ge(field: str, value: Any) -> Condition:
    return Condition(field, ">=", value)


def lt(field: str, value: Any) -> Condition:
    return Condition(field, "<", value)


def le(field: str, value: Any) -> Condition:
    return Condition(field, "<=", value)


def in_(field: str, values: Sequence[Any]) -> Condition:
    """Создание условия IN"""
    return Condition(field, "in", list(values))


def like(field: str, pattern: str) -> Condition:
    """Создание условия LIKE"""
    return Condition(field, "like", pattern)


def starts_with(field: str, prefix: str) -> Condition:
    """Создание условия StartsWith (диапазонное чтение по префиксу ключа)"""
    return Condition(field, "starts_with", prefix)
