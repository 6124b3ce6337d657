"""
Семейства колонок и поля модели
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional


@dataclass
class Field:
    """Поле в семействе колонок"""

    name: str
    default: Any = None

    def default_value(self) -> Any:
        # Списки и словари по умолчанию не должны разделяться между записями
        return copy.deepcopy(self.default)


class ColumnFamily:
    """Семейство колонок - именованная группа полей записи"""

    def __init__(self, name: str):
        if name is None or not str(name).strip():
            raise ValueError("Имя семейства колонок не может быть пустым")
        self.name = str(name)
        self.fields: Dict[str, Field] = {}

    def add_field(self, name: str, default: Any = None) -> Field:
        """Добавление поля; повторное объявление заменяет значение по умолчанию"""
        field = Field(str(name), default)
        self.fields[field.name] = field
        return field

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.name == self.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"<ColumnFamily {self.name}: {', '.join(self.fields)}>"


class Schema:
    """Набор семейств колонок модели"""

    def __init__(self):
        self._families: Dict[str, ColumnFamily] = {}

    def column_family(self, name: str) -> ColumnFamily:
        """Семейство колонок по имени (создаётся при первом обращении)"""
        name = str(name)
        if name not in self._families:
            self._families[name] = ColumnFamily(name)
        return self._families[name]

    def add_field(self, family_name: str, field_name: str, default: Any = None) -> Field:
        return self.column_family(family_name).add_field(field_name, default)

    def find_field(self, field_name: str) -> Optional[Field]:
        for family in self._families.values():
            if field_name in family:
                return family.fields[field_name]
        return None

    def defaults(self) -> Dict[str, Any]:
        """Значения по умолчанию для всех полей"""
        return {
            field.name: field.default_value()
            for family in self._families.values()
            for field in family.fields.values()
        }

    def copy(self) -> 'Schema':
        schema = Schema()
        for name, family in self._families.items():
            new_family = schema.column_family(name)
            for field in family.fields.values():
                new_family.add_field(field.name, field.default)
        return schema

    def __iter__(self) -> Iterator[ColumnFamily]:
        return iter(self._families.values())
