"""
Реестры: модели по имени и объявленные отношения модели
"""

from typing import Any, Callable, Dict, Iterator, NamedTuple, Optional, Type, Union
from weakref import WeakValueDictionary

from .exceptions import RelationAlreadyDefined, RelationshipError
from .metadata import Metadata


class ModelRegistry:
    """Реестр зарегистрированных моделей"""

    _models: Dict[str, Type] = {}
    _model_by_tablename: Dict[str, Type] = {}
    _instances: Dict[str, 'ModelRegistry'] = WeakValueDictionary()

    def __new__(cls, name: str = "default"):
        if name not in cls._instances:
            instance = super().__new__(cls)
            instance._name = name
            instance._models = {}
            instance._model_by_tablename = {}
            cls._instances[name] = instance
        return cls._instances[name]

    def register(self, model_cls: Type) -> None:
        """
        Регистрация модели в реестре

        Args:
            model_cls: Класс модели для регистрации
        """
        model_name = model_cls.__name__
        table_name = getattr(model_cls, '__tablename__', model_name.lower())

        self._models[model_name] = model_cls
        self._model_by_tablename[table_name] = model_cls

        # Устанавливаем обратную ссылку
        setattr(model_cls, '_registry', self)

    def get_model(self, name: str) -> Optional[Type]:
        """
        Получение модели по имени класса

        Args:
            name: Имя класса модели

        Returns:
            Класс модели или None если не найден
        """
        return self._models.get(name)

    def get_model_by_table(self, table_name: str) -> Optional[Type]:
        """Получение модели по имени таблицы"""
        return self._model_by_tablename.get(table_name)

    def resolve(self, model: Union[str, Type[Any]]) -> Type[Any]:
        """
        Разрешение имени модели в класс

        Raises:
            RelationshipError: Если модель с таким именем не зарегистрирована
        """
        if not isinstance(model, str):
            return model

        model_cls = self.get_model(model)
        if model_cls is None:
            raise RelationshipError(f"Модель '{model}' не найдена в реестре")
        return model_cls

    def clear(self) -> None:
        self._models.clear()
        self._model_by_tablename.clear()


# Глобальный реестр по умолчанию
default_registry = ModelRegistry()


# Декоратор для автоматической регистрации
def register_model(model_cls: Type) -> Type:
    """
    Декоратор для автоматической регистрации модели

    Args:
        model_cls: Класс модели

    Returns:
        Тот же класс с регистрацией
    """
    default_registry.register(model_cls)
    return model_cls


class Accessor(NamedTuple):
    """Пара функций чтения/записи отношения у владельца"""

    reader: Callable[[Any], Any]
    writer: Callable[[Any, Any], Any]


class RelationRegistry:
    """
    Отношения, объявленные у одной модели-владельца.

    Хранит метаданные по имени и таблицу аксессоров. Наполняется только
    во время объявления модели, дальше используется на чтение.
    """

    def __init__(self, owner_name: str):
        self.owner_name = owner_name
        self._relations: Dict[str, Metadata] = {}
        self._accessors: Dict[str, Accessor] = {}

    def add(self, metadata: Metadata, accessor: Accessor) -> None:
        """
        Добавление отношения

        Raises:
            RelationAlreadyDefined: Если отношение с таким именем уже есть
        """
        if metadata.name in self._relations:
            raise RelationAlreadyDefined(self.owner_name, metadata.name)

        self._relations[metadata.name] = metadata
        self._accessors[metadata.name] = accessor

    def get(self, name: str) -> Optional[Metadata]:
        return self._relations.get(str(name))

    def accessor(self, name: str) -> Optional[Accessor]:
        return self._accessors.get(str(name))

    def copy(self, owner_name: str) -> 'RelationRegistry':
        """Копия реестра для модели-наследника"""
        registry = RelationRegistry(owner_name)
        registry._relations = dict(self._relations)
        registry._accessors = dict(self._accessors)
        return registry

    def __contains__(self, name: object) -> bool:
        return name in self._relations

    def __iter__(self) -> Iterator[Metadata]:
        return iter(self._relations.values())

    def __len__(self) -> int:
        return len(self._relations)

    def __repr__(self) -> str:
        return f"<RelationRegistry {self.owner_name}: {', '.join(self._relations)}>"
