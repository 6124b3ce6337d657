"""
YDB-Relations: прокси отношений между записями в колоночном хранилище

Основные компоненты:
- Metadata: Описание объявленного отношения
- RelationsMixin: Объявление отношений у модели и доступ к ним
- ReferencesOneProxy / ReferencesManyProxy / EmbedsManyProxy: Ленивые прокси
- RelationProxyCache: Кэш прокси одной записи
- YDBSession: Поиск и сохранение записей в YDB
"""

from .coder import JSONCoder, default_coder
from .config import RelationsSettings, get_settings
from .exceptions import (
    YDBRelationsError,
    RelationshipError,
    RelationAlreadyDefined,
    RecordNotFound,
    UnsupportedFinderOption,
    RelationTypeMismatch,
    NoResultFound,
    MultipleResultsFound,
    SessionError,
    QueryError,
)
from .metadata import Metadata, RelationType
from .proxy import (
    Proxy,
    ForeignKeyChange,
    ReferencesOneProxy,
    ReferencesManyProxy,
    EmbedsManyProxy,
)
from .registry import register_model, ModelRegistry, RelationRegistry, default_registry
from .relationships import relationship, references_one, references_many, embeds_many, RelationsMixin
from .schema import ColumnFamily, Schema
from .query import Query
from .session import YDBSession, SessionLookup
from .utils.cache import RelationProxyCache

__version__ = "0.3.0"
__all__ = [
    "Metadata",
    "RelationType",
    "relationship",
    "references_one",
    "references_many",
    "embeds_many",
    "RelationsMixin",
    "Proxy",
    "ForeignKeyChange",
    "ReferencesOneProxy",
    "ReferencesManyProxy",
    "EmbedsManyProxy",
    "RelationProxyCache",
    "register_model",
    "ModelRegistry",
    "RelationRegistry",
    "default_registry",
    "ColumnFamily",
    "Schema",
    "JSONCoder",
    "default_coder",
    "RelationsSettings",
    "get_settings",
    "YDBSession",
    "SessionLookup",
    "Query",
    "YDBRelationsError",
    "RelationshipError",
    "RelationAlreadyDefined",
    "RecordNotFound",
    "UnsupportedFinderOption",
    "RelationTypeMismatch",
    "NoResultFound",
    "MultipleResultsFound",
    "SessionError",
    "QueryError",
]
