"""
Прокси отношений: по одному классу на вид отношения
"""

from typing import Dict, Type

from ..metadata import Metadata, RelationType
from .base import CollectionProxy, ForeignKeyChange, LoadState, Proxy
from .embeds_many import EmbedsManyProxy
from .references_many import ReferencesManyProxy
from .references_one import ReferencesOneProxy

PROXY_CLASSES: Dict[RelationType, Type[Proxy]] = {
    RelationType.REFERENCES_ONE: ReferencesOneProxy,
    RelationType.REFERENCES_MANY: ReferencesManyProxy,
    RelationType.EMBEDS_MANY: EmbedsManyProxy,
}


def proxy_class_for(metadata: Metadata) -> Type[Proxy]:
    """Класс прокси для вида отношения"""
    return PROXY_CLASSES[metadata.relation_type]


__all__ = [
    "Proxy",
    "CollectionProxy",
    "LoadState",
    "ForeignKeyChange",
    "ReferencesOneProxy",
    "ReferencesManyProxy",
    "EmbedsManyProxy",
    "PROXY_CLASSES",
    "proxy_class_for",
]
