"""
Кэш прокси отношений одного владельца
"""

import logging
import weakref
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional

from ..proxy import Proxy, proxy_class_for

if TYPE_CHECKING:
    from ..registry import RelationRegistry

logger = logging.getLogger(__name__)


class RelationProxyCache:
    """
    Прокси отношений владельца по имени отношения.

    Прокси создаётся при первом обращении и дальше переиспользуется,
    поэтому на пару (владелец, имя отношения) приходится ровно один прокси.
    Блокировок нет: владелец не рассчитан на одновременное изменение
    из нескольких потоков.
    """

    def __init__(self, owner: Any, registry: 'RelationRegistry'):
        """
        Args:
            owner: Запись-владелец
            registry: Реестр отношений класса владельца
        """
        self._owner_ref = weakref.ref(owner)
        self._registry = registry
        self._proxies: Dict[str, Proxy] = {}

    def get(self, name: str) -> Optional[Proxy]:
        """
        Получение прокси отношения

        Args:
            name: Имя отношения

        Returns:
            Прокси или None, если отношение не объявлено
        """
        name = str(name)
        proxy = self._proxies.get(name)
        if proxy is not None:
            return proxy

        metadata = self._registry.get(name)
        if metadata is None:
            return None

        proxy = proxy_class_for(metadata)(self._owner_ref(), metadata)
        self._proxies[name] = proxy
        logger.debug(
            "Создан прокси %s для %s.%s",
            type(proxy).__name__, self._registry.owner_name, name,
        )
        return proxy

    def peek(self, name: str) -> Optional[Proxy]:
        """Прокси из кэша без создания"""
        return self._proxies.get(str(name))

    def reset_all(self) -> None:
        """Сброс загруженного состояния у всех созданных прокси"""
        for proxy in self._proxies.values():
            proxy.reset()

    def __contains__(self, name: object) -> bool:
        return name in self._proxies

    def __iter__(self) -> Iterator[str]:
        return iter(self._proxies)

    def __len__(self) -> int:
        return len(self._proxies)
