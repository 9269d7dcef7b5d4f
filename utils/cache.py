"""TTL-кэш для справочников (услуги, специалисты)

Кэш не глобальный: экземпляр создаётся в main.py и передаётся сервисам.
Запись живёт ``ttl`` секунд; после изменения справочника вызывающий код
обязан сделать ``invalidate`` соответствующих ключей.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, Optional, Tuple


class TTLCache:
    """Read-through кэш с временем жизни записей"""

    def __init__(self, ttl: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._items: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        item = self._items.get(key)
        if item is None:
            return None
        expires_at, value = item
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None):
        self._items[key] = (self._clock() + (ttl if ttl is not None else self.ttl), value)

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Вернуть значение из кэша или загрузить через loader

        None не кэшируется, чтобы только что созданная сущность
        стала видна без ожидания TTL.
        """
        value = self.get(key)
        if value is not None:
            return value

        value = await loader()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, keys: Optional[Iterable[Hashable]] = None):
        """Очистить весь кэш или только указанные ключи"""
        if keys is None:
            self._items.clear()
            logging.debug("Cache cleared")
            return
        for key in keys:
            self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)
