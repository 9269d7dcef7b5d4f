"""Повторные попытки для сетевых вызовов (отправка сообщений)"""

import asyncio
import logging
from functools import wraps
from typing import Callable, Tuple, Type


def async_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
):
    """Декоратор повторных попыток с экспоненциальной задержкой

    Если у исключения есть ``retry_after`` (флуд-контроль Telegram),
    ждём ровно столько, сколько просит сервер.

    Args:
        max_attempts: Максимальное количество попыток
        delay: Начальная задержка между попытками (секунды)
        backoff: Множитель задержки
        exceptions: Исключения, после которых имеет смысл повторить
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_delay = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logging.error(
                            f"{func.__name__} failed after {max_attempts} attempts: {e}"
                        )
                        raise

                    wait = getattr(e, "retry_after", None) or current_delay
                    logging.warning(
                        f"Attempt {attempt}/{max_attempts} of {func.__name__} failed: {e}. "
                        f"Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    current_delay *= backoff

        return wrapper

    return decorator
