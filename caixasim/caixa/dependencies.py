import asyncio
import threading
from typing import Any, Callable, TypeVar

from fastapi import Depends, Request
from starlette.concurrency import run_in_threadpool

from caixasim.caixa.cache import CityCache
from caixasim.caixa.client import CaixaClient

DISCONNECT_POLL_SECONDS = 0.1

T = TypeVar("T")

_cache_lock = threading.Lock()


def get_city_cache(request: Request) -> CityCache:
    """
    Returns the process-wide city cache created at startup.
    Falls back to creating it when the app runs without its lifespan (e.g. bare test clients).
    """
    cache = getattr(request.app.state, "city_cache", None)
    if cache is None:
        with _cache_lock:
            cache = getattr(request.app.state, "city_cache", None)
            if cache is None:
                cache = CityCache()
                request.app.state.city_cache = cache
    return cache


def get_caixa_client(city_cache: CityCache = Depends(get_city_cache)) -> CaixaClient:
    return CaixaClient(city_cache)


async def call_cancellable(request: Request, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Runs a blocking remote call in the threadpool with a `cancel_event` that is
    set when the HTTP client disconnects.
    """
    cancel_event = threading.Event()

    async def watch_disconnect() -> None:
        while not await request.is_disconnected():
            await asyncio.sleep(DISCONNECT_POLL_SECONDS)
        cancel_event.set()

    watcher = asyncio.create_task(watch_disconnect())
    try:
        return await run_in_threadpool(func, *args, cancel_event=cancel_event, **kwargs)
    finally:
        watcher.cancel()
