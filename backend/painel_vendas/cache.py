"""
cache.py - Cache em memoria com TTL e "single-flight".

Cada chave guarda o ultimo valor, quando ele expira e a busca em andamento.
Quem pede a mesma chave enquanto a busca roda espera a MESMA task, entao a
planilha e lida uma vez so. Falha nao fica em cache: a entrada volta a vazia
e a proxima chamada tenta de novo.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 60.0


@dataclass
class CacheEntry(Generic[T]):
    value: Optional[T] = None
    expires_at: float = 0.0
    task: Optional["asyncio.Future[T]"] = None

    def reset(self) -> None:
        self.value = None
        self.expires_at = 0.0
        self.task = None


class SingleFlightCache(Generic[T]):
    def __init__(self, name: str, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}

    def entry(self, key: Hashable) -> CacheEntry[T]:
        """Entrada da chave, criada vazia no primeiro acesso."""
        if key not in self._entries:
            self._entries[key] = CacheEntry()
        return self._entries[key]

    def is_fresh(self, key: Hashable) -> bool:
        e = self._entries.get(key)
        return bool(e and e.value is not None and e.expires_at > self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: Hashable, loader: Callable[[], Awaitable[T]],
                  force: bool = False) -> T:
        """
        Uma de tres coisas acontece:
          - valor valido em cache -> devolve;
          - busca em andamento -> espera a mesma task;
          - senao -> dispara loader() e guarda o resultado por ttl_seconds.
        force=True ignora o cache e nao mexe na entrada.
        """
        if force:
            logger.debug("[CACHE] %s bypass %s", self.name, key)
            return await loader()

        if key not in self._entries:
            self._prune()
        e = self.entry(key)
        if e.value is not None and e.expires_at > self._clock():
            logger.debug("[CACHE] %s hit %s", self.name, key)
            return e.value

        if e.task is not None:
            logger.debug("[CACHE] %s join %s", self.name, key)
            return await asyncio.shield(e.task)

        task = asyncio.ensure_future(loader())
        e.task = task
        task.add_done_callback(lambda t: self._settle(e, t))
        # cancelar um chamador nao cancela a carga compartilhada
        return await asyncio.shield(task)

    def _prune(self) -> None:
        """Descarta entradas vencidas sem busca em andamento."""
        now = self._clock()
        stale = [k for k, e in self._entries.items() if e.task is None and e.expires_at <= now]
        for k in stale:
            del self._entries[k]

    def _settle(self, e: CacheEntry[T], task: "asyncio.Future[T]") -> None:
        if e.task is not task:
            return
        if task.cancelled() or task.exception() is not None:
            logger.debug("[CACHE] %s reset apos falha", self.name)
            e.reset()
            return
        e.value = task.result()
        e.expires_at = self._clock() + self.ttl_seconds
        e.task = None
