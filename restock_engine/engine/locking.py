"""(ürün, lokasyon) bazında eşzamanlı erişim kontrolü.

Aynı çifte dokunan iki hareket birbirini bekler; farklı çiftler bağımsız ilerler.
Birden fazla anahtar her zaman sıralı alınır, böylece A->B ve B->A transferleri
kilitlenmeye (deadlock) girmez.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Hashable, Iterable, Iterator, Optional

from restock_engine.errors import ConcurrentModificationError

logger = logging.getLogger(__name__)


class KeyedLock:
    """Anahtar başına kilit kaydı."""

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout
        self._locks: dict[Hashable, threading.Lock] = {}
        self._lock_owners: dict[Hashable, str] = {}
        self._master_lock = threading.Lock()

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._master_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def acquire(self, key: Hashable, owner: str, timeout: Optional[float] = None) -> bool:
        """Bir anahtar için kilit alır."""
        wait = self._timeout if timeout is None else timeout
        acquired = self._lock_for(key).acquire(timeout=wait)
        if acquired:
            self._lock_owners[key] = owner
            logger.debug("Kilit alındı: %s -> %s", owner, key)
        else:
            logger.warning("Kilit alınamadı: %s -> %s (timeout)", owner, key)
        return acquired

    def release(self, key: Hashable, owner: str) -> bool:
        """Bir anahtar kilidini serbest bırakır; yalnızca sahibi bırakabilir."""
        if key not in self._locks:
            return False

        current_owner = self._lock_owners.get(key)
        if current_owner != owner:
            logger.warning("Kilit sahibi uyuşmazlığı: %s != %s", owner, current_owner)
            return False

        try:
            del self._lock_owners[key]
            self._locks[key].release()
            return True
        except RuntimeError:
            return False

    def is_locked(self, key: Hashable) -> bool:
        if key not in self._locks:
            return False
        return self._locks[key].locked()

    @contextmanager
    def hold(self, keys: Iterable[Hashable], owner: str) -> Iterator[None]:
        """Tüm anahtarları sıralı alır; biri alınamazsa alınanları bırakıp hata fırlatır."""
        ordered = sorted(set(keys))
        held: list[Hashable] = []
        try:
            for key in ordered:
                if not self.acquire(key, owner):
                    raise ConcurrentModificationError(f"Kilit zaman aşımı: {key}")
                held.append(key)
            yield
        finally:
            for key in reversed(held):
                self.release(key, owner)
