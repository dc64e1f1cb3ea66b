"""
外掛解析快取

記住「某首音軌該由哪個外掛取得串流」，避免每次都重新比對。
- 鍵值：source:url
- 存活時間：預設 5 分鐘
- 每次查詢有一定機率清掉過期項目
"""

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger

from ..constants import PLUGIN_CACHE_SWEEP_PROBABILITY, PLUGIN_CACHE_TTL
from .track import Track


@dataclass
class CacheStats:
    """快取統計"""
    size: int
    hits: int
    misses: int
    hit_rate: float
    expired_entries: int


class PluginCache:
    """
    以 TTL 控制的外掛解析快取

    使用方式：
        cache = PluginCache()
        plugin = cache.get(track)
        if plugin is None:
            plugin = resolve(track)
            cache.put(track, plugin)
    """

    def __init__(
        self,
        ttl_ms: float = PLUGIN_CACHE_TTL,
        clock: Optional[Callable[[], float]] = None,
        sweep_probability: float = PLUGIN_CACHE_SWEEP_PROBABILITY,
        rng: Callable[[], float] = random.random,
    ):
        self.ttl_ms = ttl_ms
        self._clock = clock or (lambda: time.monotonic() * 1000)
        self._sweep_probability = sweep_probability
        self._rng = rng
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def key(track: Track) -> str:
        return f"{track.source}:{track.url}"

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, track: Track) -> Optional[Any]:
        entry = self._entries.get(self.key(track))
        if entry is not None:
            plugin, stored_at = entry
            if self._clock() - stored_at < self.ttl_ms:
                self._hits += 1
                return plugin
            del self._entries[self.key(track)]
        self._misses += 1
        return None

    def put(self, track: Track, plugin: Any) -> None:
        self._entries[self.key(track)] = (plugin, self._clock())

    def maybe_sweep(self) -> int:
        """依機率清除過期項目"""
        if self._rng() < self._sweep_probability:
            return self.sweep()
        return 0

    def sweep(self) -> int:
        """清除所有過期項目，回傳清除數量"""
        now = self._clock()
        expired = [key for key, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl_ms]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"外掛快取: 清除 {len(expired)} 筆過期項目")
        return len(expired)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        return count

    def stats(self) -> CacheStats:
        now = self._clock()
        total = self._hits + self._misses
        expired = sum(1 for _, stored_at in self._entries.values() if now - stored_at >= self.ttl_ms)
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total if total else 0.0,
            expired_entries=expired,
        )
