"""
播放佇列

特性：
- 待播清單 + 目前曲目 + 有上限的歷史紀錄
- 三種循環模式（off / track / queue）
- 自動播放的預告槽（will_next）與相關曲目
"""

import random
from collections import deque
from enum import Enum
from typing import Deque, Iterator, List, Optional, Sequence

from loguru import logger

from ..constants import QUEUE_HISTORY_LIMIT
from .track import Track


class LoopMode(str, Enum):
    """循環模式"""
    OFF = "off"
    TRACK = "track"
    QUEUE = "queue"


class Queue:
    """
    播放佇列

    使用方式：
        queue = Queue()
        queue.add(track)

        queue.next()                  # 推進到下一首
        queue.loop(LoopMode.QUEUE)    # 整個佇列循環
        queue.previous()              # 回到上一首
    """

    def __init__(self, history_limit: int = QUEUE_HISTORY_LIMIT):
        self._tracks: List[Track] = []
        self._current: Optional[Track] = None
        self._history: Deque[Track] = deque(maxlen=history_limit)
        self._loop_mode = LoopMode.OFF
        self._auto_play = False
        self._will_next: Optional[Track] = None
        self._related: List[Track] = []

    # === 屬性 ===

    @property
    def size(self) -> int:
        """待播曲目數量（不含目前曲目）"""
        return len(self._tracks)

    @property
    def is_empty(self) -> bool:
        return not self._tracks

    @property
    def current_track(self) -> Optional[Track]:
        return self._current

    @property
    def next_track(self) -> Optional[Track]:
        """下一首待播曲目（不會移出佇列）"""
        return self._tracks[0] if self._tracks else None

    @property
    def previous_tracks(self) -> List[Track]:
        """歷史紀錄，最舊的在前"""
        return list(self._history)

    @property
    def loop_mode(self) -> LoopMode:
        return self._loop_mode

    def get_tracks(self) -> List[Track]:
        return list(self._tracks)

    def get_track(self, index: int) -> Optional[Track]:
        if 0 <= index < len(self._tracks):
            return self._tracks[index]
        return None

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(list(self._tracks))

    # === 新增 / 移除 ===

    def add(self, track: Track) -> None:
        self._tracks.append(track)

    def add_multiple(self, tracks: Sequence[Track]) -> None:
        self._tracks.extend(tracks)

    def insert(self, track: Track, index: int = 0) -> None:
        """插入到指定位置（負數視為 0，超出範圍則加到最後）"""
        self._tracks.insert(self._clamp(index), track)

    def insert_multiple(self, tracks: Sequence[Track], index: int = 0) -> None:
        position = self._clamp(index)
        self._tracks[position:position] = list(tracks)

    def remove(self, index: int) -> Optional[Track]:
        """移除指定位置的曲目，索引無效時回傳 None"""
        if 0 <= index < len(self._tracks):
            return self._tracks.pop(index)
        return None

    def clear(self) -> None:
        """清空待播清單（不影響目前曲目與歷史紀錄）"""
        self._tracks.clear()

    def shuffle(self) -> None:
        random.shuffle(self._tracks)

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self._tracks)))

    # === 推進 ===

    def next(self, ignore_loop: bool = False) -> Optional[Track]:
        """
        推進到下一首

        Args:
            ignore_loop: 忽略單曲循環（用於跳過）

        Returns:
            新的目前曲目；沒有可播放的曲目時回傳 None
        """
        if self._loop_mode is LoopMode.TRACK and not ignore_loop and self._current is not None:
            return self._current

        if self._current is not None:
            self._history.append(self._current)

        self._current = self._tracks.pop(0) if self._tracks else None

        if self._current is None and self._loop_mode is LoopMode.QUEUE and self._history:
            logger.debug(f"佇列循環：從歷史紀錄補回 {len(self._history)} 首")
            self._tracks.extend(self._history)
            self._history.clear()
            self._current = self._tracks.pop(0)

        return self._current

    def previous(self) -> Optional[Track]:
        """
        從歷史紀錄取回上一首並設為目前曲目

        被中斷的目前曲目由呼叫端負責放回佇列。
        """
        if not self._history:
            return None
        self._current = self._history.pop()
        return self._current

    # === 模式 ===

    def loop(self, mode: Optional[LoopMode] = None) -> LoopMode:
        """取得或設定循環模式"""
        if mode is not None:
            self._loop_mode = LoopMode(mode)
            logger.debug(f"循環模式: {self._loop_mode.value}")
        return self._loop_mode

    def auto_play(self, value: Optional[bool] = None) -> bool:
        """取得或設定自動播放"""
        if value is not None:
            self._auto_play = bool(value)
        return self._auto_play

    def will_next_track(self, track: Optional[Track] = None) -> Optional[Track]:
        """取得或設定自動播放的預告曲目"""
        if track is not None:
            self._will_next = track
        return self._will_next

    def take_will_next(self) -> Optional[Track]:
        """取出並清空預告曲目"""
        track, self._will_next = self._will_next, None
        return track

    def related_tracks(self, tracks: Optional[Sequence[Track]] = None) -> List[Track]:
        """取得或設定相關曲目"""
        if tracks is not None:
            self._related = list(tracks)
        return list(self._related)
