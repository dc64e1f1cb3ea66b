"""
播放狀態

- PlayerState: 播放器對外的狀態
- PlaybackClock: 以時間戳計算播放位置，暫停 / 恢復後時間依然正確
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable


class PlayerState(str, Enum):
    """播放器狀態"""
    IDLE = "idle"
    CONNECTING = "connecting"
    PLAYING = "playing"
    PAUSED = "paused"
    BUFFERING = "buffering"
    AUTO_PAUSED = "autopaused"
    DESTROYED = "destroyed"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class PlaybackClock:
    """
    精確追蹤播放位置

    使用方式：
        clock = PlaybackClock()
        clock.start()
        clock.pause()
        clock.resume()
        clock.position_ms   # 扣除暫停時間後的播放毫秒數
    """

    clock: Callable[[], float] = field(default=_monotonic_ms, repr=False)

    is_running: bool = False
    is_paused: bool = False

    _start_time: float = field(default=0, repr=False)
    _pause_start: float = field(default=0, repr=False)
    _total_paused: float = field(default=0, repr=False)
    _started: bool = field(default=False, repr=False)

    def start(self) -> None:
        self.is_running = True
        self.is_paused = False
        self._start_time = self.clock()
        self._total_paused = 0
        self._started = True

    def pause(self) -> bool:
        """
        暫停計時

        Returns:
            是否成功暫停（已暫停則返回 False）
        """
        if self.is_running and not self.is_paused:
            self.is_paused = True
            self._pause_start = self.clock()
            return True
        return False

    def resume(self) -> bool:
        """
        恢復計時

        Returns:
            是否成功恢復（未暫停則返回 False）
        """
        if self.is_paused:
            self.is_paused = False
            self._total_paused += self.clock() - self._pause_start
            return True
        return False

    def stop(self) -> None:
        """停止並保留最後位置"""
        if self.is_running and not self.is_paused:
            self.pause()
        self.is_running = False

    @property
    def position_ms(self) -> int:
        """目前播放位置（毫秒）"""
        if not self._started:
            return 0
        end = self._pause_start if self.is_paused or not self.is_running else self.clock()
        return max(0, int(end - self._start_time - self._total_paused))
