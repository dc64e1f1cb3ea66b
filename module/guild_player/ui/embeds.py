"""
Discord Embed 生成器

負責生成各種情境的 Embed 訊息：
- 播放中
- 待播清單
- 新增/移除曲目
- 錯誤訊息
"""

import discord
from typing import Optional, Sequence, TYPE_CHECKING
from loguru import logger

from ..constants import PLAYLIST_PER_PAGE
from ..core.queue import LoopMode
from ..core.track import Track

if TYPE_CHECKING:
    from ..core.player import Player

LOOP_LABELS = {
    LoopMode.OFF: "關閉",
    LoopMode.TRACK: "單曲 🔂",
    LoopMode.QUEUE: "清單 🔁",
}


class EmbedBuilder:
    """
    Discord Embed 管理器

    使用方式：
        embeds = EmbedBuilder()
        embed = embeds.now_playing(player)
    """

    # 顏色定義
    COLOR_PLAYING = discord.Color.blurple()
    COLOR_PAUSED = discord.Color.orange()
    COLOR_SUCCESS = discord.Color.green()
    COLOR_ERROR = discord.Color.red()
    COLOR_INFO = discord.Color.blue()

    # === 播放相關 ===

    def now_playing(self, player: "Player", track: Optional[Track] = None) -> discord.Embed:
        """
        生成播放中的 Embed

        Args:
            player: 播放器
            track: 要顯示的曲目，None 則使用目前曲目
        """
        track = track or player.current_track
        if track is None:
            return self.info("沒有正在播放的曲目", "播放清單是空的")

        try:
            status = "已暫停 ⏸️" if player.is_paused else "正在播放 ▶️"
            color = self.COLOR_PAUSED if player.is_paused else self.COLOR_PLAYING

            embed = discord.Embed(color=color, description=f"[{track.title}]({track.url})")
            embed.set_author(name=track.source or "未知來源")
            embed.add_field(
                name="狀態",
                value=f"{status}\n{player.get_progress_bar()}",
                inline=False,
            )
            embed.add_field(name="點歌者", value=track.requested_by, inline=True)
            embed.add_field(name="音量", value=f"{player.volume}%", inline=True)

            if track.thumbnail:
                embed.set_thumbnail(url=track.thumbnail)

            footer_parts = [f"循環播放: {LOOP_LABELS[player.queue.loop_mode]}"]
            if player.queue.auto_play():
                footer_parts.append("自動播放: 開啟")
            footer_parts.append(f"待播: {player.queue_size} 首")
            embed.set_footer(text=" | ".join(footer_parts))
            return embed

        except Exception as e:
            logger.error(f"生成播放 Embed 失敗: {e}")
            return self.error("無法顯示播放資訊")

    # === 清單相關 ===

    def queue_page(self, player: "Player", page: int = 1, per_page: int = PLAYLIST_PER_PAGE) -> discord.Embed:
        """
        生成待播清單 Embed

        Args:
            player: 播放器
            page: 頁碼（1-based，超出範圍會被修正）
            per_page: 每頁曲目數
        """
        tracks = player.upcoming_tracks
        total_pages = max(1, (len(tracks) + per_page - 1) // per_page)
        page = max(1, min(page, total_pages))
        start = (page - 1) * per_page

        embed = discord.Embed(title="🎶 待播清單", color=self.COLOR_INFO)

        lines = []
        current = player.current_track
        if current is not None:
            lines.append(f"▶️ [{current.title}]({current.url}) `{current.format_duration()}`")

        for offset, track in enumerate(tracks[start:start + per_page]):
            lines.append(f"{start + offset + 1}. [{track.title}]({track.url}) `{track.format_duration()}`")

        embed.description = "\n".join(lines) if lines else "目前播放清單中沒有音樂！"
        embed.set_footer(text=f"頁數: {page}/{total_pages} | 待播曲目: {len(tracks)}")
        return embed

    # === 操作結果 ===

    def added_tracks(self, tracks: Sequence[Track], position: Optional[int] = None) -> discord.Embed:
        """生成新增曲目成功的 Embed"""
        if len(tracks) == 1:
            track = tracks[0]
            embed = discord.Embed(
                title="✅ 已新增曲目",
                description=f"[{track.title}]({track.url})",
                color=self.COLOR_SUCCESS,
            )
            if track.thumbnail:
                embed.set_thumbnail(url=track.thumbnail)
            info_parts = []
            if position:
                info_parts.append(f"位置: #{position}")
            info_parts.append(f"時長: {track.format_duration()}")
            embed.add_field(name="資訊", value=" | ".join(info_parts), inline=False)
            return embed

        return discord.Embed(
            title="✅ 已新增播放清單",
            description=f"新增了 **{len(tracks)}** 首曲目",
            color=self.COLOR_SUCCESS,
        )

    def removed_track(self, track: Track) -> discord.Embed:
        embed = discord.Embed(
            title="🗑️ 已移除曲目",
            description=f"[{track.title}]({track.url})",
            color=discord.Color.orange(),
        )
        if track.thumbnail:
            embed.set_thumbnail(url=track.thumbnail)
        return embed

    # === 通用訊息 ===

    def success(self, message: str, description: Optional[str] = None) -> discord.Embed:
        """成功訊息"""
        return discord.Embed(title=f"✅ {message}", description=description, color=self.COLOR_SUCCESS)

    def error(self, message: str, description: Optional[str] = None) -> discord.Embed:
        """錯誤訊息"""
        return discord.Embed(title=f"❌ {message}", description=description, color=self.COLOR_ERROR)

    def info(self, message: str, description: Optional[str] = None) -> discord.Embed:
        """資訊訊息"""
        return discord.Embed(title=f"ℹ️ {message}", description=description, color=self.COLOR_INFO)
