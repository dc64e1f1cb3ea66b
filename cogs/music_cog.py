"""
伺服器播放器 Cog

以斜線指令操作 PlayerManager：
- 來源外掛與擴充套件由 GUILD_PLAYER_PLUGINS / GUILD_PLAYER_EXTENSIONS 指定
- 播放器選項由 GUILD_PLAYER_* 環境變數覆寫
- 播放通知送到下指令的文字頻道（存於 userdata）
"""

import discord
from discord import app_commands
from discord.ext import commands
from loguru import logger
from typing import Optional

from module.guild_player import (
    EmbedBuilder,
    LoopMode,
    Player,
    PlayerManager,
    Track,
    handle_errors,
    load_paths,
    load_player_options,
)
from module.guild_player.utils.loader import load_objects


class GuildPlayerCog(commands.Cog):
    """伺服器播放器指令"""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.embeds = EmbedBuilder()
        self.manager: Optional[PlayerManager] = None
        self.options = None

    async def cog_load(self):
        """建立管理器並載入外掛"""
        self.options = load_player_options()
        plugins = load_objects(load_paths("PLUGINS"))
        extensions = load_objects(load_paths("EXTENSIONS"))
        if not plugins:
            logger.warning("未設定任何來源外掛（GUILD_PLAYER_PLUGINS），將無法搜尋")

        self.manager = PlayerManager(
            plugins=plugins,
            extensions=extensions,
            extractor_timeout=self.options.extractor_timeout,
        )
        self.manager.on("trackStart", self._on_track_start)
        self.manager.on("queueEnd", self._on_queue_end)
        self.manager.on("playerError", self._on_player_error)
        self.manager.on("connectionError", self._on_connection_error)
        self.manager.on("playerDestroy", self._on_player_destroy)
        logger.info("伺服器播放器 Cog 已載入")

    async def cog_unload(self):
        if self.manager is not None:
            self.manager.destroy()
        logger.info("伺服器播放器 Cog 已卸載")

    # === 播放器事件 ===

    async def _on_track_start(self, player: Player, track: Optional[Track]):
        await self._notify(player, self.embeds.now_playing(player, track))

    async def _on_queue_end(self, player: Player):
        await self._notify(player, self.embeds.info("播放清單已播放完畢"))

    async def _on_player_error(self, player: Player, error: BaseException, track: Optional[Track] = None):
        message = getattr(error, "user_message", None) or "播放時發生錯誤"
        description = f"[{track.title}]({track.url})" if track else None
        await self._notify(player, self.embeds.error(message, description))

    async def _on_connection_error(self, player: Player, error: BaseException):
        logger.warning(f"[Guild:{player.guild_id}] 語音連線錯誤: {error}")

    def _on_player_destroy(self, player: Player):
        logger.info(f"[Guild:{player.guild_id}] 已離開語音頻道")

    async def _notify(self, player: Player, embed: discord.Embed):
        channel = player.userdata.get("text_channel")
        if channel is None:
            return
        try:
            await channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.warning(f"[Guild:{player.guild_id}] 無法傳送通知: {e}")

    # === 輔助方法 ===

    async def _ensure_player(self, interaction: discord.Interaction) -> Optional[Player]:
        """取得播放器並確保已連接到使用者所在的語音頻道"""
        voice = getattr(interaction.user, "voice", None)
        if voice is None or voice.channel is None:
            await interaction.followup.send(embed=self.embeds.error("請先加入語音頻道"), ephemeral=True)
            return None

        player = self.manager.get(interaction.guild)
        if player is None:
            options = self.options.replace(
                userdata={"text_channel": interaction.channel},
                extensions=self.manager.extensions or None,
            )
            player = self.manager.create(interaction.guild, options)

        if not player.is_connected:
            await player.connect(voice.channel)
        return player

    async def _get_player(self, interaction: discord.Interaction) -> Optional[Player]:
        player = self.manager.get(interaction.guild) if interaction.guild else None
        if player is None:
            await interaction.response.send_message(embed=self.embeds.error("播放器尚未啟動"), ephemeral=True)
        return player

    # === 播放 ===

    @app_commands.command(name="音樂-播放", description="搜尋並播放，或加入播放清單")
    @app_commands.rename(query="查詢")
    @app_commands.describe(query="網址或關鍵字")
    @app_commands.guild_only()
    @handle_errors
    async def play(self, interaction: discord.Interaction, query: str):
        await interaction.response.defer(thinking=True)
        player = await self._ensure_player(interaction)
        if player is None:
            return

        before = player.queue_size
        if await player.play(query, requested_by=interaction.user.display_name):
            added = player.upcoming_tracks[before:] or [player.current_track]
            added = [track for track in added if track is not None]
            if added:
                await interaction.followup.send(embed=self.embeds.added_tracks(added, position=before + 1))
            else:
                await interaction.followup.send(embed=self.embeds.success("已送出"))
        else:
            await interaction.followup.send(embed=self.embeds.error("無法播放", query), ephemeral=True)

    @app_commands.command(name="音樂-插播", description="插入到播放清單的指定位置")
    @app_commands.rename(query="查詢", position="位置")
    @app_commands.describe(query="網址或關鍵字", position="插入位置（從 1 開始）")
    @app_commands.guild_only()
    @handle_errors
    async def insert(self, interaction: discord.Interaction, query: str, position: app_commands.Range[int, 1] = 1):
        await interaction.response.defer(thinking=True)
        player = await self._ensure_player(interaction)
        if player is None:
            return

        if await player.insert(query, position - 1, requested_by=interaction.user.display_name):
            track = player.queue.get_track(min(position - 1, player.queue_size - 1))
            embed = self.embeds.added_tracks([track], position=position) if track else self.embeds.success("已插入")
            await interaction.followup.send(embed=embed)
        else:
            await interaction.followup.send(embed=self.embeds.error("找不到可插入的內容", query), ephemeral=True)

    @app_commands.command(name="音樂-語音", description="插播一段文字轉語音")
    @app_commands.rename(text="文字")
    @app_commands.describe(text="要朗讀的內容")
    @app_commands.guild_only()
    @handle_errors
    async def speak(self, interaction: discord.Interaction, text: str):
        await interaction.response.defer(thinking=True, ephemeral=True)
        player = await self._ensure_player(interaction)
        if player is None:
            return

        if await player.play(f"tts: {text}", requested_by=interaction.user.display_name):
            await interaction.followup.send(embed=self.embeds.success("已加入語音插播"), ephemeral=True)
        else:
            await interaction.followup.send(embed=self.embeds.error("無法播放語音"), ephemeral=True)

    # === 控制 ===

    @app_commands.command(name="音樂-暫停", description="暫停播放")
    @app_commands.guild_only()
    async def pause(self, interaction: discord.Interaction):
        player = await self._get_player(interaction)
        if player is None:
            return
        if player.pause():
            await interaction.response.send_message(embed=self.embeds.success("已暫停"))
        else:
            await interaction.response.send_message(embed=self.embeds.info("目前沒有正在播放的曲目"), ephemeral=True)

    @app_commands.command(name="音樂-繼續", description="繼續播放")
    @app_commands.guild_only()
    async def resume(self, interaction: discord.Interaction):
        player = await self._get_player(interaction)
        if player is None:
            return
        if player.resume():
            await interaction.response.send_message(embed=self.embeds.success("繼續播放"))
        else:
            await interaction.response.send_message(embed=self.embeds.info("目前沒有暫停"), ephemeral=True)

    @app_commands.command(name="音樂-跳過", description="跳到下一首")
    @app_commands.guild_only()
    async def skip(self, interaction: discord.Interaction):
        player = await self._get_player(interaction)
        if player is None:
            return
        if player.skip():
            await interaction.response.send_message(embed=self.embeds.success("已跳過"))
        else:
            await interaction.response.send_message(embed=self.embeds.info("沒有下一首了"), ephemeral=True)

    @app_commands.command(name="音樂-上一首", description="回到上一首")
    @app_commands.guild_only()
    @handle_errors
    async def previous(self, interaction: discord.Interaction):
        player = await self._get_player(interaction)
        if player is None:
            return
        await interaction.response.defer()
        if await player.previous():
            await interaction.followup.send(embed=self.embeds.success("回到上一首"))
        else:
            await interaction.followup.send(embed=self.embeds.info("沒有上一首"), ephemeral=True)

    @app_commands.command(name="音樂-停止", description="停止播放並清空播放清單")
    @app_commands.guild_only()
    async def stop(self, interaction: discord.Interaction):
        player = await self._get_player(interaction)
        if player is None:
            return
        player.stop()
        await interaction.response.send_message(embed=self.embeds.success("已停止播放"))

    @app_commands.command(name="音樂-音量", description="調整音量（0 - 200）")
    @app_commands.rename(volume="音量")
    @app_commands.guild_only()
    async def volume(self, interaction: discord.Interaction, volume: app_commands.Range[int, 0, 200]):
        player = await self._get_player(interaction)
        if player is None:
            return
        if player.set_volume(volume):
            await interaction.response.send_message(embed=self.embeds.success(f"音量已設為 {volume}%"))
        else:
            await interaction.response.send_message(embed=self.embeds.error("音量必須介於 0 到 200"), ephemeral=True)

    @app_commands.command(name="音樂-循環", description="設定循環模式")
    @app_commands.rename(mode="模式")
    @app_commands.choices(mode=[
        app_commands.Choice(name="關閉", value=LoopMode.OFF.value),
        app_commands.Choice(name="單曲", value=LoopMode.TRACK.value),
        app_commands.Choice(name="整個清單", value=LoopMode.QUEUE.value),
    ])
    @app_commands.guild_only()
    async def loop(self, interaction: discord.Interaction, mode: app_commands.Choice[str]):
        player = await self._get_player(interaction)
        if player is None:
            return
        player.loop(mode.value)
        await interaction.response.send_message(embed=self.embeds.success(f"循環模式: {mode.name}"))

    @app_commands.command(name="音樂-自動播放", description="播放清單結束後自動播放相關曲目")
    @app_commands.rename(enabled="開啟")
    @app_commands.guild_only()
    async def autoplay(self, interaction: discord.Interaction, enabled: bool):
        player = await self._get_player(interaction)
        if player is None:
            return
        player.auto_play(enabled)
        await interaction.response.send_message(embed=self.embeds.success(f"自動播放: {'開啟' if enabled else '關閉'}"))

    @app_commands.command(name="音樂-隨機", description="打亂播放清單")
    @app_commands.guild_only()
    async def shuffle(self, interaction: discord.Interaction):
        player = await self._get_player(interaction)
        if player is None:
            return
        player.shuffle()
        await interaction.response.send_message(embed=self.embeds.success("已打亂播放清單"))

    # === 清單 ===

    @app_commands.command(name="音樂-清單", description="查看播放清單")
    @app_commands.rename(page="頁數")
    @app_commands.guild_only()
    async def queue(self, interaction: discord.Interaction, page: app_commands.Range[int, 1] = 1):
        player = await self._get_player(interaction)
        if player is None:
            return
        await interaction.response.send_message(embed=self.embeds.queue_page(player, page), ephemeral=True)

    @app_commands.command(name="音樂-正在播放", description="顯示目前播放的曲目")
    @app_commands.guild_only()
    async def now_playing(self, interaction: discord.Interaction):
        player = await self._get_player(interaction)
        if player is None:
            return
        await interaction.response.send_message(embed=self.embeds.now_playing(player), ephemeral=True)

    @app_commands.command(name="音樂-移除", description="移除播放清單中的特定曲目")
    @app_commands.rename(index="編號")
    @app_commands.describe(index="要移除的曲目編號（從 1 開始）")
    @app_commands.guild_only()
    async def remove(self, interaction: discord.Interaction, index: app_commands.Range[int, 1]):
        player = await self._get_player(interaction)
        if player is None:
            return
        track = player.remove(index - 1)
        if track is None:
            await interaction.response.send_message(embed=self.embeds.error(f"沒有第 {index} 首"), ephemeral=True)
        else:
            await interaction.response.send_message(embed=self.embeds.removed_track(track))

    @app_commands.command(name="音樂-離開", description="離開語音頻道並關閉播放器")
    @app_commands.guild_only()
    async def leave(self, interaction: discord.Interaction):
        if self.manager.delete(interaction.guild):
            await interaction.response.send_message(embed=self.embeds.success("已離開語音頻道"))
        else:
            await interaction.response.send_message(embed=self.embeds.info("播放器尚未啟動"), ephemeral=True)

    # === 語音狀態 ===

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ):
        player = self.manager.get(member.guild) if self.manager else None
        if player is None:
            return

        # 機器人被踢出或斷線
        if member.id == self.bot.user.id:
            if before.channel is not None and after.channel is None and player.connection is not None:
                player.connection.signal_disconnected()
            return

        voice_client = member.guild.voice_client
        if voice_client is None or voice_client.channel is None:
            return
        bot_channel = voice_client.channel

        if not any(not m.bot for m in bot_channel.members):
            player.handle_channel_empty()
        elif after.channel == bot_channel and before.channel != bot_channel:
            player.cancel_leave()


async def setup(bot: commands.Bot):
    await bot.add_cog(GuildPlayerCog(bot))
