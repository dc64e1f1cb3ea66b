import discord
from discord.ext import commands

from loguru import logger
from datetime import datetime

import os
import sys
import traceback
from dotenv import load_dotenv

from module.guild_player import GuildPlayerError

version = "v2.0"
start_time = datetime.now()

# ─────────────────────────────────────────────────────────
#  初始化 Bot
# ─────────────────────────────────────────────────────────
# Intents 設定：https://discord.com/developers/applications → Bot → Privileged Gateway Intents
intents = discord.Intents.default()
intents.voice_states = True     # 語音狀態（離開計時、被踢出偵測）

bot = commands.Bot(
    command_prefix=commands.when_mentioned,
    intents=intents
)

# ─────────────────────────────────────────────────────────
#  機器人啟動事件
# ─────────────────────────────────────────────────────────

@bot.event
async def on_ready():
    app_info = await bot.application_info()
    bot.owner_id = app_info.owner.id

    await load_all_extensions()

    logger.info("[初始化] 同步斜線指令")
    slash_command = await bot.tree.sync()
    logger.info(f"[初始化] 已同步 {len(slash_command)} 個斜線指令")

    activity = discord.Activity(type=discord.ActivityType.listening, name="/音樂-播放")
    await bot.change_presence(activity=activity)

    logger.info(f"[初始化] {bot.user} | Ready!")


async def load_all_extensions():
    """自動載入 /cogs 資料夾中的所有 .py 模組（已載入的略過）"""
    cogs_dir = os.path.join(os.path.dirname(__file__), 'cogs')
    for filename in os.listdir(cogs_dir):
        if not filename.endswith('.py'):
            continue
        name = f'cogs.{filename[:-3]}'
        if name in bot.extensions:
            continue
        try:
            logger.info(f"[初始化] 載入 Extension: {filename[:-3]}")
            await bot.load_extension(name)
        except Exception as exc:
            logger.error(f"[初始化] 載入 Extension 失敗: {exc}\n{traceback.format_exc()}")
    logger.info("[初始化] Extension 載入完畢")

# ─────────────────────────────────────────────────────────
#  錯誤處理：播放器錯誤回覆使用者，其餘回報給擁有者
# ─────────────────────────────────────────────────────────

@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: discord.app_commands.AppCommandError):
    original = getattr(error, "original", error)
    if isinstance(original, GuildPlayerError):
        embed = discord.Embed(title=f"❌ {original.user_message}", color=discord.Color.red())
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=True)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=True)
        return

    maintainer = bot.get_user(bot.owner_id)
    embed = discord.Embed(title="斜線指令錯誤", description=str(error))
    embed.set_author(name=f"{interaction.user.name} ({interaction.user.id})", icon_url=interaction.user.display_avatar.url)
    embed.add_field(name="指令資料", value=str(interaction.data))

    if interaction.guild is None:
        embed.add_field(name="頻道", value="私人 Private")
        logger.error(f"{interaction.user.name}({interaction.user.id}):{error}\n{traceback.format_exc()}")
    else:
        embed.add_field(name="頻道", value=f"{interaction.guild.name} - {interaction.channel.name}")
        logger.error(f"{interaction.guild.name}-{interaction.channel.name}-{interaction.user.name}({interaction.user.id}):{error}\n{traceback.format_exc()}")

    if maintainer is not None:
        await maintainer.send(embed=embed)

# ─────────────────────────────────────────────────────────
#  Loguru 記錄器設定
# ─────────────────────────────────────────────────────────

def set_logger():
    """設定 Loguru 的輸出行為（終端機 & 檔案）"""
    logger.remove()
    debug_mode = os.getenv('DEBUG', '').lower() in ('true', '1', 'yes')

    # 終端輸出
    logger.add(sys.stdout, level="DEBUG" if debug_mode else "INFO", colorize=True)

    # 檔案輸出（每 7 天輪替，保留 30 天，自動壓縮）
    logger.add(
        "./logs/system.log",
        rotation="7 days",
        retention="30 days",
        encoding="UTF-8",
        compression="zip",
        level="INFO",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

# ─────────────────────────────────────────────────────────
#  程式入口點
# ─────────────────────────────────────────────────────────

if __name__ == '__main__':
    load_dotenv()
    set_logger()

    TOKEN = os.getenv("DISCORD_BOT_TOKEN")
    if not TOKEN:
        logger.critical("❌ DISCORD_BOT_TOKEN 尚未設定，請檢查 .env 或系統環境變數")
        sys.exit(1)

    try:
        bot.run(TOKEN, log_handler=None)
    except Exception as e:
        logger.critical(f"❗ 無法啟動 Discord Bot：{e}")
        sys.exit(1)
