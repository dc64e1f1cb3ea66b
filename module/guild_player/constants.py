"""
播放器常數設定

所有時間單位皆為毫秒（與外掛 / 擴充套件的資料格式一致）。
"""

# === 佇列 ===
QUEUE_HISTORY_LIMIT = 200             # 歷史紀錄上限，超過時捨棄最舊的一首

# === 逾時（毫秒）===
DEFAULT_EXTRACTOR_TIMEOUT = 50_000    # 外掛 / 擴充套件呼叫的預設逾時
FALLBACK_EXTRACTOR_TIMEOUT = 15_000   # 管理器未指定時使用
DEFAULT_LEAVE_TIMEOUT = 100_000       # 佇列結束後離開語音的等待時間
TRACK_START_TIMEOUT = 5_000           # 等待音軌進入播放狀態
VOICE_CONNECT_TIMEOUT = 50_000        # 連接語音頻道

# === 推進 ===
MAX_ADVANCE_ATTEMPTS = 10             # 連續啟動失敗的上限
RELATED_TRACKS_LIMIT = 10             # 自動播放時請求的相關曲目數量

# === 音量 ===
MIN_VOLUME = 0
MAX_VOLUME = 200
DEFAULT_VOLUME = 100
VOLUME_FADE_STEPS = 10
VOLUME_FADE_INTERVAL = 300            # 每一階的間隔

# === TTS ===
TTS_START_TIMEOUT = 5_000
DEFAULT_MAX_TTS_DURATION = 60_000
TTS_DURATION_BUFFER = 1_500           # 宣告長度之外的緩衝
TTS_MIN_DURATION = 1_000              # 等待時間下限；宣告長度 <= 此值視為秒

# === 外掛快取 ===
PLUGIN_CACHE_TTL = 5 * 60 * 1000
PLUGIN_CACHE_SWEEP_PROBABILITY = 0.1

# === UI ===
PLAYLIST_PER_PAGE = 10
PROGRESS_BAR_LENGTH = 20
PROGRESS_BAR_FILLED = "▬"
PROGRESS_BAR_MARKER = "🔘"
