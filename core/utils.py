import logging
from logging.handlers import RotatingFileHandler
from typing import Optional
from urllib.parse import urlsplit

"""
ユーティリティモジュール。
- `AppConstants` : 既定値
- `hostname_of` : URL からホスト名を抽出
- `is_probeable_url` : 疎通確認できる URL か判定
- `setup_logging` : ログ設定
"""


# アプリケーション定数
class AppConstants:
    """アプリケーション全体で使用する定数"""

    # ストレージ関連
    STORAGE_KEY = "bookmarksData"
    STORAGE_DIR = ".bookmark_shelf"

    # ログ関連
    LOG_FILE = "bookmark_shelf.log"
    LOG_MAX_BYTES = 1024 * 1024 * 5
    LOG_BACKUP_COUNT = 3

    # リンク確認のタイムアウト設定
    DEFAULT_FETCH_TIMEOUT = 10
    MIN_FETCH_TIMEOUT = 2
    MAX_FETCH_TIMEOUT = 60

    # リンク確認の間隔（秒）
    DEFAULT_PROBE_PACE = 0.5

    # 予約フォルダ名
    INVALID_URL_LABEL = "Invalid URL"
    MISC_LABEL = "Other"
    VALID_LINKS_LABEL = "Valid links"


def hostname_of(url: str) -> Optional[str]:
    """Return the lower-cased hostname of `url`, or None when it cannot be parsed."""
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    return hostname.lower()


def is_probeable_url(url: str) -> bool:
    """http/https でホスト名を持つ URL のみ疎通確認の対象にする。"""
    if hostname_of(url) is None:
        return False
    return urlsplit(url.strip()).scheme.lower() in ("http", "https")


def setup_logging(log_path: Optional[str] = AppConstants.LOG_FILE, level: int = logging.INFO,
                  logger_name: Optional[str] = None) -> logging.Logger:
    """
    ログ設定（ファイル + コンソール）。

    Args:
        log_path: ログファイルのパス（None の場合はコンソールのみ）
        level: ファイル側のログレベル
        logger_name: 設定するロガー名（None はルートロガー）

    Returns:
        設定済みのロガー
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    log_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if logger.hasHandlers():
        logger.handlers.clear()

    if log_path:
        file_handler = RotatingFileHandler(log_path, maxBytes=AppConstants.LOG_MAX_BYTES,
                                           backupCount=AppConstants.LOG_BACKUP_COUNT, encoding='utf-8')
        file_handler.setFormatter(log_formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    console_handler.setLevel(logging.WARNING)
    logger.addHandler(console_handler)
    return logger
