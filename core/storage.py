import os
import configparser
import json
import logging
import tempfile
from typing import Optional, Dict, Any

from .errors import StorageError
from .model import Tree, export_netscape_html, node_from_dict, node_to_dict, parse
from .utils import AppConstants, is_probeable_url

"""
ストレージ／設定モジュール。
- `ConfigManager` : `config.ini` を管理するクラス
- `MemoryStore` / `FileStore` : キーと文字列を保存するストア
- `serialize_tree` / `deserialize_tree` / `save_tree` / `load_tree` : ツリーの保存と復元
- `load_bookmarks` / `save_bookmarks` : ブックマークHTMLファイルの読み書き
"""

logger = logging.getLogger(__name__)


class ConfigManager:
    """設定ファイル(config.ini)の管理を専門に行うクラス。"""

    def __init__(self, config_path='config.ini'):
        self.config_path = config_path
        self.config = configparser.ConfigParser()
        self.load_config()

    def load_config(self):
        """設定ファイルを読み込む（存在しなければ既定値のまま）"""
        if self.config_path and os.path.exists(self.config_path):
            self.config.read(self.config_path, encoding='utf-8')

    def get_storage_key(self) -> str:
        return self.config.get('Storage', 'key', fallback=AppConstants.STORAGE_KEY)

    def get_storage_directory(self) -> str:
        return self.config.get('Storage', 'directory', fallback=AppConstants.STORAGE_DIR)

    def get_fetch_timeout(self) -> float:
        """
        リンク確認のタイムアウト（秒）を取得する。
        範囲外の値は MIN_FETCH_TIMEOUT〜MAX_FETCH_TIMEOUT に丸める。
        """
        try:
            timeout = self.config.getfloat('LinkCheck', 'timeout', fallback=AppConstants.DEFAULT_FETCH_TIMEOUT)
        except ValueError:
            logger.warning("Invalid [LinkCheck] timeout in %s; using default", self.config_path)
            timeout = AppConstants.DEFAULT_FETCH_TIMEOUT
        return min(max(timeout, AppConstants.MIN_FETCH_TIMEOUT), AppConstants.MAX_FETCH_TIMEOUT)

    def get_probe_pace(self) -> float:
        """リンク確認の間隔（秒）を取得する。負の値は 0 とする。"""
        try:
            pace = self.config.getfloat('LinkCheck', 'pace', fallback=AppConstants.DEFAULT_PROBE_PACE)
        except ValueError:
            logger.warning("Invalid [LinkCheck] pace in %s; using default", self.config_path)
            pace = AppConstants.DEFAULT_PROBE_PACE
        return max(pace, 0.0)

    def get_valid_links_label(self) -> str:
        return self.config.get('LinkCheck', 'folder_label', fallback=AppConstants.VALID_LINKS_LABEL)

    def get_group_labels(self) -> Dict[str, str]:
        """サイト別グループ化で使う予約フォルダ名を取得する"""
        return {
            'invalid_label': self.config.get('Grouping', 'invalid_label', fallback=AppConstants.INVALID_URL_LABEL),
            'misc_label': self.config.get('Grouping', 'misc_label', fallback=AppConstants.MISC_LABEL),
        }

    def get_proxy_settings(self) -> Optional[Dict[str, Any]]:
        """
        [Proxy] セクションを読む。

        url は http/https でホスト名を持つものだけを受け付け、それ以外は
        警告を出してプロキシなしとする。

        Returns:
            {'url', 'user', 'password'} の辞書、またはNone
        """
        if not self.config.has_section('Proxy'):
            return None
        url = self.config.get('Proxy', 'url', fallback='').strip()
        if not is_probeable_url(url):
            if url:
                logger.warning("Ignoring [Proxy] url %r in %s: not an http(s) URL", url, self.config_path)
            return None
        return {
            'url': url,
            'user': self.config.get('Proxy', 'user', fallback=None),
            'password': self.config.get('Proxy', 'password', fallback=None),
        }

    def get_proxies_for_requests(self, use_proxy: bool = True) -> Optional[Dict[str, Any]]:
        """Proxy arguments for the link-check probe: {'proxies': {...}, 'auth': (user, password) or None}."""
        settings = self.get_proxy_settings() if use_proxy else None
        if settings is None:
            return None
        credentials = (settings['user'], settings['password'])
        return {
            'proxies': dict.fromkeys(('http', 'https'), settings['url']),
            'auth': credentials if all(credentials) else None,
        }


class MemoryStore:
    """dict に保存するストア（テスト・一時利用向け）。"""

    def __init__(self):
        self.data: Dict[str, str] = {}

    def save(self, key: str, value: str) -> None:
        self.data[key] = value

    def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def clear(self, key: str) -> None:
        self.data.pop(key, None)


class FileStore:
    """キーごとに1ファイル（UTF-8）を書き出すストア。"""

    def __init__(self, directory: str = AppConstants.STORAGE_DIR):
        self.directory = directory

    def _path_of(self, key: str) -> str:
        if not key or os.sep in key or (os.altsep and os.altsep in key) or key in (".", ".."):
            raise StorageError(f"Invalid storage key: {key!r}")
        return os.path.join(self.directory, key + ".json")

    def save(self, key: str, value: str) -> None:
        """
        値を書き込む（一時ファイル経由で置き換える）。

        Raises:
            StorageError: 書き込みエラー
        """
        path = self._path_of(key)
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(value)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    def load(self, key: str) -> Optional[str]:
        path = self._path_of(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def clear(self, key: str) -> None:
        path = self._path_of(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to remove {path}: {e}") from e


def serialize_tree(tree: Tree) -> str:
    """
    ツリーをJSON文字列に変換する

    Raises:
        StorageError: JSON の入れ子の上限を超えるほど深いツリー
    """
    try:
        return json.dumps([node_to_dict(node) for node in tree], ensure_ascii=False)
    except RecursionError as e:
        raise StorageError(f"Bookmarks are nested too deeply to store: {e}") from e


def deserialize_tree(text: str) -> Tree:
    """
    JSON文字列からツリーを復元する

    Raises:
        StorageError: JSONが壊れている、またはノードの形が不正な場合
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError, RecursionError) as e:
        raise StorageError(f"Stored bookmarks are not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise StorageError("Stored bookmarks must be a JSON list")
    try:
        return [node_from_dict(item) for item in data]
    except ValueError as e:
        raise StorageError(f"Stored bookmarks are malformed: {e}") from e


def save_tree(store, tree: Tree, key: str = AppConstants.STORAGE_KEY) -> None:
    """
    Serialize `tree` and write it to `store`.

    Raises:
        StorageError: 書き込みエラー（容量不足など）
    """
    try:
        store.save(key, serialize_tree(tree))
    except StorageError as e:
        logger.error("Failed to save bookmarks under '%s': %s", key, e)
        raise
    except OSError as e:
        logger.error("Failed to save bookmarks under '%s': %s", key, e)
        raise StorageError(f"Failed to save bookmarks: {e}") from e
    logger.info("Saved %d top-level items under '%s'", len(tree), key)


def load_tree(store, key: str = AppConstants.STORAGE_KEY) -> Optional[Tree]:
    """
    Read the tree stored under `key`.

    壊れたデータは警告を出して削除し、存在しないものとして扱う。

    Returns:
        ツリー、保存されていない（または壊れていた）場合はNone
    """
    try:
        text = store.load(key)
    except StorageError as e:
        logger.warning("Could not read stored bookmarks: %s", e)
        return None
    if text is None:
        return None
    try:
        return deserialize_tree(text)
    except StorageError as e:
        logger.warning("Discarding corrupted bookmarks under '%s': %s", key, e)
        try:
            store.clear(key)
        except StorageError as clear_error:
            logger.warning("Could not clear corrupted bookmarks: %s", clear_error)
        return None


def load_bookmarks(path: str) -> Tree:
    """
    Load a bookmarks HTML export from disk.

    Args:
        path: ブックマークHTMLファイルのパス

    Returns:
        ツリー

    Raises:
        IOError: ファイル読み込みエラー
        ParseError: パースエラー
    """
    with open(path, 'rb') as f:
        data = f.read()
    tree = parse(data)
    logger.info("Loaded %d top-level items from %s", len(tree), path)
    return tree


def save_bookmarks(path: str, tree: Tree) -> None:
    """
    Save the tree as a Netscape bookmarks HTML file.

    Raises:
        IOError: ファイル書き込みエラー
    """
    html_text = export_netscape_html(tree)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(html_text)
