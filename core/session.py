"""
セッションモジュール。
現在のツリー・表示中のパス・元に戻すためのスナップショットを1か所で管理する。

ツリーは常に丸ごと置き換える（公開済みのノードを書き換えない）。置き換えの直後に
ストアへ保存する。リンク確認の実行中は busy となり、他の変更操作は BusyError になる。
"""

import logging
import queue
import random
import threading
from typing import List, Optional, Tuple

from .errors import BusyError, StorageError
from .model import Bookmark, Folder, Node, Tree, copy_tree, export_netscape_html, parse
from .navigator import Navigator, shuffled_view, sorted_view
from .storage import ConfigManager, load_bookmarks, load_tree, save_tree
from .transforms import count_nodes, dedupe, flatten, group_by_site
from services.workers import DeadLinkWorker, LinkCheckResult, Probe, filter_dead_links, make_http_probe


class BookmarkSession:
    """ブックマークの状態を所有するコントローラ。"""

    def __init__(self, store, config: Optional[ConfigManager] = None, logger: Optional[logging.Logger] = None):
        self.store = store
        self.config = config or ConfigManager(config_path=None)
        self.logger = logger or logging.getLogger(__name__)
        self.storage_key = self.config.get_storage_key()
        self.tree: Tree = []
        self.snapshot: Optional[Tree] = None
        self.navigator = Navigator(logger=self.logger)
        self._lock = threading.Lock()
        self._busy = False
        self._worker = None

    # --- state ---

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def can_restore(self) -> bool:
        return self.snapshot is not None

    def _ensure_idle(self) -> None:
        if self._busy:
            raise BusyError("A dead link check is running")

    def _publish(self, tree: Tree, take_snapshot: bool = False) -> None:
        """Replace the tree (optionally snapshotting the old one), reset the path and save."""
        with self._lock:
            if take_snapshot:
                self.snapshot = copy_tree(self.tree)
            self.tree = tree
            self.navigator.reset()
        self._save()

    def _save(self) -> None:
        try:
            save_tree(self.store, self.tree, self.storage_key)
        except StorageError as e:
            self.logger.error("ブックマークの保存に失敗しました: %s", e)
            raise

    def load(self) -> Tree:
        """Load the stored tree (an empty tree when nothing usable is stored)."""
        self._ensure_idle()
        tree = load_tree(self.store, self.storage_key)
        with self._lock:
            self.tree = tree if tree is not None else []
            self.navigator.reset()
        bm, fl = self.stats()
        self.logger.info("Loaded %d bookmarks in %d folders from store", bm, fl)
        return self.tree

    def import_markup(self, markup) -> Tree:
        """
        Parse an exported bookmark file and make it the current tree.

        Raises:
            ParseError: 解析失敗（ツリーは変更しない）
            StorageError: 保存失敗（メモリ上のツリーは新しいまま）
        """
        self._ensure_idle()
        return self._replace_with_import(parse(markup))

    def import_file(self, path: str) -> Tree:
        """Import a bookmark export file from disk (same rules as `import_markup`)."""
        self._ensure_idle()
        return self._replace_with_import(load_bookmarks(path))

    def _replace_with_import(self, tree: Tree) -> Tree:
        with self._lock:
            self.snapshot = None
        self._publish(tree)
        bm, fl = self.stats()
        self.logger.info("Imported %d bookmarks in %d folders", bm, fl)
        return tree

    def export_html(self) -> str:
        return export_netscape_html(self.tree)

    def clear(self) -> None:
        self._ensure_idle()
        with self._lock:
            self.tree = []
            self.snapshot = None
            self.navigator.reset()
        self.store.clear(self.storage_key)
        self.logger.info("Cleared bookmarks")

    def stats(self) -> Tuple[int, int]:
        """(bookmarks, folders)"""
        return count_nodes(self.tree)

    # --- navigation ---

    def current_items(self) -> List[Node]:
        return self.navigator.descend(self.tree)

    def open_folder(self, index: int) -> List[Node]:
        """現在のフォルダの index 番目がフォルダなら、その中に移動する。"""
        items = self.current_items()
        if 0 <= index < len(items) and isinstance(items[index], Folder):
            self.navigator.push(index)
            return self.current_items()
        self.logger.warning("Item %r is not a folder in the current view", index)
        return items

    def go_back(self) -> List[Node]:
        self.navigator.pop()
        return self.current_items()

    def breadcrumbs(self) -> List[str]:
        return self.navigator.breadcrumbs(self.tree)

    def sorted_items(self, order: str = "default") -> List[Node]:
        return sorted_view(self.current_items(), order)

    def shuffled_items(self, rng: Optional[random.Random] = None) -> List[Node]:
        return shuffled_view(self.current_items(), rng)

    # --- transforms ---

    def group_by_site(self) -> Tree:
        """Regroup every bookmark into one folder per site."""
        self._ensure_idle()
        grouped = group_by_site(flatten(self.tree), **self.config.get_group_labels())
        self._publish(grouped, take_snapshot=True)
        self.logger.info("Grouped bookmarks into %d folders by site", len(grouped))
        return grouped

    def remove_duplicates(self) -> int:
        """
        重複するブックマークを削除する。

        Returns:
            削除した件数（0 の場合ツリーとスナップショットは変更しない）
        """
        self._ensure_idle()
        initial_count = len(flatten(self.tree))
        deduped = dedupe(self.tree)
        removed = initial_count - len(flatten(deduped))
        if not removed:
            self.logger.info("No duplicate bookmarks found")
            return 0
        self._publish(deduped, take_snapshot=True)
        self.logger.info("Removed %d duplicate bookmarks", removed)
        return removed

    def restore_snapshot(self) -> bool:
        """直前の変換前のツリーに戻す。スナップショットがなければ False。"""
        self._ensure_idle()
        if self.snapshot is None:
            self.logger.warning("No saved structure to restore")
            return False
        restored = copy_tree(self.snapshot)
        with self._lock:
            self.snapshot = None
        self._publish(restored)
        self.logger.info("Restored previous structure")
        return True

    # --- dead links ---

    def _default_probe(self) -> Probe:
        return make_http_probe(timeout=self.config.get_fetch_timeout(),
                               proxy_info=self.config.get_proxies_for_requests())

    def _begin_dead_link_check(self) -> List[Bookmark]:
        with self._lock:
            self._ensure_idle()
            self._busy = True
        self.logger.warning("Dead link check keeps only reachable bookmarks in a single folder; "
                            "the folder structure will not be preserved")
        return flatten(self.tree)

    def _finish_dead_link_check(self, result: Optional[LinkCheckResult]) -> None:
        try:
            if result is None or result.cancelled:
                self.logger.info("Dead link check did not complete; bookmarks unchanged")
                return
            self._publish([Folder(name=self.config.get_valid_links_label(), children=list(result.valid))],
                          take_snapshot=True)
            self.logger.info("Removed %d dead links", len(result.broken))
        finally:
            with self._lock:
                self._busy = False
                self._worker = None

    def check_dead_links(self, probe: Optional[Probe] = None, sleep=None) -> LinkCheckResult:
        """
        Check every bookmark synchronously and keep only the reachable ones.

        Raises:
            BusyError: 別のリンク確認が実行中
            StorageError: 結果の保存に失敗
        """
        bookmarks = self._begin_dead_link_check()
        result = None
        try:
            result = filter_dead_links(bookmarks, probe or self._default_probe(), self.config.get_probe_pace(),
                                       sleep=sleep, logger=self.logger)
        finally:
            self._finish_dead_link_check(result)
        return result

    def start_dead_link_check(self, probe: Optional[Probe] = None, events: Optional['queue.Queue'] = None,
                              sleep=None) -> DeadLinkWorker:
        """
        リンク確認を別スレッドで開始する。

        Args:
            probe: 疎通確認関数（省略時は requests を使う HTTP プローブ）
            events: 進捗・結果を受け取るキュー（オプション）
            sleep: 待機関数（オプション）

        Returns:
            開始済みの DeadLinkWorker
        """
        bookmarks = self._begin_dead_link_check()
        try:
            worker = DeadLinkWorker(bookmarks, probe or self._default_probe(), self.config.get_probe_pace(),
                                    ui_queue=events, on_done=self._finish_dead_link_check,
                                    logger=self.logger, sleep=sleep)
        except Exception:
            with self._lock:
                self._busy = False
            raise
        self._worker = worker
        return worker.start()

    def cancel_dead_link_check(self) -> None:
        worker = self._worker
        if worker is not None:
            worker.cancel()
