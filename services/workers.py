import time
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Callable, Iterable, List

import requests

from core.errors import ProbeError
from core.model import Bookmark
from core.utils import AppConstants, is_probeable_url

Probe = Callable[[str], bool]

_HEADERS = {'User-Agent': 'Mozilla/5.0'}


@dataclass
class LinkCheckResult:
    """リンク確認の結果"""
    valid: List[Bookmark] = field(default_factory=list)
    broken: List[Bookmark] = field(default_factory=list)
    cancelled: bool = False

    @property
    def checked(self) -> int:
        return len(self.valid) + len(self.broken)


def make_http_probe(
    timeout: float = AppConstants.DEFAULT_FETCH_TIMEOUT,
    proxy_info: Optional[Dict[str, Any]] = None,
    session: Optional[requests.Session] = None,
) -> Probe:
    """
    requests を使った疎通確認関数を作る。

    HEAD（リダイレクト追従）で確認し、405/501 の場合は GET で再確認する。
    最終ステータスが 2xx なら到達可能。http/https 以外の URL はリクエストせずに到達不可とする。

    Args:
        timeout: リクエストタイムアウト（秒）
        proxy_info: `ConfigManager.get_proxies_for_requests` の戻り値（オプション）
        session: 使用する requests.Session（オプション）

    Returns:
        probe(url) -> bool。通信エラーは ProbeError を送出する
    """
    http = session or requests.Session()
    proxies = proxy_info['proxies'] if proxy_info else None
    auth = proxy_info['auth'] if proxy_info else None

    def probe(url: str) -> bool:
        if not is_probeable_url(url):
            return False
        try:
            resp = http.head(url, allow_redirects=True, timeout=timeout, headers=_HEADERS,
                             proxies=proxies, auth=auth)
            if resp.status_code in (405, 501):
                # Some servers reject HEAD
                resp.close()
                resp = http.get(url, allow_redirects=True, timeout=timeout, headers=_HEADERS,
                                proxies=proxies, auth=auth, stream=True)
            try:
                return 200 <= resp.status_code < 300
            finally:
                resp.close()
        except requests.exceptions.RequestException as e:
            raise ProbeError(url, f"{type(e).__name__}: {e}") from e

    return probe


def filter_dead_links(
    bookmarks: Iterable[Bookmark],
    probe: Probe,
    pace: float = AppConstants.DEFAULT_PROBE_PACE,
    progress: Optional[Callable[[int, int], None]] = None,
    check_cancel: Optional[Callable[[], bool]] = None,
    sleep: Optional[Callable[[float], None]] = None,
    logger: Optional[logging.Logger] = None,
) -> LinkCheckResult:
    """
    各URLに順番にアクセスし、到達可能／不可に振り分ける。

    Args:
        bookmarks: 確認するブックマークの列
        probe: 疎通確認関数（True なら到達可能）
        pace: 確認と確認の間の待ち時間（秒）
        progress: 進捗コールバック progress(processed, total)（オプション）
        check_cancel: キャンセルチェック関数（オプション）
        sleep: 待機関数（省略時は time.sleep）
        logger: ロガー（オプション）

    Returns:
        LinkCheckResult。probe の例外は到達不可として扱い、処理は中断しない
    """
    logger = logger or logging.getLogger(__name__)
    sleep = sleep or time.sleep
    items = list(bookmarks)
    total = len(items)
    result = LinkCheckResult()

    for processed, bookmark in enumerate(items):
        if check_cancel and check_cancel():
            logger.info("Dead link check cancelled after %d of %d", processed, total)
            result.cancelled = True
            return result
        if processed and pace > 0:
            sleep(pace)
        try:
            reachable = bool(probe(bookmark.url))
        except Exception as e:
            logger.warning("Link check failed for %s: %s", bookmark.url, e)
            reachable = False
        if reachable:
            result.valid.append(bookmark)
        else:
            logger.info("Unreachable: %s", bookmark.url)
            result.broken.append(bookmark)
        if progress:
            progress(processed + 1, total)

    logger.info("Dead link check finished: %d valid, %d broken", len(result.valid), len(result.broken))
    return result


class DeadLinkWorker:
    """
    別スレッドでリンク確認を行い、進捗と結果をキューに送る。

    キューに送るメッセージ:
        ('deadlink_progress', (processed, total))
        ('deadlink_done', LinkCheckResult)
        ('error', message)
    """

    def __init__(
        self,
        bookmarks: Iterable[Bookmark],
        probe: Probe,
        pace: float = AppConstants.DEFAULT_PROBE_PACE,
        ui_queue: Optional['queue.Queue'] = None,
        on_done: Optional[Callable[[Optional[LinkCheckResult]], None]] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.bookmarks = list(bookmarks)
        self.probe = probe
        self.pace = pace
        self.ui_queue = ui_queue if ui_queue is not None else queue.Queue()
        self.on_done = on_done
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep
        self.result: Optional[LinkCheckResult] = None
        self._cancel_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="dead-link-check", daemon=True)

    def start(self) -> "DeadLinkWorker":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> Optional[LinkCheckResult]:
        self._thread.join(timeout)
        return self.result

    def _progress(self, processed: int, total: int) -> None:
        self.ui_queue.put(('deadlink_progress', (processed, total)))

    def _run(self) -> None:
        result = None
        try:
            result = filter_dead_links(self.bookmarks, self.probe, self.pace, progress=self._progress,
                                       check_cancel=self._cancel_event.is_set, sleep=self.sleep,
                                       logger=self.logger)
        except Exception as e:
            self.logger.error("Dead link check failed: %s", e)
            self.ui_queue.put(('error', f"Dead link check failed: {e}"))
        self.result = result
        if self.on_done:
            try:
                self.on_done(result)
            except Exception as e:
                self.logger.error("Applying dead link check result failed: %s", e)
                self.ui_queue.put(('error', str(e)))
        if result is not None:
            self.ui_queue.put(('deadlink_done', result))
