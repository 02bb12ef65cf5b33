"""
例外モジュール。
ブックマーク操作で発生するエラーの分類。
"""


class BookmarkError(Exception):
    """Base class for bookmark shelf errors."""
    pass


class ParseError(BookmarkError):
    """The bookmark export markup could not be interpreted."""
    pass


class StorageError(BookmarkError):
    """Persisting or reading the stored tree failed."""
    pass


class InvalidPathError(BookmarkError):
    """A navigation path no longer resolves to a folder (recovered internally)."""
    pass


class ProbeError(BookmarkError):
    """A reachability probe failed for a single URL."""

    def __init__(self, url: str, reason: str = ""):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}" if reason else url)


class BusyError(BookmarkError):
    """A tree mutation was requested while a dead-link check is running."""
    pass
