"""
ナビゲーションモジュール。
ルートから表示中のフォルダまでのインデックス列（パス）を管理する。
"""

import logging
import random
from typing import List, Optional, Sequence

from .errors import InvalidPathError
from .model import Folder, Node, Tree

SORT_ORDERS = ("default", "asc", "desc")


def resolve(tree: Tree, path: Sequence[int]) -> List[Node]:
    """
    Resolve `path` to the children of the folder it points at.

    Raises:
        InvalidPathError: インデックスが範囲外、またはフォルダ以外を指す場合
    """
    current_level: List[Node] = tree
    for depth, index in enumerate(path):
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(current_level):
            raise InvalidPathError(f"Index {index!r} out of range at depth {depth}")
        folder = current_level[index]
        if not isinstance(folder, Folder):
            raise InvalidPathError(f"Item at depth {depth} is not a folder")
        current_level = folder.children
    return current_level


class Navigator:
    """現在位置（パス）を保持し、表示するフォルダの中身を解決する。"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.path: List[int] = []
        self.logger = logger or logging.getLogger(__name__)

    @property
    def at_root(self) -> bool:
        return not self.path

    @property
    def depth(self) -> int:
        return len(self.path)

    def push(self, index: int) -> None:
        self.path.append(index)

    def pop(self) -> None:
        if self.path:
            self.path.pop()

    def reset(self) -> None:
        self.path = []

    def descend(self, tree: Tree) -> List[Node]:
        """Children of the current folder; an invalid path falls back to the root."""
        try:
            return resolve(tree, self.path)
        except InvalidPathError as e:
            self.logger.warning("Invalid path %s: %s; returning to root", self.path, e)
            self.reset()
            return tree

    def breadcrumbs(self, tree: Tree) -> List[str]:
        """Folder names along the current path."""
        names = []
        current_level = tree
        try:
            resolve(tree, self.path)
        except InvalidPathError as e:
            self.logger.warning("Invalid path %s: %s; returning to root", self.path, e)
            self.reset()
            return names
        for index in self.path:
            folder = current_level[index]
            names.append(folder.name)
            current_level = folder.children
        return names


def sorted_view(items: Sequence[Node], order: str = "default") -> List[Node]:
    """
    表示用に並べ替えたコピーを返す（ツリー自体は変更しない）。

    Args:
        items: フォルダの中身
        order: "default"（元の順序）、"asc"、"desc"

    Raises:
        ValueError: 未知の order
    """
    if order not in SORT_ORDERS:
        raise ValueError(f"Unknown sort order: {order!r}")
    if order == "default":
        return list(items)
    return sorted(items, key=lambda n: n.label.casefold(), reverse=(order == "desc"))


def shuffled_view(items: Sequence[Node], rng: Optional[random.Random] = None) -> List[Node]:
    """Shuffled copy of `items` (Fisher-Yates via `random.shuffle`)."""
    shuffled = list(items)
    (rng or random).shuffle(shuffled)
    return shuffled
