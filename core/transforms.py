"""
ツリー変換モジュール。
どの関数も入力を変更せず、新しいリスト／ツリーを返す。
- `flatten` : ツリーをブックマークの列に展開
- `group_by_site` : ホスト名ごとのフォルダに再構成
- `dedupe` : URL が重複するブックマークを削除
"""

from collections import OrderedDict
from dataclasses import replace
from typing import Iterable, List, Optional, Set, Tuple

from .model import Bookmark, Folder, Node, Tree, walk
from .utils import AppConstants, hostname_of


def flatten(tree: Iterable[Node]) -> List[Bookmark]:
    """Depth-first, pre-order list of every bookmark in `tree`."""
    return [node for node in walk(tree) if isinstance(node, Bookmark)]


def count_nodes(tree: Iterable[Node]) -> Tuple[int, int]:
    """Count total bookmarks and folders."""
    bm, fl = 0, 0
    for node in walk(tree):
        if isinstance(node, Folder):
            fl += 1
        else:
            bm += 1
    return bm, fl


def group_by_site(
    bookmarks: Iterable[Bookmark],
    invalid_label: str = AppConstants.INVALID_URL_LABEL,
    misc_label: str = AppConstants.MISC_LABEL,
) -> Tree:
    """
    Rebuild a flat bookmark sequence into one folder per hostname.

    ホスト名の出現順にフォルダを作る。URL が解析できないものは `invalid_label`
    フォルダへ（件数に関係なく出力）。1件しかないホスト名は `misc_label`
    フォルダへまとめ、そのフォルダは空でなければ最後に出力する。
    `javascript:` や `file:///` のようにホスト名を持たない URL も無効な URL として扱う。

    Args:
        bookmarks: ブックマークの列（通常は `flatten` の結果）
        invalid_label: 無効な URL 用フォルダ名
        misc_label: その他フォルダ名

    Returns:
        新しいツリー
    """
    # Keys are hostnames, or None for the invalid-URL group.
    grouped: "OrderedDict[Optional[str], List[Bookmark]]" = OrderedDict()
    for bookmark in bookmarks:
        grouped.setdefault(hostname_of(bookmark.url), []).append(bookmark)

    new_structure: Tree = []
    misc_children: List[Node] = []
    for hostname, members in grouped.items():
        if hostname is None:
            new_structure.append(Folder(name=invalid_label, children=list(members)))
        elif len(members) == 1:
            misc_children.append(members[0])
        else:
            new_structure.append(Folder(name=hostname, children=list(members)))

    if misc_children:
        new_structure.append(Folder(name=misc_label, children=misc_children))
    return new_structure


def dedupe(tree: Iterable[Node], seen_urls: Optional[Set[str]] = None) -> Tree:
    """
    Rebuild `tree` keeping only the first bookmark for each URL.

    `seen_urls` はツリー全体で共有される（フォルダをまたいだ重複も削除）。
    重複削除の結果、空になったフォルダは出力しない。
    """
    if seen_urls is None:
        seen_urls = set()
    new_items: Tree = []
    # (remaining children, kept children, source folder or None at top level)
    stack = [(iter(tree), new_items, None)]
    while stack:
        items, kept, folder = stack[-1]
        for node in items:
            if isinstance(node, Folder):
                stack.append((iter(node.children), [], node))
                break
            if not isinstance(node, Bookmark):
                raise TypeError(f"Not a bookmark node: {node!r}")
            if node.url not in seen_urls:
                seen_urls.add(node.url)
                kept.append(node)
        else:
            stack.pop()
            # Only keep the folder if it still contains items
            if folder is not None and kept:
                stack[-1][1].append(replace(folder, children=kept))
    return new_items
