import io
import html
import logging
from dataclasses import dataclass, field, replace
from html.parser import HTMLParser
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from .errors import ParseError

# Netscape Bookmark HTML Format
BOOKMARK_HTML_HEADER = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
<DL><p>
"""
BOOKMARK_HTML_FOOTER = """</DL><p>
"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bookmark:
    """A single link."""
    title: str
    url: str
    add_date: Optional[str] = None
    icon: Optional[str] = None

    kind = "bookmark"

    @property
    def label(self) -> str:
        return self.title


@dataclass(frozen=True)
class Folder:
    """A named folder holding an ordered list of bookmarks and folders."""
    name: str
    children: List["Node"] = field(default_factory=list)
    add_date: Optional[str] = None
    last_modified: Optional[str] = None

    kind = "folder"

    @property
    def label(self) -> str:
        return self.name


Node = Union[Folder, Bookmark]
Tree = List[Node]


class NetscapeBookmarkParser(HTMLParser):
    """
    Netscape形式のブックマークHTMLをツリーに変換するパーサー。

    開いているフォルダのスタックを持ち、暗黙のルートから始める:
      <DT><H3 ...>Folder</H3>   -> フォルダを追加してスタックに積む
      <DT><A HREF="...">Title</A> -> 現在のフォルダにブックマークを追加
      </DL>                     -> スタックを1つ戻す（ルートより上には戻らない）
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.root: Tree = []
        self.stack: List[List[Node]] = [self.root]
        self._capture_text_for: Optional[str] = None
        self._pending_attrs: Dict[str, Optional[str]] = {}
        self._buffer: List[str] = []

    def handle_starttag(self, tag, attrs):
        tag = tag.lower()
        if tag in ("h3", "a", "dt", "dl"):
            # A new entry while the previous header/anchor is still open means a missing end tag.
            self._flush()
        if tag in ("h3", "a"):
            self._capture_text_for = "folder" if tag == "h3" else "link"
            self._pending_attrs = dict(attrs)
            self._buffer = []

    def handle_endtag(self, tag):
        tag = tag.lower()
        if tag in ("h3", "a"):
            self._flush()
        elif tag == "dl":
            self._flush()
            if len(self.stack) > 1:
                self.stack.pop()

    def handle_data(self, data):
        if self._capture_text_for in ("folder", "link"):
            self._buffer.append(data)

    def close(self):
        super().close()
        self._flush()

    def _flush(self) -> None:
        kind = self._capture_text_for
        if kind is None:
            return
        text = "".join(self._buffer).strip()
        attr = self._pending_attrs
        self._capture_text_for = None
        self._pending_attrs = {}
        self._buffer = []

        if kind == "folder":
            folder = Folder(name=text, add_date=attr.get("add_date"),
                            last_modified=attr.get("last_modified"))
            self.stack[-1].append(folder)
            self.stack.append(folder.children)
            return

        url = (attr.get("href") or "").strip()
        if not url:
            logger.debug("Skipping anchor without HREF: %r", text)
            return
        self.stack[-1].append(Bookmark(title=text or url, url=url,
                                       add_date=attr.get("add_date"),
                                       icon=attr.get("icon") or attr.get("icon_uri")))


def parse(markup: Union[str, bytes]) -> Tree:
    """
    Parse bookmark-export markup into a tree.

    Args:
        markup: Netscape形式のHTML（str、またはUTF-8のbytes）

    Returns:
        トップレベルのノードのリスト

    Raises:
        ParseError: 入力を解釈できない場合
    """
    if isinstance(markup, (bytes, bytearray)):
        try:
            markup = bytes(markup).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Bookmark file is not valid UTF-8: {e}") from e
    if not isinstance(markup, str):
        raise ParseError(f"Unsupported markup type: {type(markup).__name__}")

    parser = NetscapeBookmarkParser()
    try:
        parser.feed(markup)
        parser.close()
    except Exception as e:
        raise ParseError(f"Failed to parse bookmark markup: {e}") from e
    return parser.root


def walk(tree: Iterable[Node]) -> Iterator[Node]:
    """Depth-first, pre-order iteration over every node (explicit stack, any depth)."""
    stack = [iter(tree)]
    while stack:
        for node in stack[-1]:
            if isinstance(node, Folder):
                yield node
                stack.append(iter(node.children))
                break
            if not isinstance(node, Bookmark):
                raise TypeError(f"Not a bookmark node: {node!r}")
            yield node
        else:
            stack.pop()


def copy_tree(tree: Iterable[Node]) -> Tree:
    """
    ツリーの独立したコピーを作る。

    フォルダと子リストは新しく作り、ブックマーク（不変）は共有する。
    """
    result: Tree = []
    stack = [(iter(tree), result)]
    while stack:
        items, out = stack[-1]
        for node in items:
            if isinstance(node, Folder):
                clone = replace(node, children=[])
                out.append(clone)
                stack.append((iter(node.children), clone.children))
                break
            if not isinstance(node, Bookmark):
                raise TypeError(f"Not a bookmark node: {node!r}")
            out.append(node)
        else:
            stack.pop()
    return result


def export_netscape_html(tree: Tree) -> str:
    out = io.StringIO()
    out.write(BOOKMARK_HTML_HEADER)

    def esc(s: str) -> str:
        return html.escape(s or "", quote=True)

    def attrs(**values: Optional[str]) -> str:
        return "".join(f' {name.upper()}="{esc(value)}"' for name, value in values.items() if value is not None)

    # (remaining children, indent of the children, indent of the closing </DL> or None at top level)
    stack = [(iter(tree), 1, None)]
    while stack:
        items, indent, close_ind = stack[-1]
        ind = "    " * indent
        for node in items:
            if isinstance(node, Folder):
                out.write(f'{ind}<DT><H3{attrs(add_date=node.add_date, last_modified=node.last_modified)}>'
                          f'{esc(node.name)}</H3>\n')
                out.write(f"{ind}<DL><p>\n")
                stack.append((iter(node.children), indent + 1, ind))
                break
            if not isinstance(node, Bookmark):
                raise TypeError(f"Not a bookmark node: {node!r}")
            out.write(f'{ind}<DT><A HREF="{esc(node.url)}"{attrs(add_date=node.add_date, icon=node.icon)}>'
                      f'{esc(node.title)}</A>\n')
        else:
            stack.pop()
            if close_ind is not None:
                out.write(f"{close_ind}</DL><p>\n")
    out.write(BOOKMARK_HTML_FOOTER)
    return out.getvalue()


def _shallow_dict(node: Node) -> Dict[str, Any]:
    if isinstance(node, Folder):
        data: Dict[str, Any] = {"type": "folder", "name": node.name, "children": []}
        extra = {"add_date": node.add_date, "last_modified": node.last_modified}
    elif isinstance(node, Bookmark):
        data = {"type": "bookmark", "name": node.title, "url": node.url}
        extra = {"add_date": node.add_date, "icon": node.icon}
    else:
        raise TypeError(f"Not a bookmark node: {node!r}")
    data.update({k: v for k, v in extra.items() if v is not None})
    return data


def node_to_dict(node: Node) -> Dict[str, Any]:
    """Convert a node into its JSON-ready dict (absent metadata is omitted)."""
    root = _shallow_dict(node)
    stack = [(node, root)] if isinstance(node, Folder) else []
    while stack:
        folder, data = stack.pop()
        for ch in folder.children:
            ch_data = _shallow_dict(ch)
            data["children"].append(ch_data)
            if isinstance(ch, Folder):
                stack.append((ch, ch_data))
    return root


def _shallow_node(data: Dict[str, Any]) -> Node:
    if not isinstance(data, dict):
        raise ValueError(f"Node must be an object, got {type(data).__name__}")
    kind = data.get("type")
    if kind == "folder":
        if not isinstance(data.get("children", []), list):
            raise ValueError("Folder children must be a list")
        return Folder(name=_text(data, "name"), children=[],
                      add_date=_optional_text(data, "add_date"),
                      last_modified=_optional_text(data, "last_modified"))
    if kind == "bookmark":
        return Bookmark(title=_text(data, "name"), url=_text(data, "url"),
                        add_date=_optional_text(data, "add_date"),
                        icon=_optional_text(data, "icon"))
    raise ValueError(f"Unknown node type: {kind!r}")


def node_from_dict(data: Dict[str, Any]) -> Node:
    """
    Build a node from the dict produced by `node_to_dict`.

    Raises:
        ValueError: 未知の type、または欠損・不正なフィールド
    """
    root = _shallow_node(data)
    stack = [(data, root)] if isinstance(root, Folder) else []
    while stack:
        src, folder = stack.pop()
        for ch_data in src.get("children", []):
            ch = _shallow_node(ch_data)
            # Children are filled in before the folder is handed out.
            folder.children.append(ch)
            if isinstance(ch, Folder):
                stack.append((ch_data, ch))
    return root


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"Field '{key}' must be a string")
    return value


def _optional_text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"Field '{key}' must be a string")
    return value
