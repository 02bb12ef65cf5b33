import pytest

from core.errors import ParseError
from core.model import (Bookmark, Folder, copy_tree, export_netscape_html, node_from_dict, node_to_dict, parse,
                        walk)
from core.transforms import count_nodes, flatten


def test_parse_nested_example():
    markup = ('<DL><DT><H3>Work</H3><DL><DT><A HREF="https://a.com/x">A</A></DL>'
              '<DT><A HREF="https://a.com/y">B</A></DL>')
    assert parse(markup) == [
        Folder("Work", [Bookmark("A", "https://a.com/x")]),
        Bookmark("B", "https://a.com/y"),
    ]


def test_parse_real_export_keeps_metadata(sample_export):
    tree = parse(sample_export)
    assert len(tree) == 2
    bar, loose = tree
    assert isinstance(bar, Folder)
    assert bar.name == "Bookmarks bar"
    assert bar.add_date == "1700000000"
    assert bar.last_modified == "1700000100"

    docs, news = bar.children
    assert docs == Bookmark("Python docs", "https://docs.python.org/3/",
                            add_date="1700000001", icon="data:image/png;base64,AAAA")
    assert news.name == "News"
    assert news.last_modified is None
    assert [b.title for b in news.children] == ["Story & more", "https://news.example.com/b"]
    assert loose == Bookmark("Python docs again", "https://docs.python.org/3/")


def test_empty_title_falls_back_to_url():
    tree = parse('<DL><DT><A HREF="https://x.org/">   </A></DL>')
    assert tree == [Bookmark("https://x.org/", "https://x.org/")]


def test_lowercase_tags_and_attributes():
    tree = parse('<dl><dt><h3 add_date="1">Lower</h3><dl><dt><a href="https://l.org">l</a></dl></dl>')
    assert tree == [Folder("Lower", [Bookmark("l", "https://l.org")], add_date="1")]


def test_unmatched_closing_markers_are_ignored():
    tree = parse('</DL></DL><DT><A HREF="https://a.com">A</A></DL>')
    assert tree == [Bookmark("A", "https://a.com")]


def test_unterminated_folder_stays_open():
    markup = ('<DL><DT><H3>Open</H3><DL><DT><A HREF="https://a.com">A</A>'
              '<DT><H3>Inner</H3><DL><DT><A HREF="https://b.com">B</A>')
    tree = parse(markup)
    assert tree == [Folder("Open", [
        Bookmark("A", "https://a.com"),
        Folder("Inner", [Bookmark("B", "https://b.com")]),
    ])]


def test_missing_anchor_end_tag_keeps_entries():
    tree = parse('<DL><DT><A HREF="https://a.com">A\n<DT><A HREF="https://b.com">B</A></DL>')
    assert tree == [Bookmark("A", "https://a.com"), Bookmark("B", "https://b.com")]


def test_unclosed_anchor_at_end_of_input_is_flushed():
    assert parse('<DT><A HREF="https://a.com">Tail') == [Bookmark("Tail", "https://a.com")]


def test_anchor_without_href_is_skipped():
    assert parse('<DL><DT><A NAME="x">nothing</A></DL>') == []


def test_parse_accepts_utf8_bytes():
    data = '<DL><DT><A HREF="https://jp.example">日本語</A></DL>'.encode("utf-8")
    assert parse(b"\xef\xbb\xbf" + data) == [Bookmark("日本語", "https://jp.example")]


def test_parse_rejects_undecodable_bytes():
    with pytest.raises(ParseError):
        parse(b"<DL>\xff\xfe\xfa</DL>")


def test_parse_rejects_non_text():
    with pytest.raises(ParseError):
        parse(None)


def test_export_then_parse_preserves_tree(sample_export):
    tree = parse(sample_export)
    html_text = export_netscape_html(tree)
    assert html_text.startswith("<!DOCTYPE NETSCAPE-Bookmark-file-1>")
    assert 'ICON="data:image/png;base64,AAAA"' in html_text
    assert parse(html_text) == tree


def test_export_escapes_text():
    html_text = export_netscape_html([Bookmark('<b> & "q"', 'https://e.com/?a=1&b=2')])
    assert '&lt;b&gt; &amp; &quot;q&quot;' in html_text
    assert 'HREF="https://e.com/?a=1&amp;b=2"' in html_text


def test_node_dict_omits_absent_metadata():
    assert node_to_dict(Bookmark("t", "https://t.com")) == {"type": "bookmark", "name": "t", "url": "https://t.com"}
    folder = Folder("f", [Bookmark("t", "https://t.com", icon="i")], add_date="1")
    data = node_to_dict(folder)
    assert data == {"type": "folder", "name": "f", "add_date": "1",
                    "children": [{"type": "bookmark", "name": "t", "url": "https://t.com", "icon": "i"}]}
    assert node_from_dict(data) == folder


@pytest.mark.parametrize("data", [
    {"type": "link", "name": "x"},
    {"type": "bookmark", "name": "x"},
    {"type": "folder", "name": "x", "children": {}},
    {"type": "bookmark", "name": 3, "url": "https://x"},
    ["not", "a", "dict"],
])
def test_node_from_dict_rejects_bad_shapes(data):
    with pytest.raises(ValueError):
        node_from_dict(data)


def test_node_kind_and_label():
    folder = Folder("F")
    bookmark = Bookmark("B", "https://b")
    assert (folder.kind, folder.label) == ("folder", "F")
    assert (bookmark.kind, bookmark.label) == ("bookmark", "B")


def test_flatten_count_matches_parsed_bookmarks(sample_export):
    assert len(flatten(parse(sample_export))) == sample_export.count("<DT><A")


def nested(depth):
    tree = [Bookmark("A", "https://a.com")]
    for _ in range(depth):
        tree = [Folder("f", tree)]
    return tree


def test_walk_is_preorder(sample_tree):
    assert [n.label for n in walk(sample_tree)] == ["Work", "A", "B", "Deep", "C", "D", "Again", "A copy"]


def test_deep_tree_export_and_parse():
    html_text = export_netscape_html(nested(1200))
    assert html_text.count("<DT><H3>") == 1200
    assert count_nodes(parse(html_text)) == (1, 1200)


def test_deep_tree_dict_codec():
    data = node_to_dict(nested(3000)[0])
    assert count_nodes([node_from_dict(data)]) == (1, 3000)


def test_copy_tree_is_independent(sample_tree):
    clone = copy_tree(sample_tree)
    assert clone == sample_tree
    assert clone[0] is not sample_tree[0]
    assert clone[0].children is not sample_tree[0].children
    assert count_nodes(copy_tree(nested(3000))) == (1, 3000)
