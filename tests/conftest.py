import pytest

from core.model import Bookmark, Folder
from core.session import BookmarkSession
from core.storage import ConfigManager, MemoryStore

SAMPLE_EXPORT = """<!DOCTYPE NETSCAPE-Bookmark-file-1>
<!-- This is an automatically generated file. -->
<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">
<TITLE>Bookmarks</TITLE>
<H1>Bookmarks</H1>
<DL><p>
    <DT><H3 ADD_DATE="1700000000" LAST_MODIFIED="1700000100" PERSONAL_TOOLBAR_FOLDER="true">Bookmarks bar</H3>
    <DL><p>
        <DT><A HREF="https://docs.python.org/3/" ADD_DATE="1700000001" ICON="data:image/png;base64,AAAA">Python docs</A>
        <DT><H3 ADD_DATE="1700000002">News</H3>
        <DL><p>
            <DT><A HREF="https://news.example.com/a" ADD_DATE="1700000003">  Story &amp; more  </A>
            <DT><A HREF="https://news.example.com/b"></A>
        </DL><p>
    </DL><p>
    <DT><A HREF="https://docs.python.org/3/">Python docs again</A>
</DL><p>
"""


@pytest.fixture
def sample_export():
    return SAMPLE_EXPORT


@pytest.fixture
def sample_tree():
    return [
        Folder("Work", [
            Bookmark("A", "https://a.com/x"),
            Bookmark("B", "https://b.com/x"),
            Folder("Deep", [Bookmark("C", "https://a.com/y")]),
        ]),
        Bookmark("D", "https://c.com/"),
        Folder("Again", [Bookmark("A copy", "https://a.com/x")]),
    ]


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[LinkCheck]\npace = 0\n", encoding="utf-8")
    return ConfigManager(str(path))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session(store, config):
    return BookmarkSession(store, config)
