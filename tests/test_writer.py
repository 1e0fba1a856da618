"""
Unit Tests for writing posts and media into the site tree.

Running Tests:
    $ pytest tests/test_writer.py -v
"""
import pytest

from microformat import MediaFile
from publishing.paths import ResolvedIdentity
from publishing.writer import PersistenceError, PersistenceWriter, WriteSet, rollback


IDENTITY = ResolvedIdentity(
    filename="2024/01/02_03.04.05_hello.md",
    url="https://example.com/microblog/2024/01/02_03.04.05_hello.html",
    media_prefix="static/",
    media_suffix="microblog_assets/:year/:month/:slug_:filesslug",
)


class TestPersistenceWriter:

    def test_writes_post(self, site_root):
        writer = PersistenceWriter(str(site_root))
        identity = ResolvedIdentity(filename=IDENTITY.filename, url=IDENTITY.url)

        write_set = writer.write(identity, "---\nslug: \"hello\"\n---\nHi\n")

        post = site_root / "2024" / "01" / "02_03.04.05_hello.md"
        assert isinstance(write_set, WriteSet)
        assert write_set == [post.resolve()]
        assert post.read_text() == "---\nslug: \"hello\"\n---\nHi\n"

    def test_writes_media_after_post(self, site_root):
        writer = PersistenceWriter(str(site_root))
        media = [
            MediaFile(filename="microblog_assets/2024/01/hello_one.jpg", buffer=b"one"),
            MediaFile(filename="microblog_assets/2024/01/hello_two.jpg", buffer=b"two"),
        ]

        write_set = writer.write(IDENTITY, "post", media)

        assets = site_root / "static" / "microblog_assets" / "2024" / "01"
        assert write_set == [
            (site_root / IDENTITY.filename).resolve(),
            (assets / "hello_one.jpg").resolve(),
            (assets / "hello_two.jpg").resolve(),
        ]
        assert (assets / "hello_one.jpg").read_bytes() == b"one"
        assert (assets / "hello_two.jpg").read_bytes() == b"two"

    def test_overwrites_existing_post(self, site_root):
        writer = PersistenceWriter(str(site_root))
        writer.write(IDENTITY, "first")
        writer.write(IDENTITY, "second")

        assert (site_root / IDENTITY.filename).read_text() == "second"

    def test_unicode_contents(self, site_root):
        writer = PersistenceWriter(str(site_root))
        writer.write(IDENTITY, "Zürich ☕")

        assert (site_root / IDENTITY.filename).read_bytes() == "Zürich ☕".encode("utf-8")

    def test_failed_media_write_removes_earlier_files(self, site_root):
        # A regular file where a directory is needed makes the media write fail
        (site_root / "static").write_text("not a directory")
        writer = PersistenceWriter(str(site_root))
        media = [MediaFile(filename="microblog_assets/2024/01/hello_one.jpg", buffer=b"one")]

        with pytest.raises(PersistenceError) as exc_info:
            writer.write(IDENTITY, "post", media)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert exc_info.value.write_set == [(site_root / IDENTITY.filename).resolve()]
        assert not (site_root / IDENTITY.filename).exists()

    def test_failed_post_write(self, site_root):
        (site_root / "2024").write_text("not a directory")
        writer = PersistenceWriter(str(site_root))

        with pytest.raises(PersistenceError) as exc_info:
            writer.write(IDENTITY, "post")

        assert exc_info.value.write_set == []


class TestRollback:

    def test_removes_files(self, tmp_path):
        first = tmp_path / "a.md"
        second = tmp_path / "b.jpg"
        first.write_text("a")
        second.write_text("b")

        assert rollback([first, second]) == []
        assert not first.exists()
        assert not second.exists()

    def test_missing_file_does_not_stop_rollback(self, tmp_path):
        missing = tmp_path / "missing.md"
        present = tmp_path / "present.jpg"
        present.write_text("b")

        failures = rollback([missing, present])

        assert [path for path, _ in failures] == [missing]
        assert isinstance(failures[0][1], FileNotFoundError)
        assert not present.exists()

    def test_empty_write_set(self):
        assert rollback(WriteSet()) == []


class TestSiteRootContainment:

    def test_post_outside_site_root_is_refused(self, site_root):
        writer = PersistenceWriter(str(site_root))
        identity = ResolvedIdentity(filename="../../escaped.md", url=IDENTITY.url)

        with pytest.raises(PersistenceError, match="outside the site root"):
            writer.write(identity, "post")

        assert not (site_root.parent.parent / "escaped.md").exists()

    def test_media_outside_site_root_removes_post(self, site_root):
        writer = PersistenceWriter(str(site_root))
        identity = ResolvedIdentity(
            filename=IDENTITY.filename,
            url=IDENTITY.url,
            media_prefix="../outside/",
            media_suffix=IDENTITY.media_suffix,
        )
        media = [MediaFile(filename="cat.jpg", buffer=b"meow")]

        with pytest.raises(PersistenceError) as exc_info:
            writer.write(identity, "post", media)

        assert isinstance(exc_info.value.__cause__, ValueError)
        assert not (site_root / IDENTITY.filename).exists()
        assert not (site_root.parent / "outside" / "cat.jpg").exists()
