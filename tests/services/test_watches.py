from __future__ import annotations

import pytest

from tally.models.errors import AlreadyWatched, InvalidArgument, NotWatched
from tally.services.watches import DirectoryWatches, PathTrie, normalize_directory


def test_add_and_remove_roundtrip() -> None:
    watches = DirectoryWatches()
    assert watches.add("/data/a") == "/data/a"
    assert "/data/a" in watches
    assert watches.remove("/data/a") == "/data/a"
    assert len(watches) == 0


def test_add_twice_fails_with_already_watched() -> None:
    watches = DirectoryWatches()
    watches.add("/a")
    with pytest.raises(AlreadyWatched) as exc_info:
        watches.add("/a")
    assert str(exc_info.value) == "/a already set for analysis."


def test_remove_unknown_fails_with_not_watched() -> None:
    watches = DirectoryWatches()
    with pytest.raises(NotWatched) as exc_info:
        watches.remove("/x")
    assert str(exc_info.value) == "/x was not scheduled for analysis."


def test_trailing_slash_is_normalized() -> None:
    watches = DirectoryWatches()
    watches.add("/a/")
    with pytest.raises(AlreadyWatched):
        watches.add("/a")


@pytest.mark.parametrize("directory", ["", None, "relative/path"])
def test_invalid_directories_rejected(directory: str | None) -> None:
    with pytest.raises(InvalidArgument):
        normalize_directory(directory)


def test_root_is_kept() -> None:
    assert normalize_directory("/") == "/"


def test_backing_set_is_shared() -> None:
    backing: set[str] = {"/kept"}
    watches = DirectoryWatches(backing)
    watches.add("/new")
    assert backing == {"/kept", "/new"}
    assert watches.current() is backing


def test_copy_is_detached() -> None:
    watches = DirectoryWatches()
    watches.add("/a")
    copy = watches.copy()
    watches.add("/b")
    assert copy == frozenset({"/a"})


@pytest.mark.parametrize(
    ("paths", "expected"),
    [
        ([], []),
        (["/a", "/a/b"], ["/a"]),
        (["/a/b", "/a/c"], ["/a"]),
        (["/a/b/c", "/a/b/d"], ["/a/b"]),
        (["/a/b/c"], ["/a/b/c"]),
        (["/a/x", "/b/y"], ["/a/x", "/b/y"]),
        (["/", "/a"], ["/"]),
    ],
)
def test_common_ancestors(paths: list[str], expected: list[str]) -> None:
    assert PathTrie(paths).common_ancestors() == expected


def test_every_watched_dir_has_an_ancestor() -> None:
    watched = ["/p/q/r", "/p/q/s/t", "/p/z", "/m/n"]
    ancestors = PathTrie(watched).common_ancestors()
    for path in watched:
        assert any(path == a or path.startswith(a + "/") for a in ancestors)


def test_resolve_common_ancestors_from_watches() -> None:
    watches = DirectoryWatches()
    watches.add("/a")
    watches.add("/a/b")
    assert watches.resolve_common_ancestors() == ["/a"]
