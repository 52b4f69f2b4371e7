from __future__ import annotations

import pytest

from tally.models.entry import Entry, dir_entry, file_entry
from tally.models.enums import EngineState
from tally.models.errors import InvalidArgument
from tally.services.facade import GROUPED_METRICS, ISSUE_METRICS, USER_SUGGESTIONS, SuggestionsFacade
from tally.services.pipeline import build_snapshot
from tally.services.publisher import SnapshotPublisher
from tally.services.watches import DirectoryWatches

NOW = 2_000_000_000.0


def _files() -> list[Entry]:
    return [
        file_entry("/p/a/1", "a", 0, atime=NOW, mtime=NOW),
        file_entry("/p/a/2", "a", 500, atime=NOW, mtime=NOW),
        file_entry("/p/a/3", "a", 200_000, atime=NOW, mtime=NOW),
        file_entry("/p/b/1", "b", 0, atime=NOW, mtime=NOW),
        file_entry("/p/b/2", "b", 0, atime=NOW, mtime=NOW),
        file_entry("/q/c/1", "c", 20, atime=NOW, mtime=NOW),
    ]


def _dirs() -> list[Entry]:
    return [
        dir_entry("/p", "a", children=2, mtime=NOW),
        dir_entry("/p/a", "a", children=3, mtime=NOW, ns_quota_ratio=40, ds_quota_ratio=90),
        dir_entry("/p/b", "b", children=2, mtime=NOW, ns_quota_ratio=99),
        dir_entry("/q", "c", children=1, mtime=NOW),
        dir_entry("/q/c", "c", children=1, mtime=NOW),
    ]


@pytest.fixture
def facade() -> SuggestionsFacade:
    watches = DirectoryWatches()
    watches.add("/p")
    publisher = SnapshotPublisher()
    publisher.publish(
        build_snapshot(
            _files(),
            _dirs(),
            capacity=10_000,
            watched=watches.copy(),
            logins={"a": 100, "b": 300},
            now=NOW,
        )
    )
    return SuggestionsFacade(publisher, watches)


@pytest.fixture
def empty_facade() -> SuggestionsFacade:
    return SuggestionsFacade(SnapshotPublisher())


def test_empty_state_returns_empty_results(empty_facade: SuggestionsFacade) -> None:
    assert empty_facade.state is EngineState.EMPTY
    assert empty_facade.suggestions() == {}
    assert empty_facade.suggestions("a") == {}
    assert empty_facade.quota_ratios("nsQuotaRatioUsed") == {}
    assert empty_facade.file_ages("count") == {}
    assert empty_facade.users() == []
    assert empty_facade.users("emptyFilesUsers") == {}
    assert empty_facade.directories("count") == {}
    assert empty_facade.issues(10) == {}
    assert empty_facade.last_logins() == {}
    assert empty_facade.watched_directories() == []


def test_empty_state_still_validates(empty_facade: SuggestionsFacade) -> None:
    with pytest.raises(InvalidArgument):
        empty_facade.file_ages("bogus")
    with pytest.raises(InvalidArgument):
        empty_facade.users("notAMetric")


def test_suggestions_global(facade: SuggestionsFacade) -> None:
    values = facade.suggestions()
    assert values["numFiles"] == 6
    assert values["emptyFiles"] == 3
    assert values["capacity"] == 10_000


def test_suggestions_for_user(facade: SuggestionsFacade) -> None:
    values = facade.suggestions("a")
    assert values["emptyFiles"] == 1
    assert values["tinyFiles"] == 1
    assert values["smallFiles"] == 1
    assert values["numFiles"] == 3
    assert values["nsQuotaCount"] == 1
    assert values["dsQuotaThreshCount"] == 1
    assert values["lastLogin"] == 100
    assert set(USER_SUGGESTIONS) <= set(values)


def test_per_user_disk_space_is_not_global(facade: SuggestionsFacade) -> None:
    assert facade.suggestions()["diskspace"] == 200_520

    a = facade.suggestions("a")
    assert a["diskspace"] == 200_500
    assert a["emptyFilesDs"] == 0
    assert a["smallFilesDs"] == 200_000
    assert a["mediumFilesDs"] == 0
    assert a["largeFilesDs"] == 0

    c = facade.suggestions("c")
    assert c["tinyFilesDs"] == 20
    assert c["smallFilesDs"] == 0
    assert c["largeFilesDs"] == 0


def test_suggestions_for_unknown_user_are_zero(facade: SuggestionsFacade) -> None:
    values = facade.suggestions("nobody")
    assert values["numFiles"] == 0
    assert values["lastLogin"] == 0


def test_quota_ratios(facade: SuggestionsFacade) -> None:
    assert facade.quota_ratios("nsQuotaRatioUsed") == {"a": {"/p/a": 40}, "b": {"/p/b": 99}, "c": {}}
    assert facade.quota_ratios("dsQuotaRatioUsed", user="a") == {"/p/a": 90}
    assert facade.quota_ratios("dsQuotaRatioUsed", user="b") == {}


@pytest.mark.parametrize("metric", ["", "count", "memoryConsumed", "nonsense"])
def test_quota_ratios_rejects_bad_metric(facade: SuggestionsFacade, metric: str) -> None:
    with pytest.raises(InvalidArgument):
        facade.quota_ratios(metric)


def test_file_ages(facade: SuggestionsFacade) -> None:
    assert sum(facade.file_ages("count").values()) == 6
    assert sum(facade.file_ages("diskspaceConsumed").values()) == 200_520


def test_file_ages_rejects_memory(facade: SuggestionsFacade) -> None:
    with pytest.raises(InvalidArgument) as exc_info:
        facade.file_ages("memoryConsumed")
    assert "Please choose between" in str(exc_info.value)


def test_users(facade: SuggestionsFacade) -> None:
    assert facade.users() == ["a", "b", "c"]
    assert facade.users("emptyFilesUsers") == {"a": 1, "b": 2}


def test_users_rejects_unknown_metric(facade: SuggestionsFacade) -> None:
    with pytest.raises(InvalidArgument) as exc_info:
        facade.users("bogus")
    assert str(exc_info.value) == "bogus is not a valid suggestion query."


def test_directories(facade: SuggestionsFacade) -> None:
    assert facade.directories("count")["/p"] == 5
    assert facade.directories("count", "/p/") == {"/p": 5}
    assert facade.directories("diskspaceConsumed", "/p") == {"/p": 200_500}
    assert facade.directories("count", "/elsewhere") == {"/elsewhere": None}


def test_directories_rejects_relative_dir(facade: SuggestionsFacade) -> None:
    with pytest.raises(InvalidArgument):
        facade.directories("count", "relative")


def test_issues_descending(facade: SuggestionsFacade) -> None:
    issues = facade.issues(1)
    assert list(issues) == [name for name, _ in ISSUE_METRICS]
    assert issues["emptyFiles"] == {"b": 2}
    assert all(len(ranked) <= 1 for ranked in issues.values())


def test_issues_ascending_breaks_ties_on_key(facade: SuggestionsFacade) -> None:
    issues = facade.issues(5, ascending=True)
    assert list(issues["emptyFiles"]) == ["a", "b"]
    assert list(issues["tinyFiles"]) == ["a", "c"]


def test_issues_are_deterministic(facade: SuggestionsFacade) -> None:
    assert facade.issues(2) == facade.issues(2)


def test_issues_zero_and_negative_limit(facade: SuggestionsFacade) -> None:
    assert all(ranked == {} for ranked in facade.issues(0).values())
    with pytest.raises(InvalidArgument):
        facade.issues(-1)


def test_last_logins_sorted_descending(facade: SuggestionsFacade) -> None:
    assert list(facade.last_logins().items()) == [("b", 300), ("a", 100)]


def test_watched_directories(facade: SuggestionsFacade) -> None:
    assert facade.watched_directories() == ["/p"]


def test_grouped_catalogue_covers_issue_sources() -> None:
    for _, source in ISSUE_METRICS:
        assert source in GROUPED_METRICS
