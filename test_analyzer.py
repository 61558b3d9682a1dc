"""Tests for gap and staleness analysis."""

from datetime import date

from pkgmonth.analyzer import analyze, tracked_months, tracked_years
from pkgmonth.config import WatchlistConfig
from pkgmonth.indexer import build_index
from pkgmonth.types import RecordIdentity, StaleRecord

ALL_MONTHS = set(range(1, 13))


def config(packages=(), start_year=2016):
    return WatchlistConfig(packages=frozenset(packages), start_year=start_year)


def index_of(*ids, today=date(2017, 6, 15), stale=()):
    return build_index(
        [RecordIdentity(i, f"1-{i}", stale=i in stale) for i in ids], today
    )


def cells(todolist):
    return {
        (package, year, month)
        for year, months in todolist.items()
        for month, packages in months.items()
        for package in packages
    }


class TestRanges:
    """Tests for the year and month ranges."""

    def test_tracked_years_includes_current(self):
        assert tracked_years(2015, date(2017, 1, 1)) == [2015, 2016, 2017]
        assert tracked_years(2017, date(2017, 1, 1)) == [2017]
        assert tracked_years(2019, date(2017, 1, 1)) == [2017]

    def test_tracked_months_stop_at_current_month(self):
        today = date(2017, 6, 15)
        assert tracked_months(2016, today) == tuple(range(1, 13))
        assert tracked_months(2017, today) == (1, 2, 3, 4, 5, 6)
        assert tracked_months(2018, today) == ()


class TestAnalyze:
    """Tests for computing the todolist and stalelist."""

    def test_empty_index_backfills_every_month(self):
        todolist, stalelist = analyze({}, config(["left-pad"], 2016), date(2017, 12, 20))

        assert set(todolist) == {2016, 2017}
        assert set(todolist[2016]) == ALL_MONTHS
        assert set(todolist[2017]) == ALL_MONTHS
        assert all(todolist[y][m] == {"left-pad"} for y in todolist for m in todolist[y])
        assert stalelist == []

    def test_future_months_are_never_queued(self):
        todolist, _ = analyze({}, config(["left-pad"], 2016), date(2017, 6, 15))

        assert set(todolist[2017]) == {1, 2, 3, 4, 5, 6}
        assert 2018 not in todolist

    def test_missing_year_queues_whole_year(self):
        index = index_of(*[f"left-pad_2017-{m:02d}" for m in range(1, 6)])

        todolist, _ = analyze(index, config(["left-pad"], 2016), date(2017, 6, 15))

        assert cells(todolist) == {("left-pad", 2016, m) for m in ALL_MONTHS} | {
            ("left-pad", 2017, 6)
        }

    def test_missing_months_are_queued(self):
        ids = [f"left-pad_2016-{m:02d}" for m in range(1, 13) if m != 7]

        todolist, stalelist = analyze(
            index_of(*ids, today=date(2016, 12, 31)),
            config(["left-pad"], 2016),
            date(2016, 12, 31),
        )

        assert cells(todolist) == {("left-pad", 2016, 7), ("left-pad", 2016, 12)}
        assert stalelist == [StaleRecord("left-pad_2016-12", "1-left-pad_2016-12")]

    def test_current_month_is_requeued_and_purged(self):
        index = index_of("left-pad_2017-06")

        todolist, stalelist = analyze(index, config(["left-pad"], 2017), date(2017, 6, 15))

        assert "left-pad" in todolist[2017][6]
        assert StaleRecord("left-pad_2017-06", "1-left-pad_2017-06") in stalelist

    def test_flagged_record_is_requeued_and_purged(self):
        index = index_of("left-pad_2017-02", stale={"left-pad_2017-02"})

        todolist, stalelist = analyze(index, config(["left-pad"], 2017), date(2017, 6, 15))

        assert "left-pad" in todolist[2017][2]
        assert stalelist == [
            StaleRecord("left-pad_2017-02", "1-left-pad_2017-02"),
        ]

    def test_fresh_cells_are_not_queued(self):
        ids = [f"left-pad_2016-{m:02d}" for m in range(1, 13)]

        todolist, stalelist = analyze(
            index_of(*ids, today=date(2016, 12, 31)),
            config(["left-pad"], 2016),
            date(2016, 12, 31),
        )

        # Only the current month, which is never final
        assert cells(todolist) == {("left-pad", 2016, 12)}
        assert len(stalelist) == 1

    def test_nothing_to_do(self):
        ids = [f"left-pad_2016-{m:02d}" for m in range(1, 13)]

        todolist, stalelist = analyze(
            index_of(*ids, today=date(2017, 1, 1)), config(["left-pad"], 2016), date(2017, 1, 1)
        )

        # 2017-01 is missing; everything in 2016 is fresh
        assert cells(todolist) == {("left-pad", 2017, 1)}
        assert stalelist == []

    def test_empty_watchlist_tracks_indexed_packages(self):
        index = index_of("left-pad_2017-01", "express_2017-01")

        todolist, _ = analyze(index, config([], 2017), date(2017, 2, 10))

        assert todolist[2017][2] == {"left-pad", "express"}
        assert 1 not in todolist[2017]

    def test_empty_watchlist_and_index(self):
        todolist, stalelist = analyze({}, config([], 2017), date(2017, 2, 10))

        assert todolist == {}
        assert stalelist == []

    def test_invalid_start_year_uses_current_year(self):
        todolist, _ = analyze({}, config(["left-pad"], "bogus"), date(2017, 3, 1))

        assert set(todolist) == {2017}
        assert set(todolist[2017]) == {1, 2, 3}

    def test_start_year_before_2000_uses_current_year(self):
        todolist, _ = analyze({}, config(["left-pad"], 1998), date(2017, 3, 1))

        assert set(todolist) == {2017}

    def test_every_cell_is_fresh_stale_or_absent(self):
        """Each watched cell ends up in exactly one coverage state."""
        today = date(2017, 6, 15)
        ids = ["left-pad_2016-01", "left-pad_2016-02", "left-pad_2017-06"]
        index = index_of(*ids, stale={"left-pad_2016-02"})

        todolist, stalelist = analyze(index, config(["left-pad"], 2016), today)

        queued = cells(todolist)
        purged = {s.id for s in stalelist}
        for year in (2016, 2017):
            for month in tracked_months(year, today):
                record_id = f"left-pad_{year}-{month:02d}"
                present = record_id in ids
                in_todo = ("left-pad", year, month) in queued
                if not present:
                    assert in_todo and record_id not in purged
                elif record_id in ("left-pad_2016-02", "left-pad_2017-06"):
                    assert in_todo and record_id in purged
                else:
                    assert not in_todo and record_id not in purged
