"""Tests for the contest eligibility filter."""

from datetime import timedelta

from harvest.contests.contest import ContestRecord
from harvest.contests.eligibility import exclusion_reason, filter_contests, partition_contests

from conftest import NOW, make_contest


def record(**overrides) -> ContestRecord:
    return ContestRecord.model_validate(make_contest(**overrides))


def at(delta: timedelta) -> str:
    return (NOW + delta).isoformat()


class TestExclusionReason:
    """Classification of a single contest."""

    def test_open_public_contest_is_kept(self):
        assert exclusion_reason(record(), NOW) is None

    def test_one_second_in_future_is_kept(self):
        assert exclusion_reason(record(end_time=at(timedelta(seconds=1))), NOW) is None

    def test_one_second_in_past_is_excluded(self):
        assert exclusion_reason(record(end_time=at(timedelta(seconds=-1))), NOW) == "ended"

    def test_end_exactly_now_is_excluded(self):
        assert exclusion_reason(record(end_time=at(timedelta(0))), NOW) == "ended"

    def test_private_code_excluded_when_public_only(self):
        contest = record(code_access="private")
        assert exclusion_reason(contest, NOW) == "code access private"
        assert exclusion_reason(contest, NOW, public_only=False) is None

    def test_missing_access_excluded(self):
        assert exclusion_reason(record(code_access=None), NOW) == "code access unknown"

    def test_unparseable_end_time(self):
        assert exclusion_reason(record(end_time="next tuesday"), NOW) == "no end time"
        assert exclusion_reason(record(end_time=None), NOW) == "no end time"

    def test_naive_end_time_is_rejected(self):
        naive = (NOW + timedelta(days=1)).replace(tzinfo=None).isoformat()
        assert exclusion_reason(record(end_time=naive), NOW) == "no end time"

    def test_offset_timestamps_compare_as_instants(self):
        # 13:30+02:00 is 11:30Z, half an hour before NOW
        assert exclusion_reason(record(end_time="2026-03-01T13:30:00+02:00"), NOW) == "ended"
        # 08:30-04:00 is 12:30Z
        assert exclusion_reason(record(end_time="2026-03-01T08:30:00-04:00"), NOW) is None


class TestFilterContests:
    """Filtering whole listings."""

    def test_keeps_order_and_drops_ineligible(self):
        contests = [
            record(contest_id=1),
            record(contest_id=2, end_time=at(timedelta(days=-1))),
            record(contest_id=3, code_access="private"),
            record(contest_id=4, end_time=at(timedelta(hours=1))),
        ]
        kept = filter_contests(contests, now=NOW)
        assert [c.contest_id for c in kept] == [1, 4]

    def test_loose_mode_keeps_private(self):
        contests = [record(contest_id=1), record(contest_id=3, code_access="private")]
        kept = filter_contests(contests, now=NOW, public_only=False)
        assert [c.contest_id for c in kept] == [1, 3]

    def test_partition_reports_reasons(self):
        contests = [record(contest_id=1), record(contest_id=2, end_time=at(timedelta(days=-1)))]
        kept, excluded = partition_contests(contests, now=NOW)
        assert [c.contest_id for c in kept] == [1]
        assert [(c.contest_id, reason) for c, reason in excluded] == [(2, "ended")]

    def test_empty_input(self):
        assert filter_contests([], now=NOW) == []

    def test_default_clock(self):
        # Far-future contest is open whatever the wall clock says
        kept = filter_contests([record(end_time="2999-01-01T00:00:00Z")])
        assert len(kept) == 1
