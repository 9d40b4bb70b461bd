from app.domain.imports.progress import ErrorCollector, ImportStats, ProgressThrottle


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestProgressThrottle:
    def test_first_call_is_always_ready(self):
        throttle = ProgressThrottle(5.0, clock=FakeClock(100.0))
        assert throttle.ready() is True

    def test_at_most_one_write_per_interval(self):
        clock = FakeClock()
        throttle = ProgressThrottle(5.0, clock=clock)
        assert throttle.ready() is True

        clock.now = 4.9
        assert throttle.ready() is False
        clock.now = 5.0
        assert throttle.ready() is True
        clock.now = 9.0
        assert throttle.ready() is False
        clock.now = 10.0
        assert throttle.ready() is True

    def test_forced_write_resets_the_window(self):
        clock = FakeClock()
        throttle = ProgressThrottle(5.0, clock=clock)
        throttle.ready()

        clock.now = 1.0
        assert throttle.ready(force=True) is True
        clock.now = 5.5
        assert throttle.ready() is False
        clock.now = 6.0
        assert throttle.ready() is True


class TestErrorCollector:
    def test_details_past_the_cap_are_counted_but_dropped(self):
        errors = ErrorCollector(cap=2)
        assert errors.add("Sheet1", 2, "a") is True
        assert errors.add("Sheet1", 3, "b") is True
        assert errors.add("Sheet1", 4, "c") is False

        assert errors.total == 3
        assert errors.dropped == 1
        assert [detail.row_number for detail in errors.details] == [2, 3]

    def test_fatal_detail_is_kept_past_the_cap(self):
        errors = ErrorCollector(cap=1)
        errors.add("Sheet1", 2, "bad row")
        errors.add("Sheet1", 3, "another bad row")

        errors.add_fatal("N/A", "Unable to read CSV file")

        assert [(detail.sheet, detail.error) for detail in errors.details] == [
            ("Sheet1", "bad row"),
            ("N/A", "Unable to read CSV file"),
        ]

    def test_drain_pending_hands_out_each_detail_once(self):
        errors = ErrorCollector()
        errors.add("Sheet1", 2, "a")
        assert [detail.error for detail in errors.drain_pending()] == ["a"]
        assert errors.drain_pending() == []

        errors.add("Sheet1", 3, "b")
        assert [detail.error for detail in errors.drain_pending()] == ["b"]


def test_mark_sheet_keeps_first_seen_order():
    stats = ImportStats()
    for sheet in ["B", "A", "B"]:
        stats.mark_sheet(sheet)
    assert stats.sheets_processed == ["B", "A"]
