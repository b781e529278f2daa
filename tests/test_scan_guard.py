from stockline.core.scan_guard import RequestGenerationGuard, ScanDebouncer


def test_same_code_within_threshold_is_suppressed():
    debouncer = ScanDebouncer(threshold_ms=900)

    assert debouncer.accept("RB-10-02-16", now_ms=1000)
    assert not debouncer.accept("RB-10-02-16", now_ms=1899)


def test_same_code_after_threshold_is_accepted():
    debouncer = ScanDebouncer(threshold_ms=900)

    assert debouncer.accept("RB-10-02-16", now_ms=1000)
    assert debouncer.accept("RB-10-02-16", now_ms=1901)


def test_suppressed_events_do_not_extend_the_window():
    debouncer = ScanDebouncer(threshold_ms=900)

    assert debouncer.accept("RB-10-02-16", now_ms=0)
    assert not debouncer.accept("RB-10-02-16", now_ms=500)
    assert debouncer.accept("RB-10-02-16", now_ms=950)


def test_different_code_is_always_accepted():
    debouncer = ScanDebouncer(threshold_ms=900)

    assert debouncer.accept("RB-10-02-16", now_ms=0)
    assert debouncer.accept("AA-01-01-01", now_ms=10)
    # Only the last accepted code is remembered
    assert debouncer.accept("RB-10-02-16", now_ms=20)


def test_reset_forgets_last_code():
    debouncer = ScanDebouncer(threshold_ms=900)
    debouncer.accept("RB-10-02-16", now_ms=0)

    debouncer.reset()

    assert debouncer.accept("RB-10-02-16", now_ms=1)


def test_generation_guard_supersedes_older_lookups():
    guard = RequestGenerationGuard()

    first = guard.begin()
    assert guard.is_current(first)

    second = guard.begin()
    assert second > first
    assert not guard.is_current(first)
    assert guard.is_current(second)
    assert guard.current == second
