from eduscan.dedup import ScanDedupGuard


def test_first_scan_is_accepted():
    guard = ScanDedupGuard(cooldown_ms=4500)
    assert guard.last is None
    assert guard.should_accept("STU001", 1_000)
    assert guard.last.identity == "STU001"
    assert guard.last.timestamp == 1_000


def test_same_identity_inside_cooldown_is_suppressed():
    guard = ScanDedupGuard(cooldown_ms=4500)
    assert guard.should_accept("STU001", 0)
    assert not guard.should_accept("STU001", 3_000)
    assert guard.retry_after_ms("STU001", 3_000) == 1_500


def test_rejection_does_not_extend_the_window():
    guard = ScanDedupGuard(cooldown_ms=4500)
    assert guard.should_accept("STU001", 0)
    assert not guard.should_accept("STU001", 3_000)
    assert not guard.should_accept("STU001", 4_000)
    assert guard.should_accept("STU001", 5_000)
    assert guard.last.timestamp == 5_000


def test_cooldown_boundary_is_inclusive():
    guard = ScanDedupGuard(cooldown_ms=4500)
    assert guard.should_accept("STU001", 0)
    assert not guard.should_accept("STU001", 4_499)
    assert guard.should_accept("STU001", 4_500)


def test_different_identity_is_accepted_immediately():
    guard = ScanDedupGuard(cooldown_ms=4500)
    assert guard.should_accept("STU001", 0)
    assert guard.should_accept("STU002", 100)
    # only the last identity is remembered
    assert guard.should_accept("STU001", 200)


def test_reset_forgets_last_entry():
    guard = ScanDedupGuard(cooldown_ms=4500)
    guard.should_accept("STU001", 0)
    guard.reset()
    assert guard.last is None
    assert guard.should_accept("STU001", 10)
    assert guard.retry_after_ms("STU002", 10) == 0
