from liveness_kiosk.engine.history import FrameHistory


def test_fifo_eviction_and_capacity():
    h = FrameHistory(capacity=3)
    for c in (0.1, 0.2, 0.3, 0.4):
        h.push(c, False)
    assert len(h) == 3
    assert h.full
    assert [f.confidence for f in h] == [0.2, 0.3, 0.4]
    assert [f.confidence for f in h.last(2)] == [0.3, 0.4]


def test_variance_warmup_reads_zero():
    h = FrameHistory()
    assert h.variance() == 0.0
    h.push(0.9, False)
    assert h.variance() == 0.0
    h.push(0.5, False)
    assert abs(h.variance() - 0.04) < 1e-9


def test_clear():
    h = FrameHistory(capacity=2)
    h.push(0.5, True)
    h.clear()
    assert len(h) == 0
    assert h.last(3) == []
