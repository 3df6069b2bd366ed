import random
import pytest

from pair_count import (FormatError, Pair, SourceError, StreamingCutEngine, SubjectHistoryTracker,
                        count_sources)

class FixedRng:
    """randrange always returns `value`; remembers the bounds it was asked for."""
    def __init__(self, value: int):
        self.value = value
        self.bounds = []
    def randrange(self, n):
        self.bounds.append(n)
        return self.value

def feed(engine, pairs):
    snaps = []
    for s, o in pairs:
        snap = engine.ingest(Pair(s, o))
        if snap is not None:
            snaps.append(snap)
    return snaps

SCENARIO = [(1, 10), (2, 10), (1, 11), (1, 12)]

def test_scenario_raw_counts_and_draw_bound():
    rng = FixedRng(2)
    engine = StreamingCutEngine(frequency_cut=100, interaction_cut=2, interval=1, rng=rng)
    snaps = feed(engine, SCENARIO)
    assert len(snaps) == 4
    assert snaps[1].n == 2 and snaps[1].pairs == 2 and snaps[1].subjects == 2 and snaps[1].objects == 1
    assert engine.raw_subjects.get(1) == 3
    # full after lines 1 and 3, only line 4 draws
    assert rng.bounds == [3]
    assert engine.histories.history(1) == [10, 11]
    assert tuple(snaps[3]) == (4, 4, 3, 2, 3, 2, 2)

def test_scenario_eviction_swaps_object():
    engine = StreamingCutEngine(interaction_cut=2, interval=1, rng=FixedRng(0))
    snaps = feed(engine, SCENARIO)
    assert engine.histories.history(1) == [12, 11]
    assert engine.cut_pairs.count(Pair(1, 10)) == 0
    assert engine.cut_pairs.count(Pair(1, 12)) == 1
    assert engine.cut_objects.get(10) == 1
    assert tuple(snaps[3]) == (4, 4, 3, 2, 3, 2, 3)
    assert engine.subject_histogram() == {2: 1, 1: 1}
    assert engine.object_histogram() == {1: 3}

def test_eviction_that_empties_an_object():
    engine = StreamingCutEngine(interaction_cut=2, interval=1, rng=FixedRng(1))
    snaps = feed(engine, SCENARIO)
    assert engine.cut_objects.get(11) == 0
    assert snaps[3].cut_objects == 2
    assert engine.object_histogram() == {2: 1, 1: 1}

def test_same_object_is_not_swapped_in():
    engine = StreamingCutEngine(interaction_cut=1, interval=1, rng=FixedRng(0))
    feed(engine, [(1, 5), (1, 5)])
    assert engine.cut_pairs.count(Pair(1, 5)) == 1
    assert engine.cut_objects.get(5) == 1

def test_frequency_cut_blocks_popular_object():
    engine = StreamingCutEngine(frequency_cut=1, interval=1)
    snaps = feed(engine, [(1, 5), (2, 5), (3, 5), (3, 6)])
    assert engine.cut_objects.get(5) == 1
    assert engine.cut_pairs.distinct_count() == 2
    assert snaps[-1].pairs == 4 and snaps[-1].cut_pairs == 2
    assert engine.cut_subjects.get(2) == 0

def test_frequency_cut_reopens_after_eviction():
    engine = StreamingCutEngine(frequency_cut=1, interaction_cut=1, interval=1, rng=FixedRng(0))
    feed(engine, [(1, 5), (1, 6), (2, 5)])
    assert engine.histories.history(1) == [6]
    assert engine.histories.history(2) == [5]
    assert engine.cut_objects.get(5) == 1

def test_snapshot_only_on_interval():
    engine = StreamingCutEngine(interval=3)
    snaps = feed(engine, [(i, i) for i in range(10)])
    assert [s.n for s in snaps] == [3, 6, 9]
    assert engine.snapshot().n == 10

def test_tracker_never_exceeds_cut():
    tracker = SubjectHistoryTracker(3, random.Random(5))
    seen = 0
    for o in range(50):
        seen += 1
        tracker.offer(1, o, seen)
        assert len(tracker.history(1)) <= 3

def random_pairs(seed, n, subjects=40, objects=60):
    rng = random.Random(seed)
    return [(rng.randrange(subjects), int(rng.paretovariate(1.1)) % objects) for _ in range(n)]

def test_bookkeeping_stays_consistent():
    engine = StreamingCutEngine(frequency_cut=15, interaction_cut=4, interval=50, rng=random.Random(11))
    for s, o in random_pairs(2, 3000):
        engine.ingest(Pair(s, o))
        assert engine.cut_pairs.distinct_count() <= engine.raw_pairs.distinct_count()
        assert engine.cut_objects.get(o) <= 15
    for s in engine.histories.subjects():
        row = engine.histories.history(s)
        assert len(row) <= 4
        assert engine.cut_subjects.get(s) == len(row)
    total = sum(len(engine.histories.history(s)) for s in engine.histories.subjects())
    assert engine.cut_pairs.total() == total
    assert sum(engine.cut_objects.get(o) for o in range(engine.cut_objects.high_water_mark() + 1)) == total

def test_same_seed_same_output():
    pairs = random_pairs(4, 2000)
    runs = []
    for _ in range(2):
        engine = StreamingCutEngine(frequency_cut=20, interaction_cut=3, interval=100, rng=random.Random(42))
        runs.append((feed(engine, pairs), engine.subject_histogram(), engine.object_histogram()))
    assert runs[0] == runs[1]

def test_bad_parameters_rejected():
    with pytest.raises(ValueError):
        StreamingCutEngine(interval=0)
    with pytest.raises(ValueError):
        StreamingCutEngine(frequency_cut=0)

def test_count_sources_skips_headers_and_carries_state(tmp_path):
    a = tmp_path / "a.csv"
    b = tmp_path / "b.csv"
    a.write_text("user,item\n1,10\n2,10\n")
    b.write_text("user,item\n1,11\n1,10\n")
    seen = []
    engine = StreamingCutEngine(interval=2)
    count_sources([str(a), str(b)], engine, skip=1, on_snapshot=seen.append)
    assert [s.n for s in seen] == [2, 4]
    assert engine.raw_pairs.distinct_count() == 3
    assert engine.raw_pairs.count(Pair(1, 10)) == 2

def test_count_sources_format_error_names_file_and_line(tmp_path):
    p = tmp_path / "bad.csv"
    p.write_text("user,item\n1,2\n12x,5\n3,4\n")
    engine = StreamingCutEngine()
    with pytest.raises(FormatError) as ei:
        count_sources([str(p)], engine, skip=1)
    assert ei.value.source == str(p)
    assert ei.value.line == 3
    assert engine.total_lines == 1

def test_count_sources_wraps_missing_file(tmp_path):
    missing = str(tmp_path / "nope.csv")
    with pytest.raises(SourceError) as ei:
        count_sources([missing], StreamingCutEngine())
    assert missing in str(ei.value)
    assert isinstance(ei.value.__cause__, OSError)

def test_count_sources_decode_error_in_header_names_line(tmp_path):
    p = tmp_path / "latin.csv"
    p.write_bytes(b"us\xe9r,item\n1,2\n")
    with pytest.raises(SourceError) as ei:
        count_sources([str(p)], StreamingCutEngine(), skip=1)
    assert ei.value.line == 1
    assert f"{p}:1" in str(ei.value)
    assert isinstance(ei.value.__cause__, UnicodeDecodeError)

def test_count_sources_short_file_with_large_skip(tmp_path):
    p = tmp_path / "short.csv"
    p.write_text("user,item\n")
    engine = count_sources([str(p)], StreamingCutEngine(), skip=5)
    assert engine.total_lines == 0
