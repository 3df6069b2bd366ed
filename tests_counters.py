import io, random
import pytest

from pair_count import (DynamicFrequencyCounter, FormatError, IntegerPairReader, InvalidStateError,
                        Pair, PairMultiset, parse_pair, parse_size)

def test_add_counts_and_uniques():
    c = DynamicFrequencyCounter()
    for _ in range(5):
        c.add(7)
    c.add(3)
    assert c.get(7) == 5
    assert c.get(3) == 1
    assert c.unique_count() == 2
    assert c.high_water_mark() == 7

def test_get_unseen_and_out_of_range_is_zero():
    c = DynamicFrequencyCounter(capacity=4)
    assert c.get(2) == 0
    assert c.get(10_000) == 0
    assert c.high_water_mark() == -1

def test_growth_keeps_existing_counts():
    c = DynamicFrequencyCounter(capacity=10)
    for k in range(10):
        for _ in range(k + 1):
            c.add(k)
    c.add(1_000_000)
    assert c.capacity() > 1_000_000
    assert [c.get(k) for k in range(10)] == [k + 1 for k in range(10)]
    assert c.get(1_000_000) == 1
    assert c.unique_count() == 11
    c.add(25)
    assert c.get(25) == 1 and c.get(1_000_000) == 1

def test_delta_transitions_track_uniques():
    c = DynamicFrequencyCounter()
    c.add(4, 3)
    assert c.unique_count() == 1
    c.add(4, -2)
    assert c.get(4) == 1 and c.unique_count() == 1
    c.add(4, -1)
    assert c.get(4) == 0 and c.unique_count() == 0
    c.add(4, 0)
    assert c.unique_count() == 0

def test_decrement_below_zero_fails():
    c = DynamicFrequencyCounter()
    with pytest.raises(InvalidStateError):
        c.add(9, -1)
    c.add(9)
    with pytest.raises(InvalidStateError):
        c.add(9, -2)
    assert c.get(9) == 1 and c.unique_count() == 1

def test_negative_key_rejected():
    with pytest.raises(ValueError):
        DynamicFrequencyCounter().add(-1)

def test_histogram_buckets_counts():
    c = DynamicFrequencyCounter()
    for k, n in ((0, 2), (1, 2), (5, 1), (9, 3)):
        c.add(k, n)
    c.add(5, -1)
    assert c.histogram() == {2: 2, 3: 1}

def test_multiset_add_remove_distinct():
    m = PairMultiset()
    m.add(Pair(1, 2))
    m.add(Pair(1, 2))
    m.add(Pair(2, 1))
    assert m.distinct_count() == 2 and len(m) == 2
    assert m.count(Pair(1, 2)) == 2
    m.remove(Pair(1, 2))
    assert m.distinct_count() == 2
    m.remove(Pair(1, 2))
    assert m.distinct_count() == 1
    assert m.count(Pair(1, 2)) == 0
    assert m.total() == 1
    with pytest.raises(InvalidStateError):
        m.remove(Pair(1, 2))

def test_multiset_distinct_is_order_independent():
    pairs = [Pair(random.Random(i).randrange(20), random.Random(i + 1).randrange(20)) for i in range(300)]
    expected = len(set(pairs))
    for seed in range(3):
        shuffled = list(pairs)
        random.Random(seed).shuffle(shuffled)
        m = PairMultiset()
        for p in shuffled:
            m.add(p)
        assert m.distinct_count() == expected

def test_parse_pair_whitespace_and_trailing():
    assert parse_pair("  3 ,\t4 trailing junk,9\n") == Pair(3, 4)
    assert parse_pair("12,5") == Pair(12, 5)
    assert parse_pair("7,\n") == Pair(7, 0)
    assert parse_pair("7,\r\n").object == 0

def test_parse_pair_missing_comma():
    with pytest.raises(FormatError) as ei:
        parse_pair("12x,5\n", "data.csv", 3)
    assert ei.value.line == 3 and ei.value.source == "data.csv" and ei.value.got == "x"
    assert "data.csv:3" in str(ei.value)
    with pytest.raises(FormatError):
        parse_pair("\n")
    with pytest.raises(FormatError):
        parse_pair("5 6\n")

def test_reader_counts_lines_and_stops_at_eof():
    reader = IntegerPairReader(io.StringIO("1,2\n3,4\n5,6"), source="mem", line=1)
    assert list(reader) == [Pair(1, 2), Pair(3, 4), Pair(5, 6)]
    assert reader.line == 4
    assert list(IntegerPairReader(io.StringIO(""))) == []

def test_reader_reports_bad_line():
    reader = IntegerPairReader(io.StringIO("1,2\n12x,5\n3,4\n"), source="mem")
    it = iter(reader)
    assert next(it) == Pair(1, 2)
    with pytest.raises(FormatError) as ei:
        next(it)
    assert ei.value.line == 2

def test_parse_size():
    assert parse_size("100") == 100
    assert parse_size("10k") == 10_000
    assert parse_size("3K") == 3_000
    assert parse_size("2M") == 2_000_000
    assert parse_size("1G") == 1_000_000_000
    for bad in ("", "x", "1.5k", "-3", "10m"):
        with pytest.raises(ValueError):
            parse_size(bad)
