#!/usr/bin/env python3
"""Counts user,item interaction pairs with an item frequency cut and a user interaction cut.

Every `interval` lines a snapshot row is printed to stdout:

    n,interactions,items,users,interactions.cut,items.cut,users.cut

At the end of the run the distribution of retained interactions per user and
per item is written to user.dist.csv and item.dist.csv.

Line numbers in error messages are physical lines of the input file, so the
skipped header lines are counted: with the default --skip 1 the first data
line is line 2.
"""
import argparse, os, random, re, sys, time
from array import array
from collections import Counter, deque
from typing import Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, TextIO, Tuple

import psutil

MB = 1024 * 1024

SNAPSHOT_HEADER = "n,interactions,items,users,interactions.cut,items.cut,users.cut"
DISTRIBUTION_HEADER = "interactions,count"

# ---- Errors ----
class FormatError(ValueError):
    def __init__(self, source: str, line: int, got: str):
        self.source = source
        self.line = line
        self.got = got
        shown = repr(got) if got else "end of line"
        super().__init__(f"Ill-formed input at {source}:{line}, expected comma, got {shown}")

class InvalidStateError(RuntimeError):
    """Internal bookkeeping went wrong. Never expected on any input."""

class SourceError(IOError):
    def __init__(self, source: str, line: int):
        self.source = source
        self.line = line
        super().__init__(f"Error at {source}:{line}")

# ---- Size shorthand (10k, 5M, 1G) ----
_SIZE_RE = re.compile(r"^\s*(\d+)([kKMG]?)\s*$")
_SCALE = {"": 1, "k": 1000, "K": 1000, "M": 1000 ** 2, "G": 1000 ** 3}

def parse_size(text: str) -> int:
    m = _SIZE_RE.match(text)
    if not m:
        raise ValueError(f"not a size: {text!r}")
    return int(m.group(1)) * _SCALE[m.group(2)]

# ---- Pair parsing ----
class Pair(NamedTuple):
    subject: int
    object: int

# whitespace that is not a line terminator
_HEAD_RE = re.compile(r"[^\S\r\n]*([0-9]*)[^\S\r\n]*")
_TAIL_RE = re.compile(r"[^\S\r\n]*([0-9]*)")

def parse_pair(text: str, source: str = "<stream>", line: int = 0) -> Pair:
    """Decode `<digits> , <digits>` from the start of text; anything after the second number is ignored."""
    head = _HEAD_RE.match(text)
    pos = head.end()
    if text[pos:pos + 1] != ",":
        got = text[pos:pos + 1]
        raise FormatError(source, line, "" if got in ("\n", "\r") else got)
    tail = _TAIL_RE.match(text, pos + 1)
    return Pair(int(head.group(1) or 0), int(tail.group(1) or 0))

class IntegerPairReader:
    """Yields one Pair per line of fh. `line` is the 1-based number of the last line read."""
    __slots__ = ("fh", "source", "line")
    def __init__(self, fh: TextIO, source: str = "<stream>", line: int = 0):
        self.fh = fh
        self.source = source
        self.line = line
    def __iter__(self) -> Iterator[Pair]:
        readline = self.fh.readline
        while True:
            text = readline()
            if not text:
                return
            self.line += 1
            yield parse_pair(text, self.source, self.line)

# ---- Counters ----
class DynamicFrequencyCounter:
    """Array backed counter for small non-negative integer keys."""
    __slots__ = ("_counts", "_fill", "_uniques")
    def __init__(self, capacity: int = 1000):
        self._counts = array("q", [0]) * capacity
        self._fill = -1  # largest key referenced so far
        self._uniques = 0
    def _resize(self, key: int):
        size = len(self._counts)
        if key < size:
            return
        new_size = max(key + 1, min(key + 100, 2 * size))
        # only the live prefix is carried over; the rest is fresh zeros
        live = self._fill + 1
        grown = self._counts[:live]
        grown.extend(array("q", [0]) * (new_size - live))
        self._counts = grown
    def add(self, key: int, delta: int = 1):
        if key < 0:
            raise ValueError(f"negative key: {key}")
        self._resize(key)
        current = self._counts[key]
        updated = current + delta
        if updated < 0:
            raise InvalidStateError(f"cannot decrement key {key} below zero ({current} + {delta})")
        if current == 0 and updated > 0:
            self._uniques += 1
        elif current > 0 and updated == 0:
            self._uniques -= 1
        self._counts[key] = updated
        if key > self._fill:
            self._fill = key
    def get(self, key: int) -> int:
        if key < 0 or key >= len(self._counts):
            return 0
        return self._counts[key]
    def unique_count(self) -> int:
        return self._uniques
    def high_water_mark(self) -> int:
        """Largest key ever referenced, -1 before the first add."""
        return self._fill
    def capacity(self) -> int:
        return len(self._counts)
    def histogram(self) -> Dict[int, int]:
        """Maps each nonzero count to the number of keys holding it."""
        hist: Counter = Counter()
        for key in range(self._fill + 1):
            c = self._counts[key]
            if c > 0:
                hist[c] += 1
        return dict(hist)

class PairMultiset:
    __slots__ = ("_counts",)
    def __init__(self):
        self._counts: Counter = Counter()
    def add(self, pair: Pair):
        self._counts[pair] += 1
    def remove(self, pair: Pair):
        c = self._counts.get(pair, 0)
        if c == 0:
            raise InvalidStateError(f"cannot remove absent pair {tuple(pair)}")
        if c == 1:
            del self._counts[pair]
        else:
            self._counts[pair] = c - 1
    def count(self, pair: Pair) -> int:
        return self._counts.get(pair, 0)
    def distinct_count(self) -> int:
        return len(self._counts)
    def total(self) -> int:
        return sum(self._counts.values())
    def __len__(self) -> int:
        return len(self._counts)

# ---- Interaction cut ----
class SubjectHistoryTracker:
    """Keeps at most `interaction_cut` objects per subject.

    Once a subject's list is full, a new object replaces slot
    `rng.randrange(seen)` when that slot exists and holds a different object.
    `seen` is the raw number of pairs observed for the subject, not the number
    accepted, so this only approximates a uniform sample and assumes objects
    arrive in random order per subject. The bound is part of the output
    contract; do not replace it with the accepted count.
    """
    __slots__ = ("interaction_cut", "rng", "_rows")
    def __init__(self, interaction_cut: int, rng: random.Random):
        self.interaction_cut = interaction_cut
        self.rng = rng
        self._rows: Dict[int, List[int]] = {}
    def history(self, subject: int) -> List[int]:
        row = self._rows.get(subject)
        if row is None:
            row = []
            self._rows[subject] = row
        return row
    def offer(self, subject: int, obj: int, seen: int) -> Tuple[bool, Optional[int]]:
        """Returns (accepted, evicted object or None)."""
        row = self.history(subject)
        if len(row) < self.interaction_cut:
            row.append(obj)
            return True, None
        sample = self.rng.randrange(seen)
        if sample < len(row) and row[sample] != obj:
            old = row[sample]
            row[sample] = obj
            return True, old
        return False, None
    def subjects(self) -> Iterable[int]:
        return self._rows.keys()
    def __len__(self) -> int:
        return len(self._rows)

# ---- Engine ----
class Snapshot(NamedTuple):
    n: int
    pairs: int
    objects: int
    subjects: int
    cut_pairs: int
    cut_subjects: int
    cut_objects: int
    def csv(self) -> str:
        return ",".join(str(v) for v in self)

class StreamingCutEngine:
    def __init__(self, frequency_cut: int = 100, interaction_cut: int = 100,
                 interval: int = 100_000, rng: Optional[random.Random] = None):
        if frequency_cut < 1 or interaction_cut < 1 or interval < 1:
            raise ValueError("frequency_cut, interaction_cut and interval must be >= 1")
        self.frequency_cut = frequency_cut
        self.interaction_cut = interaction_cut
        self.interval = interval
        self.rng = rng if rng is not None else random.Random(1)
        self.raw_subjects = DynamicFrequencyCounter()
        self.raw_objects = DynamicFrequencyCounter()
        self.raw_pairs = PairMultiset()
        self.cut_subjects = DynamicFrequencyCounter()
        self.cut_objects = DynamicFrequencyCounter()
        self.cut_pairs = PairMultiset()
        self.histories = SubjectHistoryTracker(interaction_cut, self.rng)
        self.total_lines = 0
    def ingest(self, pair: Pair) -> Optional[Snapshot]:
        s, o = pair
        self.raw_subjects.add(s)
        self.raw_objects.add(o)
        self.raw_pairs.add(pair)

        # items are capped on the cut side only
        if self.cut_objects.get(o) < self.frequency_cut:
            accepted, old = self.histories.offer(s, o, self.raw_subjects.get(s))
            if accepted:
                self.cut_pairs.add(pair)
                self.cut_objects.add(o)
                if old is None:
                    self.cut_subjects.add(s)
                else:
                    self.cut_pairs.remove(Pair(s, old))
                    self.cut_objects.add(old, -1)

        self.total_lines += 1
        if self.total_lines % self.interval == 0:
            return self.snapshot()
        return None
    def snapshot(self) -> Snapshot:
        return Snapshot(
            self.total_lines,
            self.raw_pairs.distinct_count(),
            self.raw_objects.unique_count(),
            self.raw_subjects.unique_count(),
            self.cut_pairs.distinct_count(),
            self.cut_subjects.unique_count(),
            self.cut_objects.unique_count(),
        )
    def subject_histogram(self) -> Dict[int, int]:
        return self.cut_subjects.histogram()
    def object_histogram(self) -> Dict[int, int]:
        return self.cut_objects.histogram()

# ---- Sources ----
def count_sources(paths: Iterable[str], engine: StreamingCutEngine, skip: int = 1,
                  on_snapshot: Optional[Callable[[Snapshot], None]] = None) -> StreamingCutEngine:
    """Feeds every path, in order, through one engine. Counters carry over between files."""
    for path in paths:
        reader = None
        try:
            with open(path, encoding="utf-8", buffering=1024 * 1024) as f:
                reader = IntegerPairReader(f, source=path)
                for _ in range(skip):
                    if not f.readline():
                        break
                    reader.line += 1
                for pair in reader:
                    snap = engine.ingest(pair)
                    if snap is not None and on_snapshot is not None:
                        on_snapshot(snap)
        except (OSError, UnicodeDecodeError) as e:
            # the line being read when it failed, 0 if the file never opened
            raise SourceError(path, reader.line + 1 if reader is not None else 0) from e
    return engine

# ---- Output ----
def write_snapshot_header(out: TextIO):
    out.write(SNAPSHOT_HEADER + "\n")

def write_snapshot_row(out: TextIO, snap: Snapshot):
    out.write(snap.csv() + "\n")

def write_distribution(histogram: Dict[int, int], pathname: str):
    with open(pathname, "w", encoding="utf-8") as out:
        out.write(DISTRIBUTION_HEADER + "\n")
        for value in sorted(histogram):
            out.write(f"{value},{histogram[value]}\n")

class ProgressReporter:
    """Snapshot rows to `out`; optional rate/memory lines to stderr."""
    def __init__(self, out: TextIO, show_progress: bool = False, err: Optional[TextIO] = None):
        self.out = out
        self.err = err if err is not None else sys.stderr
        self.show_progress = show_progress
        self.start = time.time()
        self.window = deque()  # (time, rows)
        self._proc = psutil.Process(os.getpid()) if show_progress else None
    def header(self):
        write_snapshot_header(self.out)
    def __call__(self, snap: Snapshot):
        write_snapshot_row(self.out, snap)
        if self.show_progress:
            self.report(snap.n)
    def rate(self, rows: int) -> float:
        now = time.time()
        self.window.append((now, rows))
        # maintain 5s window
        while len(self.window) > 2 and now - self.window[0][0] > 5:
            self.window.popleft()
        if len(self.window) >= 2:
            dt = self.window[-1][0] - self.window[0][0]
            dr = self.window[-1][1] - self.window[0][1]
            return dr / dt if dt > 0 else 0.0
        elapsed = now - self.start
        return rows / elapsed if elapsed > 0 else 0.0
    def report(self, rows: int):
        rps = self.rate(rows)
        rss = self._proc.memory_info().rss if self._proc is not None else 0
        print(f"[progress] {rows:,} rows | {rps:,.0f} rows/s | rss {rss / MB:.1f} MB", file=self.err)

# ---- Polars engine ----
# same grammar as parse_pair, applied to whole lines
_POLARS_PAIR = r"^[^\S\r\n]*([0-9]*)[^\S\r\n]*,[^\S\r\n]*([0-9]*)"

def polars_raw_counts(paths: List[str], skip: int = 1) -> Tuple[int, int, int, int]:
    """(n, interactions, items, users) without cuts, from a lazy scan of each file."""
    import polars as pl  # type: ignore
    frames = []
    for path in paths:
        try:
            lf = (
                pl.scan_csv(path, has_header=False, separator="\x1f", quote_char=None, skip_rows=skip,
                            schema={"line": pl.String}, truncate_ragged_lines=True)
                .with_row_index("row")
                .with_columns(
                    pl.col("line").fill_null("").str.extract(_POLARS_PAIR, 1).alias("user"),
                    pl.col("line").fill_null("").str.extract(_POLARS_PAIR, 2).alias("item"),
                )
            )
            matched = pl.col("line").fill_null("").str.contains(_POLARS_PAIR)
            bad = lf.filter(~matched).select("row", "line").head(1).collect()
        except pl.exceptions.NoDataError:
            continue  # nothing after the header
        except (OSError, pl.exceptions.PolarsError) as e:
            raise SourceError(path, 0) from e
        if bad.height:
            line = skip + int(bad["row"][0]) + 1
            text = bad["line"][0] or ""
            parse_pair(text, path, line)  # raises with the offending character
            raise FormatError(path, line, "")
        frames.append(lf.select(
            pl.col("user").cast(pl.Int64, strict=False).fill_null(0),
            pl.col("item").cast(pl.Int64, strict=False).fill_null(0),
        ))
    if not frames:
        return (0, 0, 0, 0)
    out = pl.concat(frames).select(
        pl.len().alias("n"),
        pl.struct("user", "item").n_unique().alias("interactions"),
        pl.col("item").n_unique().alias("items"),
        pl.col("user").n_unique().alias("users"),
    ).collect()
    n = int(out["n"][0])
    if n == 0:
        return (0, 0, 0, 0)
    return (n, int(out["interactions"][0]), int(out["items"][0]), int(out["users"][0]))

# ---- CLI ----
def _size_arg(minimum: int):
    def convert(text: str) -> int:
        try:
            n = parse_size(text)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e))
        if n < minimum:
            raise argparse.ArgumentTypeError(f"must be >= {minimum}: {text!r}")
        return n
    return convert

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Count user,item interactions with frequency and interaction cuts")
    ap.add_argument("files", nargs="+", help="Input files of user,item integer pairs")
    ap.add_argument("--interval", type=_size_arg(1), default=100_000, help="Print counts every N lines (default 100000)")
    ap.add_argument("--skip", type=_size_arg(0), default=1, help="Header lines to skip in each file (default 1)")
    ap.add_argument("--fcut", type=_size_arg(1), default=100, help="Frequency cut: max retained interactions per item (default 100)")
    ap.add_argument("--icut", type=_size_arg(1), default=100, help="Interaction cut: max retained interactions per user (default 100)")
    ap.add_argument("--seed", type=int, default=1, help="Seed for the replacement draws (default 1)")
    ap.add_argument("--user-dist", default="user.dist.csv", help="Where to write the per-user distribution")
    ap.add_argument("--item-dist", default="item.dist.csv", help="Where to write the per-item distribution")
    ap.add_argument("--progress", action="store_true", help="Show rows/s and memory on stderr at each interval")
    ap.add_argument("--engine", choices=["python", "polars"], default="python",
                    help="polars computes only the uncut totals (default python)")
    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.engine == "polars":
        try:
            n, interactions, items, users = polars_raw_counts(args.files, skip=args.skip)
        except (FormatError, SourceError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print("n,interactions,items,users")
        print(f"{n},{interactions},{items},{users}")
        print("Note: polars engine computes uncut totals only; cut statistics need the python engine.", file=sys.stderr)
        return 0

    engine = StreamingCutEngine(frequency_cut=args.fcut, interaction_cut=args.icut,
                                interval=args.interval, rng=random.Random(args.seed))
    reporter = ProgressReporter(sys.stdout, show_progress=args.progress)
    reporter.header()
    t0 = time.time()
    try:
        count_sources(args.files, engine, skip=args.skip, on_snapshot=reporter)
    except (FormatError, SourceError) as e:
        sys.stdout.flush()
        print(f"error: {e}", file=sys.stderr)
        return 1

    write_distribution(engine.subject_histogram(), args.user_dist)
    write_distribution(engine.object_histogram(), args.item_dist)
    snap = engine.snapshot()
    print(f"[done] {snap.n:,} lines in {time.time() - t0:.1f}s | {snap.subjects:,} users, {snap.objects:,} items"
          f" | cut keeps {snap.cut_pairs:,} of {snap.pairs:,} interactions", file=sys.stderr)
    return 0

if __name__ == "__main__":
    sys.exit(main())
