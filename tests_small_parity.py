import subprocess, sys, os
from pathlib import Path
import pytest

HERE = Path(__file__).resolve().parent
SCRIPT = str(HERE / "pair_count.py")

def run(args, cwd):
    return subprocess.run([sys.executable, SCRIPT] + args, cwd=cwd, capture_output=True, text=True)

def test_stream_prints_snapshots_and_distributions(tmp_path):
    data = tmp_path / "pairs.csv"
    data.write_text("user,item\n1,10\n2,10\n1,11\n1,12\n")
    r = run(["--interval", "2", "--icut", "2", str(data)], cwd=tmp_path)
    assert r.returncode == 0, r.stderr
    lines = r.stdout.splitlines()
    assert lines[0] == "n,interactions,items,users,interactions.cut,items.cut,users.cut"
    assert lines[1] == "2,2,1,2,2,2,1"
    assert lines[2].startswith("4,4,3,2,3,2,")
    assert len(lines) == 3
    user_dist = (tmp_path / "user.dist.csv").read_text().splitlines()
    assert user_dist == ["interactions,count", "1,1", "2,1"]
    item_dist = (tmp_path / "item.dist.csv").read_text().splitlines()
    assert item_dist[0] == "interactions,count"
    assert "[done]" in r.stderr

def test_multiple_files_share_counters(tmp_path):
    a = tmp_path / "a.csv"
    b = tmp_path / "b.csv"
    a.write_text("u,i\n1,1\n")
    b.write_text("u,i\n1,1\n2,1\n")
    r = run(["--interval", "1", "--user-dist", "u.csv", "--item-dist", "i.csv", str(a), str(b)], cwd=tmp_path)
    assert r.returncode == 0, r.stderr
    assert r.stdout.splitlines()[-1] == "3,2,1,2,2,2,1"
    assert (tmp_path / "i.csv").read_text().splitlines() == ["interactions,count", "3,1"]

def test_size_suffix_and_skip_zero(tmp_path):
    data = tmp_path / "pairs.csv"
    data.write_text("".join(f"{i % 7},{i % 5}\n" for i in range(2000)))
    r = run(["--interval", "1k", "--skip", "0", str(data)], cwd=tmp_path)
    assert r.returncode == 0, r.stderr
    rows = r.stdout.splitlines()[1:]
    assert [row.split(",")[0] for row in rows] == ["1000", "2000"]

def test_bad_line_aborts_without_distributions(tmp_path):
    data = tmp_path / "bad.csv"
    data.write_text("user,item\n1,2\n12x,5\n")
    r = run([str(data)], cwd=tmp_path)
    assert r.returncode == 1
    assert f"{data}:3" in r.stderr
    assert not (tmp_path / "user.dist.csv").exists()
    assert not (tmp_path / "item.dist.csv").exists()

def test_missing_file_reports_source(tmp_path):
    r = run(["nope.csv"], cwd=tmp_path)
    assert r.returncode == 1
    assert "nope.csv" in r.stderr

def test_bad_option_is_usage_error(tmp_path):
    r = run(["--fcut", "0", "x.csv"], cwd=tmp_path)
    assert r.returncode == 2

def test_progress_goes_to_stderr(tmp_path):
    data = tmp_path / "pairs.csv"
    data.write_text("user,item\n" + "".join(f"{i},{i}\n" for i in range(10)))
    r = run(["--interval", "5", "--progress", str(data)], cwd=tmp_path)
    assert r.returncode == 0, r.stderr
    assert r.stderr.count("[progress]") == 2
    assert "[progress]" not in r.stdout

def test_generated_pairs_run_end_to_end(tmp_path):
    out = tmp_path / "gen.csv"
    subprocess.check_call([sys.executable, str(HERE / "make_pairs.py"), str(out), "5_000", "300", "200", "7"])
    lines = out.read_text().splitlines()
    assert lines[0] == "user,item" and len(lines) == 5001
    r = run(["--interval", "5000", "--fcut", "20", "--icut", "5", str(out)], cwd=tmp_path)
    assert r.returncode == 0, r.stderr
    n, pairs, items, users, cut_pairs, _, _ = map(int, r.stdout.splitlines()[1].split(","))
    assert n == 5000 and cut_pairs <= pairs
    again = run(["--interval", "5000", "--fcut", "20", "--icut", "5", str(out)], cwd=tmp_path)
    assert again.stdout == r.stdout

def test_polars_engine_matches_uncut_totals(tmp_path):
    pytest.importorskip("polars")
    data = tmp_path / "pairs.csv"
    data.write_text("user,item\n1,10\n2,10\n1,11\n1,10\n3,\n")
    r = run(["--engine", "polars", str(data)], cwd=tmp_path)
    assert r.returncode == 0, r.stderr
    assert r.stdout.splitlines() == ["n,interactions,items,users", "5,4,3,3"]

def raw_columns(paths, skip=1):
    from pair_count import StreamingCutEngine, count_sources
    engine = count_sources([str(p) for p in paths], StreamingCutEngine(), skip=skip)
    return tuple(engine.snapshot()[:4])

def test_polars_handles_padding_like_python(tmp_path):
    pytest.importorskip("polars")
    from pair_count import polars_raw_counts
    data = tmp_path / "padded.csv"
    data.write_text("user,item\n 1 , 10\n2,10\n 3,\t11 \n,7\n")
    expected = raw_columns([data])
    assert expected == (4, 4, 3, 4)
    assert polars_raw_counts([str(data)], skip=1) == expected

def test_polars_ignores_trailing_content_like_python(tmp_path):
    pytest.importorskip("polars")
    from pair_count import polars_raw_counts
    data = tmp_path / "trailing.csv"
    data.write_text("user,item\n1,11,9\n2,12 extra words\n1,11\n4,\n")
    expected = raw_columns([data])
    assert expected == (4, 3, 3, 3)
    assert polars_raw_counts([str(data)], skip=1) == expected

def test_polars_empty_files_count_nothing(tmp_path):
    pytest.importorskip("polars")
    from pair_count import polars_raw_counts
    empty = tmp_path / "empty.csv"
    empty.write_text("user,item\n")
    full = tmp_path / "full.csv"
    full.write_text("user,item\n1,2\n1,2\n")
    assert polars_raw_counts([str(empty)], skip=1) == (0, 0, 0, 0)
    assert polars_raw_counts([str(empty), str(full)], skip=1) == raw_columns([empty, full]) == (2, 1, 1, 1)
    r = run(["--engine", "polars", str(empty)], cwd=tmp_path)
    assert r.returncode == 0, r.stderr
    assert r.stdout.splitlines() == ["n,interactions,items,users", "0,0,0,0"]

def test_polars_bad_line_reports_source_and_line(tmp_path):
    pytest.importorskip("polars")
    data = tmp_path / "b.csv"
    data.write_text("user,item\n1,2\n12x,5\n")
    r = run(["--engine", "polars", str(data)], cwd=tmp_path)
    assert r.returncode == 1
    assert f"error: Ill-formed input at {data}:3" in r.stderr
    assert "'x'" in r.stderr
    assert "Traceback" not in r.stderr

def test_polars_missing_file_reports_source(tmp_path):
    pytest.importorskip("polars")
    r = run(["--engine", "polars", "nope.csv"], cwd=tmp_path)
    assert r.returncode == 1
    assert "error: Error at nope.csv" in r.stderr
