#!/usr/bin/env python3
import csv, random, sys
from pathlib import Path

# Usage: python make_pairs.py out.csv rows users items seed
# Example: python make_pairs.py /tmp/pairs_10m.csv 10_000_000 200_000 50_000 1337
#
# Item popularity is heavy tailed (Pareto), users are uniform, so the frequency
# cut has a handful of very popular items to bite on.

def item_for(rng: random.Random, items: int) -> int:
    return min(items - 1, int(rng.paretovariate(1.2)) - 1)

def write_pairs(path: str, rows: int, users: int, items: int, seed: int):
    rng = random.Random(seed)
    p = Path(path)
    with p.open("w", newline="") as f:
        w = csv.writer(f)
        w.writerow(["user", "item"])
        ri = rng.randrange
        for _ in range(rows):
            w.writerow([ri(users), item_for(rng, items)])

def main():
    if len(sys.argv) != 6:
        print("Usage: python make_pairs.py out.csv rows users items seed", file=sys.stderr)
        sys.exit(2)
    out, rows, users, items, seed = (
        sys.argv[1], int(sys.argv[2].replace('_','')), int(sys.argv[3].replace('_','')),
        int(sys.argv[4].replace('_','')), int(sys.argv[5])
    )
    if users < 1 or items < 1:
        print("users and items must be >= 1", file=sys.stderr)
        sys.exit(2)
    write_pairs(out, rows, users, items, seed)

if __name__ == "__main__":
    main()
