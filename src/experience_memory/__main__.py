"""Command line access to a .memory experience library.

    python3 -m experience_memory record bugfix --title "PM2 startup failure" \\
        --problem "PM2 cannot start" --solution "rename to .cjs"
    python3 -m experience_memory search "pm2 will not start"
    python3 -m experience_memory fail --problem "clicks miss" \\
        --solution "hardcode resolution 1920x1080" --reason "breaks on 4K"
    python3 -m experience_memory check "use fixed resolution 1920x1080"
    python3 -m experience_memory cluster 3
    python3 -m experience_memory stats
"""

import sys
import json
import argparse
import logging
from pathlib import Path

from experience_memory.errors import ExperienceMemoryError
from experience_memory.library import ExperienceLibrary

DEFAULT_FILE = "experience.memory"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="experience_memory",
        description="Record, search and deduplicate experience entries.",
    )
    parser.add_argument("--file", default=DEFAULT_FILE,
                        help=f"Library file (default: {DEFAULT_FILE})")
    parser.add_argument("--json", action="store_true",
                        help="Print machine-readable JSON")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log engine activity to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("record", help="Record a successful experience")
    rec.add_argument("category", choices=["bugfix", "tool", "pattern"])
    rec.add_argument("--title", required=True)
    rec.add_argument("--problem", required=True)
    rec.add_argument("--solution", required=True)
    rec.add_argument("--context", default="")
    rec.add_argument("--success-rate", type=float, default=100.0)

    fail = sub.add_parser("fail", help="Record an approach that failed")
    fail.add_argument("--problem", required=True)
    fail.add_argument("--solution", required=True,
                      help="The attempted solution")
    fail.add_argument("--reason", default="")
    fail.add_argument("--context", default="")
    fail.add_argument("--title", default="")

    search = sub.add_parser("search", help="Find prior solutions")
    search.add_argument("query")
    search.add_argument("--min-score", type=float, default=None)
    search.add_argument("--top-k", type=int, default=None)

    check = sub.add_parser("check", help="Was this approach tried and failed?")
    check.add_argument("solution")
    check.add_argument("--context", default="")
    check.add_argument("--threshold", type=float, default=None)

    cl = sub.add_parser("cluster", help="Group the library into k clusters")
    cl.add_argument("k", type=int)
    cl.add_argument("--seed", type=int, default=None)

    sub.add_parser("stats", help="Library statistics")
    return parser


def _open(path: Path) -> ExperienceLibrary:
    if path.exists():
        return ExperienceLibrary.load(path)
    return ExperienceLibrary.create(description=path.stem)


def _emit(args, payload, text_lines):
    if args.json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        for line in text_lines:
            print(line)


def run(args) -> int:
    path = Path(args.file)
    lib = _open(path)

    if args.command == "record":
        result = lib.record_entry(args.category, args.title, args.problem,
                                  args.solution, args.context,
                                  success_rate=args.success_rate)
        lib.save(path)
        verb = "merged into" if result.merged else "recorded"
        _emit(args, result.to_dict(), [f"{verb} {result.id}"])

    elif args.command == "fail":
        result = lib.record_failure(args.problem, args.solution,
                                    reason=args.reason, context=args.context,
                                    title=args.title)
        lib.save(path)
        verb = "merged into" if result.merged else "recorded failure"
        _emit(args, result.to_dict(), [f"{verb} {result.id}"])

    elif args.command == "search":
        hits = lib.find_solution(args.query, min_score=args.min_score,
                                 top_k=args.top_k)
        if path.exists() and hits:
            lib.save(path)      # usage_count of the top hit changed
        lines = [f"{len(hits)} match(es)"]
        for i, h in enumerate(hits, 1):
            lines.append(f"{i}. [{h.score:.0%}] {h.entry.title} ({h.entry.id})")
            if h.entry.solution:
                lines.append(f"   {h.entry.solution.splitlines()[0][:100]}")
        _emit(args, [h.to_dict() for h in hits], lines)

    elif args.command == "check":
        result = lib.check_prior_failure(args.solution, args.context,
                                         threshold=args.threshold)
        text = result.message if result.is_failed else "no matching failure"
        _emit(args, result.to_dict(), [text])

    elif args.command == "cluster":
        clusters = lib.cluster(args.k, seed=args.seed)
        lines = []
        for c in clusters:
            lines.append(f"{c.cluster_id} ({len(c.entry_ids)}): "
                         f"{', '.join(c.top_terms)}")
        _emit(args, [c.to_dict() for c in clusters], lines)

    elif args.command == "stats":
        s = lib.stats()
        lines = [f"{s['total']} entries, {s['vocabulary_size']} terms"]
        lines += [f"  {k}: {v}" for k, v in s["by_category"].items()]
        _emit(args, s, lines)

    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return run(args)
    except (ExperienceMemoryError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
