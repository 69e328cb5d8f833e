"""Command line access to a pattern snapshot.

    python -m pattern_learning stats
    python -m pattern_learning search --type security --limit 5
    python -m pattern_learning similar pattern_1700000000000_abc123def --min-similarity 0.5
    python -m pattern_learning export --output patterns-export.json --format minimal
    python -m pattern_learning import patterns-export.json --overwrite
    python -m pattern_learning cleanup --max-age-days 30 --keep-minimum 10
    python -m pattern_learning backup backup.json
    python -m pattern_learning restore backup.json
    python -m pattern_learning log --lines 50

Every command prints JSON to stdout.
"""

import argparse
import json
import sys
from datetime import datetime

from .config import EngineConfig
from .engine import PatternLearningEngine
from .errors import NotFoundError, PatternLearningError
from .logging_config import get_log_contents


def _log_verbose(cmd: str, args: dict, result) -> None:
    """Print structured log to stderr when --verbose is enabled."""
    log_entry = {
        "timestamp": datetime.now().isoformat(),
        "command": cmd,
        "args": args,
        "result_type": type(result).__name__,
        "result_size": len(result) if isinstance(result, (list, dict)) else 1
    }
    print(json.dumps(log_entry, default=str), file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pattern_learning", description="Pattern learning store operations")
    p.add_argument("--verbose", "-v", action="store_true", help="Print structured log to stderr")
    p.add_argument("--file", help="Override snapshot path (explicit targeting)")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("stats")

    s = sub.add_parser("search")
    s.add_argument("--type", default=None)
    s.add_argument("--language", default=None)
    s.add_argument("--framework", default=None)
    s.add_argument("--category", default=None)
    s.add_argument("--min-effectiveness", type=float, default=None)
    s.add_argument("--text", default=None, help="Substring of title, description, code or tags")
    s.add_argument("--sort", default=None, help="Sort field, e.g. usage_count or last_used")
    s.add_argument("--direction", default="desc", choices=["asc", "desc"])
    s.add_argument("--limit", type=int, default=10)

    s = sub.add_parser("similar", help="Patterns similar to a stored pattern")
    s.add_argument("pattern_id")
    s.add_argument("--min-similarity", type=float, default=None)
    s.add_argument("--limit", type=int, default=10)

    s = sub.add_parser("export")
    s.add_argument("--output", default=None, help="Write the export to this file")
    s.add_argument("--format", default="full", choices=["full", "minimal"])
    s.add_argument("--type", default=None)

    s = sub.add_parser("import")
    s.add_argument("path")
    s.add_argument("--overwrite", action="store_true")

    s = sub.add_parser("cleanup")
    s.add_argument("--max-age-days", type=float, default=None)
    s.add_argument("--min-effectiveness", type=float, default=None)
    s.add_argument("--max-patterns", type=int, default=None)
    s.add_argument("--keep-minimum", type=int, default=None)

    s = sub.add_parser("backup")
    s.add_argument("path")

    s = sub.add_parser("restore")
    s.add_argument("path")

    s = sub.add_parser("log", help="Recent engine log lines")
    s.add_argument("--lines", type=int, default=100)

    return p


def run(engine: PatternLearningEngine, args):
    store = engine.store
    cfg = engine.config

    if args.cmd == "stats":
        return engine.get_stats()

    if args.cmd == "search":
        criteria = {
            "type": args.type,
            "language": args.language,
            "framework": args.framework,
            "category": args.category,
            "min_effectiveness": args.min_effectiveness,
            "search": args.text,
            "limit": args.limit,
        }
        criteria = {k: v for k, v in criteria.items() if v is not None}
        if args.sort:
            criteria["sort"] = {"field": args.sort, "direction": args.direction}
        return [p.to_dict() for p in store.search(criteria)]

    if args.cmd == "similar":
        target = store.require(args.pattern_id)
        context = {"max_results": args.limit}
        if args.min_similarity is not None:
            context["min_similarity"] = args.min_similarity
        return [
            {"pattern_id": m.pattern.id, "similarity": m.similarity, "rank": m.rank,
             "title": m.pattern.title, "type": m.pattern.type.value}
            for m in store.find_similar_patterns(target, context)
        ]

    if args.cmd == "export":
        filters = {"type": args.type} if args.type else None
        export = store.export_patterns(filters=filters, format=args.format, file_path=args.output)
        if args.output:
            return {"exported": export["metadata"]["total_patterns"], "path": args.output}
        return export

    if args.cmd == "import":
        return store.import_patterns(args.path, overwrite=args.overwrite)

    if args.cmd == "cleanup":
        return store.cleanup(
            max_age_days=cfg.pattern_lifetime_days if args.max_age_days is None else args.max_age_days,
            min_effectiveness=(cfg.cleanup_min_effectiveness if args.min_effectiveness is None
                               else args.min_effectiveness),
            max_patterns=cfg.max_patterns if args.max_patterns is None else args.max_patterns,
            keep_minimum=cfg.keep_minimum if args.keep_minimum is None else args.keep_minimum,
        )

    if args.cmd == "backup":
        return {"backup": store.create_backup(args.path), "patterns": len(store)}

    if args.cmd == "restore":
        return store.restore_from_backup(args.path)

    raise ValueError(f"Unknown command {args.cmd}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.cmd == "log":
        print(json.dumps(get_log_contents(args.lines), indent=2))
        return 0

    overrides = {"file_path": args.file} if args.file else {}
    try:
        with PatternLearningEngine(EngineConfig.from_env(**overrides)) as engine:
            r = run(engine, args)
    except NotFoundError as e:
        r = {"error": "not found", "pattern_id": e.pattern_id}
        print(json.dumps(r, indent=2))
        return 1
    except PatternLearningError as e:
        r = {"error": str(e), "kind": type(e).__name__}
        print(json.dumps(r, indent=2))
        return 1

    if args.verbose and r is not None:
        cmd_args = {k: v for k, v in vars(args).items() if k not in ("cmd", "verbose")}
        _log_verbose(args.cmd, cmd_args, r)

    print(json.dumps(r, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
