"""Command-line interface for generating lineups from a JSON slate file."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from nexusdfs.config.settings import load_settings
from nexusdfs.errors import OptimizerError
from nexusdfs.optimizer.strategies import DEFAULT_PRESETS
from nexusdfs.pool.export import EXPORT_FORMATS
from nexusdfs.session import SessionManager


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate captain-mode lineups from a slate file")
    parser.add_argument(
        "slate",
        type=Path,
        help="Path to slate JSON with players, stacks, exposure_settings and contest",
    )
    parser.add_argument("--lineups", type=int, default=20, help="Number of lineups to build")
    parser.add_argument(
        "--strategy",
        default="recommended",
        choices=[preset.key for preset in DEFAULT_PRESETS],
        help="Strategy preset",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="JSON object merged over the strategy preset (e.g. '{\"formula\": \"ceiling\"}')",
    )
    parser.add_argument("--seed", type=int, default=None, help="Fixed RNG seed for reproducible output")
    parser.add_argument(
        "--format",
        default="csv",
        choices=EXPORT_FORMATS,
        help="Export format",
    )
    parser.add_argument("--output", type=Path, default=Path("lineups.csv"), help="Output file path")
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional path to write the generation summary JSON",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Stop generating after this many seconds and keep what was accepted",
    )
    return parser.parse_args(argv)


def _load_slate(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid slate JSON in {path}: {exc}") from exc
    if isinstance(payload, list):
        payload = {"players": payload}
    if not isinstance(payload, dict) or "players" not in payload:
        raise SystemExit(f"{path} must contain a players list")
    return payload


def _parse_config(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        config = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid --config JSON: {exc}") from exc
    if not isinstance(config, dict):
        raise SystemExit("--config must be a JSON object")
    return config


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    slate = _load_slate(args.slate)
    manager = SessionManager(settings=load_settings())

    try:
        session = manager.init(
            slate["players"],
            stacks=slate.get("stacks") or (),
            exposure_settings=slate.get("exposure_settings") or (),
            contest=slate.get("contest"),
            seed=args.seed,
        )
        print(
            f"Loaded {len(session.pool)} players across {len(session.pool.teams)} teams "
            f"(recommended strategy: {session.analysis.recommended_strategy})"
        )
        output = manager.generate(
            session.session_id,
            args.lineups,
            args.strategy,
            _parse_config(args.config),
            deadline_seconds=args.deadline,
        )
        payload = manager.export([lineup.lineup_id for lineup in output.lineups], args.format)
    except OptimizerError as exc:
        raise SystemExit(f"{type(exc).__name__}: {exc.message}") from exc

    args.output.write_text(payload.content, encoding="utf-8")
    summary = output.summary
    print(
        f"Wrote {summary['generated']} lineups to {args.output} "
        f"(avg NexusScore {summary['average_nexus_score']}, avg ROI {summary['average_roi']}%)"
    )
    for item in output.recommendations:
        print(f"[{item['severity']}] {item['message']}")
    if args.summary:
        args.summary.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        print(f"Wrote summary to {args.summary}")
    if output.message:
        print(f"Lineup generation stopped early: {output.message}")


if __name__ == "__main__":
    main()
