"""Lightweight REST client for the nexusdfs API."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import threading

import httpx


def load_json(path: Path) -> dict:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {path}: {exc}") from exc
    if isinstance(payload, list):
        payload = {"players": payload}
    return payload


def stream_progress(base_url: str, session_id: str, connected: threading.Event | None = None) -> None:
    """Print progress events until a terminal one arrives.

    ``connected`` is set at the first heartbeat, once the server holds the
    subscription; a run that finished before that is not replayed.
    """

    with httpx.Client(base_url=base_url, timeout=None) as client:
        with client.stream("GET", f"/optimizer/progress/{session_id}") as resp:
            resp.raise_for_status()
            for line in resp.iter_lines():
                if connected is not None and line.startswith(":hb"):
                    connected.set()
                if not line.startswith("data: "):
                    continue
                event = json.loads(line[len("data: "):])
                counter = f" ({event['current']}/{event['target']})" if "current" in event else ""
                print(f"[{event['progress']:5.1f}%] {event['status']}{counter}")
                if event["status"] == "Completed" or event["status"].startswith(("Error", "Superseded")):
                    return


def main() -> None:
    parser = argparse.ArgumentParser(description="Interact with the nexusdfs REST API")
    parser.add_argument("base_url", help="Base URL of the API, e.g. http://localhost:8000")
    parser.add_argument("slate", type=Path, nargs="?", help="Slate JSON (players, stacks, exposure_settings, contest)")
    parser.add_argument("--lineups", type=int, default=20, help="Number of lineups to request")
    parser.add_argument("--strategy", default="recommended", help="Strategy preset name")
    parser.add_argument("--custom-config", default="", help="JSON object merged over the preset")
    parser.add_argument("--seed", type=int, default=None, help="Fixed seed for the session")
    parser.add_argument("--list-strategies", action="store_true", help="List strategies and exit")
    parser.add_argument("--format", default="csv", help="Export format (csv, json, draftkings)")
    parser.add_argument("--export-path", type=Path, help="Destination path for exported lineups")
    parser.add_argument("--no-progress", action="store_true", help="Do not stream progress events")
    args = parser.parse_args()

    if args.list_strategies:
        with httpx.Client(base_url=args.base_url) as client:
            resp = client.get("/optimizer/strategies")
            resp.raise_for_status()
            print(json.dumps(resp.json(), indent=2))
        return

    if args.slate is None:
        raise SystemExit("a slate file is required unless using --list-strategies")

    slate = load_json(args.slate)
    custom_config = None
    if args.custom_config:
        try:
            custom_config = json.loads(args.custom_config)
        except json.JSONDecodeError as exc:
            raise SystemExit(f"Invalid custom config JSON: {exc}") from exc

    with httpx.Client(base_url=args.base_url, timeout=None) as client:
        resp = client.post("/optimizer/initialize", json={**slate, "seed": args.seed})
        if resp.status_code >= 400:
            raise SystemExit(f"initialize failed: {resp.text}")
        session = resp.json()
        session_id = session["session_id"]
        print(f"Session {session_id} (recommended strategy: {session['recommended_strategy']})")

        progress = None
        if not args.no_progress:
            connected = threading.Event()
            progress = threading.Thread(
                target=stream_progress, args=(args.base_url, session_id, connected), daemon=True
            )
            progress.start()
            connected.wait(timeout=5)

        resp = client.post(
            "/lineups/generate-hybrid",
            json={
                "session_id": session_id,
                "count": args.lineups,
                "strategy": args.strategy,
                "custom_config": custom_config,
            },
        )
        if progress is not None:
            progress.join(timeout=5)
        if resp.status_code >= 400:
            raise SystemExit(f"generation failed: {resp.text}")
        payload = resp.json()
        print(f"Received {len(payload['lineups'])} lineups")
        print(json.dumps(payload["summary"], indent=2))
        for item in payload["recommendations"]:
            print(f"[{item['severity']}] {item['message']}")

        lineup_ids = [lineup["lineup_id"] for lineup in payload["lineups"]]
        resp = client.post("/lineups/export", json={"format": args.format, "lineup_ids": lineup_ids})
        resp.raise_for_status()
        if args.export_path:
            args.export_path.write_text(resp.text)
            print(f"Export saved to {args.export_path}")
        else:
            print(resp.text)


if __name__ == "__main__":
    main()
