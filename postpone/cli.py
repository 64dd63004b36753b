from __future__ import annotations

import argparse
import json
import sys
from typing import Any

import httpx

from postpone.config import load_config
from postpone.core import SortMode, StatusFilter, generate_due_date
from postpone.models import Settings


def _print_task(task: dict[str, Any]) -> None:
    mark = "x" if task.get("completed") else " "
    tags = ", ".join(t.get("name", "") for t in task.get("tags") or [])
    line = f"[{mark}] {task.get('due_date', '-')}  {task.get('title', '')}"
    if tags:
        line = f"{line}  ({tags})"
    sys.stdout.write(line + "\n")


def run_preview(args: argparse.Namespace) -> int:
    defaults = Settings.defaults()
    try:
        settings = Settings(
            min_days_ahead=args.min_days if args.min_days is not None else defaults.min_days_ahead,
            max_days_ahead=args.max_days if args.max_days is not None else defaults.max_days_ahead,
            earliest_hour=args.earliest if args.earliest is not None else defaults.earliest_hour,
            latest_hour=args.latest if args.latest is not None else defaults.latest_hour,
        )
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2
    for _ in range(max(1, args.count)):
        sys.stdout.write(generate_due_date(settings).isoformat() + "\n")
    return 0


def run_list(args: argparse.Namespace) -> int:
    params: list[tuple[str, str]] = [("status", args.status), ("sort", args.sort)]
    params.extend(("tag", t) for t in args.tag or [])
    url = f"{args.base_url.rstrip('/')}/tasks"
    try:
        resp = httpx.get(url, params=params, headers={"X-User-Id": args.user}, timeout=10.0)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        sys.stderr.write(f"error: request to {url} failed: {exc}\n")
        return 1
    tasks = resp.json().get("tasks", [])
    if args.json:
        for task in tasks:
            sys.stdout.write(json.dumps(task, separators=(",", ":")) + "\n")
        return 0
    if not tasks:
        sys.stdout.write("No tasks found\n")
    for task in tasks:
        _print_task(task)
    return 0


def run_serve(args: argparse.Namespace) -> int:
    import uvicorn

    cfg = load_config()
    uvicorn.run(
        "postpone.gateway.asgi:app",
        host=args.host or cfg.host,
        port=args.port or cfg.port,
        log_config=None,
    )
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser("postpone")
    sub = parser.add_subparsers(dest="cmd")

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)

    p_preview = sub.add_parser("preview", help="Print randomly generated due dates")
    p_preview.add_argument("--count", type=int, default=1)
    p_preview.add_argument("--min-days", type=int)
    p_preview.add_argument("--max-days", type=int)
    p_preview.add_argument("--earliest", type=int)
    p_preview.add_argument("--latest", type=int)

    p_list = sub.add_parser("list", help="List tasks from a running API")
    p_list.add_argument("--base-url", default="http://127.0.0.1:8000")
    p_list.add_argument("--user", required=True)
    p_list.add_argument("--status", choices=[s.value for s in StatusFilter], default="all")
    p_list.add_argument("--tag", action="append")
    p_list.add_argument("--sort", choices=[s.value for s in SortMode], default="due_date")
    p_list.add_argument("--json", action="store_true")

    args = parser.parse_args(argv)
    cmd = getattr(args, "cmd", None)
    if cmd == "serve":
        raise SystemExit(run_serve(args))
    if cmd == "preview":
        raise SystemExit(run_preview(args))
    if cmd == "list":
        raise SystemExit(run_list(args))
    parser.print_help()


if __name__ == "__main__":
    main()
