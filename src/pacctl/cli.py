import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

import httpx

from pacroute.pac import render_pac_script


def _print_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=True))
    sys.stdout.write("\n")


def _request(
    method: str, base_url: str, path: str, params: Optional[dict] = None, body: Optional[dict] = None
) -> int:
    try:
        resp = httpx.request(
            method, f"{base_url}{path}", params=params, json=body, timeout=10
        )
        resp.raise_for_status()
        _print_json(resp.json())
        return 0
    except Exception as exc:
        _print_json({"status": "error", "error": str(exc)})
        return 1


def render(domains_file: str, endpoint: str) -> int:
    try:
        text = Path(domains_file).read_text(encoding="utf-8")
        if domains_file.endswith(".json"):
            domains = json.loads(text)
        else:
            domains = [line.strip() for line in text.splitlines() if line.strip()]
        pac = render_pac_script(domains, endpoint)
    except Exception as exc:
        _print_json({"status": "error", "error": str(exc)})
        return 1
    sys.stdout.write(pac.lstrip())
    sys.stdout.write("\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pacctl")
    parser.add_argument(
        "--base-url",
        default="http://127.0.0.1:7600",
        help="Base URL for the pacroute service",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Check service health")
    subparsers.add_parser("state", help="Show proxy state")
    subparsers.add_parser("enable", help="Enable the extension and install the PAC")
    subparsers.add_parser("disable", help="Disable the extension and remove the PAC")
    subparsers.add_parser("sync", help="Refresh the domain registry now")

    status_parser = subparsers.add_parser("status", help="Show how a URL is routed")
    status_parser.add_argument("url")

    ignore_parser = subparsers.add_parser("ignore", help="Never proxy a URL's host")
    ignore_parser.add_argument("url")
    ignore_parser.add_argument(
        "--temporary", action="store_true", help="Only until the service restarts"
    )

    render_parser = subparsers.add_parser("render", help="Print a PAC script offline")
    render_parser.add_argument(
        "--domains", required=True, help="File with one domain per line, or a JSON list"
    )
    render_parser.add_argument("--endpoint", required=True, help="Proxy host:port")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    base = args.base_url

    if args.command == "health":
        raise SystemExit(_request("GET", base, "/health"))
    if args.command == "state":
        raise SystemExit(_request("GET", base, "/v1/state"))
    if args.command == "enable":
        raise SystemExit(_request("POST", base, "/v1/extension/enable"))
    if args.command == "disable":
        raise SystemExit(_request("POST", base, "/v1/extension/disable"))
    if args.command == "sync":
        raise SystemExit(_request("POST", base, "/v1/registry/sync"))
    if args.command == "status":
        raise SystemExit(_request("GET", base, "/v1/domain_status", params={"url": args.url}))
    if args.command == "ignore":
        raise SystemExit(
            _request(
                "POST", base, "/v1/ignore", body={"url": args.url, "temporary": args.temporary}
            )
        )
    if args.command == "render":
        raise SystemExit(render(args.domains, args.endpoint))


if __name__ == "__main__":
    main()
