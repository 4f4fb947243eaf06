#!/usr/bin/env python3
"""
Reactgate CLI

Command-line interface for running and poking the approval daemon.
"""

import argparse
import json
import os
import sys
import time

import httpx

from .config.settings import BotConfig, ConfigError
from .core.tickets import TicketCodec

REACTGATE_URL = os.getenv("REACTGATE_URL", "http://127.0.0.1:3000")


def get_client(args, timeout: float = 10) -> httpx.Client:
    """Get HTTP client."""
    return httpx.Client(base_url=args.url, timeout=timeout)


def _load_config() -> BotConfig:
    try:
        return BotConfig.load()
    except ConfigError as e:
        print(f"❌ {e}")
        sys.exit(1)


def cmd_serve(args):
    """Run the daemon in the foreground."""
    from .main import main as run_daemon

    sys.exit(run_daemon())


def cmd_status(args):
    """Show daemon status."""
    try:
        client = get_client(args)
        health = client.get("/health").json()
        pending = client.get("/api/v1/pending").json()
    except httpx.ConnectError:
        print("❌ Reactgate daemon not running")
        print("Start with: reactgate serve")
        sys.exit(1)

    engine = pending["engine"]
    print("Reactgate Status")
    print("=" * 40)
    print(f"Status: {health['status']}")
    print(f"Version: {health['version']}")
    print(f"Deadline: {engine['deadline_seconds']}s")
    print()
    print(f"Pending: {pending['pending']['count']}")
    for key in ("registered", "approved", "rejected", "expired", "cancelled"):
        print(f"  - {key}: {engine[key]}")
    if engine["dropped_replies"]:
        print(f"Dropped replies: {engine['dropped_replies']}")
    if engine["authority_failures"]:
        print(f"⚠️  Discharge authority failures: {engine['authority_failures']}")

    if args.verbose:
        print()
        for request in pending["pending"]["requests"]:
            print(
                f"  {request['token']}  {request['mode']:<12} "
                f"{request['requester'] or '-':<16} {request['age_seconds']}s"
            )


def cmd_mint_ticket(args):
    """Mint a ticket with the local macaroon secret."""
    config = _load_config()
    caveats = json.loads(args.caveats) if args.caveats else []
    print(TicketCodec(config.macaroon_secret, config.location).seal_ticket(caveats))


def cmd_request(args):
    """Ask for approval and wait for the channel's answer."""
    client = get_client(args, timeout=args.timeout)
    try:
        response = client.post("/ticket", json={"name": args.name, "ticket": args.ticket})
    except httpx.TimeoutException:
        print("⏱️  Gave up waiting for an answer")
        sys.exit(1)

    if response.status_code != 200:
        print(f"❌ {response.status_code}: {response.text}")
        sys.exit(1)

    reply = response.json()
    if reply["approved"]:
        print(f"✅ Approved by @{reply['respondent']}")
        if args.verbose:
            print(reply["discharge"])
    else:
        print(f"🚫 Rejected by @{reply['respondent']}")
        sys.exit(2)


def cmd_discharge(args):
    """Start a third-party discharge round and poll it."""
    client = get_client(args)
    response = client.post("/.well-known/macfly/3p", json={"ticket": args.ticket})
    if response.status_code != 201:
        print(f"❌ {response.status_code}: {response.text}")
        sys.exit(1)

    poll_url = response.json()["poll_url"]
    print(f"Polling {poll_url}")
    while True:
        response = client.get(poll_url)
        if response.status_code != 202:
            break
        time.sleep(args.interval)

    if response.status_code != 200:
        print(f"❌ {response.status_code}: {response.text}")
        sys.exit(1)

    result = response.json()
    if result.get("discharge"):
        print("✅ Discharged")
        print(result["discharge"])
    else:
        print(f"🚫 Aborted: {result.get('error')}")
        sys.exit(2)


def main():
    parser = argparse.ArgumentParser(
        description="Reactgate CLI - human approval by channel reaction",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  reactgate serve                        Run the daemon
  reactgate status -v                    Show status and pending requests
  reactgate mint-ticket                  Mint a ticket for testing
  reactgate request alice TICKET         Ask for approval and wait
  reactgate discharge TICKET             Start a discharge round and poll it
        """,
    )
    parser.add_argument("--url", default=REACTGATE_URL, help="Daemon base URL")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the daemon")
    serve_parser.set_defaults(func=cmd_serve)

    # status
    status_parser = subparsers.add_parser("status", help="Show daemon status")
    status_parser.add_argument("-v", "--verbose", action="store_true")
    status_parser.set_defaults(func=cmd_status)

    # mint-ticket
    mint_parser = subparsers.add_parser("mint-ticket", help="Mint a ticket")
    mint_parser.add_argument("--caveats", help="JSON list of caveats")
    mint_parser.set_defaults(func=cmd_mint_ticket)

    # request
    request_parser = subparsers.add_parser("request", help="Ask for approval")
    request_parser.add_argument("name", help="Who is asking")
    request_parser.add_argument("ticket", help="Sealed ticket")
    request_parser.add_argument(
        "--timeout", type=float, default=600, help="Seconds to wait for an answer"
    )
    request_parser.add_argument("-v", "--verbose", action="store_true")
    request_parser.set_defaults(func=cmd_request)

    # discharge
    discharge_parser = subparsers.add_parser("discharge", help="Run a discharge round")
    discharge_parser.add_argument("ticket", help="Sealed ticket")
    discharge_parser.add_argument(
        "--interval", type=float, default=2.0, help="Seconds between polls"
    )
    discharge_parser.set_defaults(func=cmd_discharge)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
