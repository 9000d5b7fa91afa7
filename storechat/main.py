"""Command-line interface for storechat.

A terminal chat loop against one store, plus cache administration.  For
production, use the FastAPI server (storechat/server.py).

Usage:
    python -m storechat.main chat --store STORE_ID            # classic pipeline
    python -m storechat.main chat --store STORE_ID --native   # native tool calling
    python -m storechat.main precache --store STORE_ID [--clear | --stats]
    add --debug to any command to see HTTP calls and timings
"""

from __future__ import annotations

import argparse
import json
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("storechat").setLevel(logging.DEBUG if debug else logging.INFO)


def _build(native: bool):
    from storechat.native import NativeOrchestrator
    from storechat.orchestrator import ClassicOrchestrator
    from storechat.services.cache import build_cache
    from storechat.services.store_data import TabLoader

    loader = TabLoader(build_cache())
    orchestrator = NativeOrchestrator(loader) if native else ClassicOrchestrator(loader)
    return loader, orchestrator


def run_chat(store_id: str, native: bool, debug: bool) -> None:
    """Interactive chat loop; history lives only for this session."""
    from storechat.errors import StoreChatError
    from storechat.models import ChatRequest, ChatTurn

    _, orchestrator = _build(native)
    label = "native" if native else "classic"

    print("\n" + "=" * 60)
    print(f"  storechat - {label} mode - store {store_id}")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' to clear history.")
    print("=" * 60 + "\n")

    history: list[ChatTurn] = []
    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break
        if user_input.lower() == "new":
            history = []
            print("\n>> History cleared.\n")
            continue

        history.append(ChatTurn(role="user", content=user_input))
        try:
            reply = orchestrator.run(ChatRequest(messages=list(history), store_id=store_id))
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        except StoreChatError as e:
            logger.exception("Error processing message")
            history.pop()
            print(f"\nAssistant: Sorry, something went wrong: {e}\n")
            continue

        history.append(ChatTurn(role="assistant", content=reply.text))
        print(f"\nAssistant: {reply.text}\n")
        if reply.suggestions:
            print("  Suggestions: " + " | ".join(reply.suggestions))
        for component in reply.components:
            print(f"  [{component['type']}]")
        if debug:
            print(json.dumps(reply.debug, indent=2, default=str))
        print()


def run_precache(store_id: str, clear: bool, stats: bool) -> None:
    loader, orchestrator = _build(native=False)
    if stats:
        result = loader.stats(store_id)
    elif clear:
        result = {"storeId": store_id, "removed": loader.clear(store_id)}
    else:
        result = loader.precache(orchestrator.load_store(store_id))
    print(json.dumps(result, indent=2, default=str))


def main():
    parser = argparse.ArgumentParser(description="storechat CLI")
    parser.add_argument("--debug", action="store_true", help="Show all log messages including HTTP requests")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Interactive chat against one store")
    chat.add_argument("--store", required=True, help="Store id")
    chat.add_argument("--native", action="store_true", help="Use the native tool-calling loop")

    pre = sub.add_parser("precache", help="Warm, clear or inspect a store's cache")
    pre.add_argument("--store", required=True, help="Store id")
    group = pre.add_mutually_exclusive_group()
    group.add_argument("--clear", action="store_true")
    group.add_argument("--stats", action="store_true")

    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    if args.command == "chat":
        run_chat(args.store, args.native, args.debug)
    else:
        run_precache(args.store, args.clear, args.stats)


if __name__ == "__main__":
    main()
