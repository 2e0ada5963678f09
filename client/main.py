"""
Main entry point for the chat client.
Parse options, set up logging, open the chat window and connect.
"""
import argparse
import logging
import os
from typing import List, Optional

DEFAULT_URL = "ws://127.0.0.1:8080/ws"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Real-time WebSocket chat client")
    ap.add_argument("--url", default=os.environ.get("CHAT_URL", DEFAULT_URL),
                    help="WebSocket endpoint of the chat server (env: CHAT_URL)")
    ap.add_argument("--name", default="", help="Initial nickname (empty means Usuario)")
    ap.add_argument("--log-level", default="INFO",
                    choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging verbosity")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Imported here so --help works without a display
    from .ui import ChatUI

    ui = ChatUI(initial_name=args.name)
    logging.getLogger(__name__).info("connecting to %s", args.url)
    ui.start(args.url)
    ui.mainloop()


if __name__ == "__main__":
    main()
