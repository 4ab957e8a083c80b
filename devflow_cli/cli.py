#!/usr/bin/env python3
"""
Command-line interface for DevFlow.
This module provides the entry point for the 'devflow' command.
"""

import os
import argparse
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from devflow import (
    DEFAULT_BASE_URL,
    DEFAULT_MODEL,
    LOGS_FOLDER,
    MAX_LOG_FILES,
    STATE_FILE,
    CompletionClient,
    DevFlowSession,
    FileLogger,
    Intent,
    JsonFileStore,
    OutputDisplay,
    PackageExplorerDisplay,
)

VIEWS = {
    "output": OutputDisplay,
    "tree": PackageExplorerDisplay,
}


def build_parser():
    """Build the argument parser for the 'devflow' command."""
    parser = argparse.ArgumentParser(description="DevFlow - AI project setup in your terminal")

    parser.add_argument(
        "request",
        nargs="*",
        help="What to set up (in quotes). Starts interactive mode when omitted"
    )
    parser.add_argument(
        "--shortcuts",
        action="store_true",
        help="Ask for editor shortcut and extension suggestions instead of setup commands"
    )

    # History and key management
    state_group = parser.add_argument_group('State Management')
    state_group.add_argument(
        "--clear-history",
        action="store_true",
        help="Clear the response history and exit"
    )
    state_group.add_argument(
        "--show-history",
        action="store_true",
        help="Show the response history and exit"
    )
    state_group.add_argument(
        "--reset-key",
        action="store_true",
        help="Forget the stored OpenAI API key and exit"
    )
    state_group.add_argument(
        "--state-file",
        type=str,
        default=None,
        help=f"Path of the state file (default: {STATE_FILE})"
    )

    # API options
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help=f"Completion model (default: $OPENAI_MODEL or {DEFAULT_MODEL})"
    )
    parser.add_argument(
        "--base-url",
        type=str,
        default=None,
        help=f"API base URL (default: $OPENAI_BASE_URL or {DEFAULT_BASE_URL})"
    )

    # Output and logging options
    parser.add_argument(
        "--view",
        choices=sorted(VIEWS),
        default=None,
        help="How to show responses - 'output' panel or 'tree' package explorer"
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to the environment file (default: .env)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    parser.add_argument(
        "--logs-dir",
        type=str,
        default=str(LOGS_FOLDER),
        help="Directory where session logs are stored"
    )
    parser.add_argument(
        "--max-logs",
        type=int,
        default=MAX_LOG_FILES,
        help="Maximum number of log files to keep"
    )
    parser.add_argument(
        "--show-log",
        action="store_true",
        help="Display the log after completion when running in one-shot mode"
    )
    return parser


def build_session(args, logger=None):
    """Create a DevFlowSession from parsed arguments and the environment."""
    state_file = args.state_file or os.getenv("DEVFLOW_STATE_FILE") or str(STATE_FILE)
    view = args.view or os.getenv("DEVFLOW_VIEW", "output")
    if view not in VIEWS:
        view = "output"

    client = CompletionClient(
        model=args.model or os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
        base_url=args.base_url or os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URL),
    )

    if logger is None:
        logger = FileLogger(logs_folder=Path(args.logs_dir), max_log_files=args.max_logs)

    return DevFlowSession(
        store=JsonFileStore(state_file),
        display=VIEWS[view](),
        client=client,
        logger=logger,
        debug=args.debug,
    )


def main(argv=None):
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)
    console = Console()

    # Load custom environment variables if specified
    if args.env_file and Path(args.env_file).exists():
        if args.debug:
            console.print(f"[dim]Loading environment from {args.env_file}[/dim]")
        load_dotenv(args.env_file, override=True)

    session = build_session(args)

    if args.reset_key:
        session.reset_api_key()
        return

    if args.clear_history:
        session.clear_history()
        return

    if args.show_history:
        session.show_history()
        return

    intent = Intent.SHORTCUTS if args.shortcuts else None
    request = " ".join(args.request).strip()

    if request or args.shortcuts:
        console.print("[bold green]DevFlow[/bold green]")
        if request:
            console.print(f"[bold]Request:[/bold] {request}", highlight=False)
        console.print("=" * 50)

        session.configure_and_run(request or "shortcuts", intent=intent)

        console.print("\n" + "=" * 50)
        console.print(f"[dim]Log file: {session.logger.log_file}[/dim]")

        if args.show_log:
            console.print(Panel(Text(session.logger.get_conversation_history()),
                                title=f"Log File: {session.logger.log_file}", expand=False))
    else:
        # Run in interactive mode
        session.run()


if __name__ == "__main__":
    main()
