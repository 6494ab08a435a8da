"""Command-line entry point for tabsense."""

import argparse
import asyncio
import json
import sys
from typing import Optional

from .config import Config
from .errors import SessionError
from .logging import get_debug_log_contents, get_debug_log_path, get_filtered_logs, setup_logging
from .page import TextFilePageSource
from .panel import Panel
from .progress import ProgressUpdate


def print_status(update: ProgressUpdate) -> None:
    """Show status updates on stderr so stdout stays pipeable."""
    print(f"[{update.stage}] {update.message}", file=sys.stderr)


async def run_command(args: argparse.Namespace, config: Config) -> int:
    """Run one subcommand against a fresh panel."""
    panel = Panel.from_config(config, on_status=print_status)
    try:
        await panel.restore()

        if args.command == "status":
            await panel.manager.check_availability()
            status = panel.status()
            print(f"State:     {status['state']}")
            print(f"Model:     {config.ollama.model} ({status['availability'] or 'unknown'})")
            print(f"Retries:   {status['retry_count']}/{status['max_retries']}")
            if status["last_error"]:
                print(f"Error:     {status['last_error']}")
            return 0

        if args.command == "prepare":
            readiness = await panel.ensure_ready()
            if readiness.retry_cap_exceeded:
                print("Warning: retry limit exceeded", file=sys.stderr)
            if not readiness.ok:
                print(f"Error: {readiness.error.guidance if readiness.error else readiness.state.name}", file=sys.stderr)
                return 1
            print("Model ready.")
            return 0

        if args.command == "summarize":
            page = TextFilePageSource(args.file, language=args.language)
            print(await panel.summarize_page(page, exhaustive=args.exhaustive))
            return 0

        if args.command == "translate":
            print(await panel.translate(args.text, args.source, args.target))
            return 0

        if args.command == "ask":
            print(await panel.ask(args.prompt, language=args.language))
            return 0

        raise ValueError(f"Unknown command: {args.command}")

    except SessionError as e:
        print(f"Error: {e.guidance}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await panel.close()


def debug_dump(args: argparse.Namespace) -> int:
    if args.component or args.level or args.attempt is not None:
        content = get_filtered_logs(args.component, args.level, args.lines, args.attempt)
    else:
        content = get_debug_log_contents(args.lines)

    if args.raw:
        # Raw output for piping to jq/grep
        print(content, end="")
    else:
        print(f"# Debug log: {get_debug_log_path()}")
        print("# Tip: Use --raw | jq for JSON parsing")
        print()
        print(content, end="")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabsense",
        description="tabsense - on-device page summaries, translation and chat",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show model availability and retry state")
    subparsers.add_parser("prepare", help="Download the model if needed and create a session")

    summarize_parser = subparsers.add_parser("summarize", help="Summarize a text file")
    summarize_parser.add_argument("file", help="Path to a UTF-8 text file")
    summarize_parser.add_argument(
        "--exhaustive",
        action="store_true",
        help="Allow map-reduce over the whole text when shorter stages fail",
    )
    summarize_parser.add_argument("--language", help="Language tag of the text (e.g. es, ja-JP)")

    translate_parser = subparsers.add_parser("translate", help="Translate text")
    translate_parser.add_argument("text")
    translate_parser.add_argument("--source", required=True, help="Source language tag")
    translate_parser.add_argument("--target", required=True, help="Target language tag")

    ask_parser = subparsers.add_parser("ask", help="Ask the model a question")
    ask_parser.add_argument("prompt")
    ask_parser.add_argument("--language", help="Language of the prompt (detected if omitted)")

    debug_parser = subparsers.add_parser("debug-dump", help="Dump debug logs for troubleshooting")
    debug_parser.add_argument(
        "--raw",
        action="store_true",
        help="Output raw JSON lines (for piping to tools)",
    )
    debug_parser.add_argument("--component", help="Only entries from this component")
    debug_parser.add_argument("--level", help="Only entries at this level (e.g. ERROR)")
    debug_parser.add_argument("--attempt", type=int, help="Only entries from this download attempt")
    debug_parser.add_argument("--lines", type=int, default=200, help="Number of lines to show")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    if args.command == "debug-dump":
        sys.exit(debug_dump(args))

    config = Config.load(args.config)
    if args.debug:
        config.logging.level = "DEBUG"

    setup_logging(
        config,
        console_level=config.logging.level,
        debug_to_file=config.logging.debug_to_file,
        use_colors=config.logging.use_colors,
    )

    try:
        code = asyncio.run(run_command(args, config))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
