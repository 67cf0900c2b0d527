"""
Command line entry point: convert a single markdown file to PDF.
"""

import argparse
import sys
from typing import List, Optional

from colorama import Fore, Style
from dotenv import find_dotenv, load_dotenv

from .config import Config
from .converter import MarkdownConverter
from .dependencies import check_dependencies, install_browser
from .errors import ConversionError, MarginError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="markdown-mermaid-pdf",
        description="Convert a markdown file with Mermaid diagrams to PDF",
    )
    parser.add_argument("input", nargs="?", help="Markdown file to convert")
    parser.add_argument("-o", "--output", default=None, help="Output PDF path (default: input path with .pdf suffix)")
    parser.add_argument("--margins", default=None,
                        help="Page margins in CSS format (default: '1in'). Range: 0-3 inches. "
                             "Use 1, 2, or 4 values. Units: in, cm, mm, pt, px")
    parser.add_argument("--format", dest="page_format", default=None, help="Paper format (default: A4)")
    parser.add_argument("--mermaid-url", default=None, help="URL of the Mermaid script to load")
    parser.add_argument("--mermaid-js", default=None, help="Local Mermaid script to inline instead of fetching it")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Seconds to wait for Mermaid to become available (default: 10)")
    parser.add_argument("--save-html", action="store_true", help="Save the intermediate HTML next to the PDF")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging and the in-page progress banner")
    parser.add_argument("--no-logging", action="store_true", help="Disable logging")
    parser.add_argument("--check", action="store_true", help="Check that Playwright and Chromium are installed and exit")
    parser.add_argument("--install-browser", action="store_true", help="Install Playwright Chromium and exit")
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    cli_config = {
        "page_margins": args.margins,
        "page_format": args.page_format,
        "mermaid_script_url": args.mermaid_url,
        "mermaid_script_path": args.mermaid_js,
        "renderer_timeout": args.timeout,
    }
    if args.save_html:
        cli_config["save_html"] = True
    if args.debug:
        cli_config["debug"] = True
    if args.no_logging:
        cli_config["logging_enabled"] = False
    return Config(cli_config)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Settings may also come from a .env file in the working directory
    load_dotenv(find_dotenv(usecwd=True))
    try:
        config = config_from_args(args)
        logger = config.create_logger()
    except ValueError as e:
        print(f"{Fore.RED}[ERROR]{Style.RESET_ALL} {e}", file=sys.stderr)
        return 1

    if args.install_browser:
        return 0 if install_browser(logger) else 1
    if args.check:
        return 0 if check_dependencies(logger) else 1
    if not args.input:
        parser.error("the input markdown file is required")

    try:
        converter = MarkdownConverter(config, logger)
    except (MarginError, OSError, ValueError) as e:
        print(f"{Fore.RED}[ERROR]{Style.RESET_ALL} {e}", file=sys.stderr)
        return 1

    try:
        result = converter.convert_file(args.input, args.output)
    except ConversionError as e:
        print(f"{Fore.RED}✗ {args.input}: {e.message}{Style.RESET_ALL}", file=sys.stderr)
        return 1

    outcome = result.outcome
    print(f"{Fore.GREEN}✓ {result.name} → {result.output_path}{Style.RESET_ALL}")
    print(f"{Fore.BLUE}  Diagrams: {outcome.total} total, {outcome.rendered} rendered, "
          f"{outcome.failed} failed; {result.pages} page(s){Style.RESET_ALL}")
    print(f"{Fore.BLUE}  Timing: {result.timing.summary()}{Style.RESET_ALL}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
