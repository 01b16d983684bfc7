"""
emu_cli.py

Command-line interface for emu_core.Detector
"""

import argparse
import logging
import sys

from emu_core import Detector, DetectionReport, RuntimeContext
from emu_sysinfo import HostInfoProvider

# ANSI color codes
class Colors:
    HEADER = '\033[95m'
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    @staticmethod
    def disable():
        Colors.HEADER = ''
        Colors.OKBLUE = ''
        Colors.OKCYAN = ''
        Colors.OKGREEN = ''
        Colors.WARNING = ''
        Colors.FAIL = ''
        Colors.ENDC = ''
        Colors.BOLD = ''
        Colors.DIM = ''

# Mojis
ICON_CHECK = "✓"
ICON_CROSS = "✗"
ICON_WARNING = "⚠"
ICON_INFO = "ℹ"

ERROR_PREFIXES = ("Error retrieving ", "Error running ", "Timed out waiting for ")

def print_box(title, content=None, color=Colors.OKBLUE):
    """We print our content in a nice pretty box"""
    width = 60
    print(f"\n{color}{'━' * width}{Colors.ENDC}")
    print(f"{color}{Colors.BOLD}  {title}{Colors.ENDC}")
    print(f"{color}{'━' * width}{Colors.ENDC}")
    if content:
        print(content)

def is_error_text(text: str) -> bool:
    return text.startswith(ERROR_PREFIXES)

def format_evidences(report: DetectionReport) -> str:
    if not report.evidences:
        return f"{Colors.OKGREEN}{ICON_CHECK} No virtualization indicators found{Colors.ENDC}"

    lines = []
    for ev in report.evidences:
        if is_error_text(ev.text):
            lines.append(f"  {Colors.DIM}{ICON_INFO} {ev.text}{Colors.ENDC}")
        else:
            lines.append(f"  {Colors.FAIL}{ICON_CROSS}{Colors.ENDC} {ev.text}")
    return "\n".join(lines)

def print_report(report: DetectionReport) -> None:
    print_box("EMULATOR DETECTION RESULTS", color=Colors.HEADER)
    if report.is_emulator:
        print(f"\n{Colors.FAIL}{Colors.BOLD}{ICON_WARNING} Emulated / virtualized environment{Colors.ENDC}")
    else:
        print(f"\n{Colors.OKGREEN}{Colors.BOLD}{ICON_CHECK} Physical host (no indicators){Colors.ENDC}")
    print(f"  Operating system: {Colors.BOLD}{report.os}{Colors.ENDC}")

    errors = sum(1 for ev in report.evidences if is_error_text(ev.text))
    if errors:
        print(f"\n{Colors.DIM}{ICON_INFO} Note: {errors} source(s) could not be queried "
              f"(does NOT imply bare metal){Colors.ENDC}")

    print_box("EVIDENCE", color=Colors.OKBLUE)
    print(format_evidences(report))
    print()


def setup_logging(debug: bool) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    root_logger.handlers.clear()
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root_logger.addHandler(console_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Emulator / VM / container detection CLI")
    parser.add_argument("--debug", action="store_true", help="Log every probe to stderr")
    parser.add_argument("--log", action="store_true", help="Alias for --debug")
    parser.add_argument("--raw-json", action="store_true", help="Print the JSON report and exit")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--parallel", action="store_true", help="Run probes concurrently")
    parser.add_argument("--timeout", type=float, default=None, metavar="SECONDS",
                        help="Deadline for the whole detection run. Late probes are reported "
                             "as timed out, but the process still waits for them before exiting")
    parser.add_argument("--packaged", action="store_true",
                        help="Treat this as a packaged / production install (pip console scripts are not frozen)")
    parser.add_argument("--exit-code", action="store_true",
                        help="Exit with status 1 when an emulator is detected")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.no_color or not sys.stdout.isatty():
        Colors.disable()
    setup_logging(args.debug or args.log)

    ctx = RuntimeContext.from_process(is_packaged=True if args.packaged else None)
    det = Detector(parallel=args.parallel, timeout=args.timeout)
    report = det.detect(ctx, HostInfoProvider(ctx.platform))

    if args.raw_json:
        print(report.to_json())
    else:
        print_report(report)

    if args.exit_code and report.is_emulator:
        return 1
    return 0



if __name__ == "__main__":
    sys.exit(main())
