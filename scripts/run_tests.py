"""
Run the EnhanceMD test suite and keep a copy of the output.

    python scripts/run_tests.py                 # everything
    python scripts/run_tests.py -k pipeline     # only matching tests
    python scripts/run_tests.py --log out.log -- -x
"""

import argparse
import datetime
import platform
import sys
from pathlib import Path

import pytest

# Add project root to sys.path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from enhancemd.version_info import __version__  # noqa: E402

TESTS_DIR = PROJECT_ROOT / 'tests'
DEFAULT_LOG = TESTS_DIR / 'latest_results.log'
RULE = "=" * 60


class TeeStream:
    """Mirror writes to the console and the results log."""

    def __init__(self, console, log):
        self.console = console
        self.log = log

    def write(self, text):
        self.console.write(text)
        self.log.write(text)
        return len(text)

    def flush(self):
        self.console.flush()
        self.log.flush()

    def isatty(self):
        return False


def pytest_args(options):
    args = ["-ra", str(TESTS_DIR)]
    args.insert(0, "-q" if options.quiet else "-v")
    if options.keyword:
        args += ["-k", options.keyword]
    return args + options.pytest_args


def run_suite(options) -> int:
    log_path = Path(options.log)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    args = pytest_args(options)
    print(f"EnhanceMD v{__version__}: pytest {' '.join(args)}")
    print(f"Results log: {log_path}")

    with open(log_path, 'w', encoding='utf-8') as log:
        log.write(f"EnhanceMD v{__version__} test run {datetime.datetime.now():%Y-%m-%d %H:%M:%S}\n")
        log.write(f"Python {platform.python_version()} on {platform.system()}\n{RULE}\n\n")

        saved = sys.stdout, sys.stderr
        sys.stdout = TeeStream(saved[0], log)
        sys.stderr = TeeStream(saved[1], log)
        try:
            exit_code = int(pytest.main(args))
        finally:
            sys.stdout, sys.stderr = saved

        log.write(f"\n{RULE}\nExit code: {exit_code}\n")
    return exit_code


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Run the EnhanceMD test suite')
    parser.add_argument('-k', dest='keyword', help='Only run tests matching this pytest expression')
    parser.add_argument('--log', default=str(DEFAULT_LOG), help=f'Results log (default: {DEFAULT_LOG})')
    parser.add_argument('-q', '--quiet', action='store_true', help='Less verbose pytest output')
    parser.add_argument('pytest_args', nargs=argparse.REMAINDER, help='Extra arguments passed to pytest after --')
    options = parser.parse_args(argv)
    if options.pytest_args and options.pytest_args[0] == '--':
        options.pytest_args = options.pytest_args[1:]
    return run_suite(options)


if __name__ == "__main__":
    sys.exit(main())
