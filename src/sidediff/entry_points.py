import argparse
import signal
import sys

from textual.app import App

from sidediff.errors import FetchError
from sidediff.screens.diff_viewer import DiffViewerScreen
from sidediff.session.session import Session
from sidediff.sources.factory import create_source
from sidediff.utils.config import ConfigError, SourceConfig
from sidediff.utils.error_handling import describe_error
from sidediff.utils.logger import log
from sidediff.utils.validation import ValidationError, validate_source_config


def _ignore_further_interrupts():
    """Install a signal handler that ignores further SIGINT signals."""

    def ignore_signal(signum, frame):
        pass

    try:
        signal.signal(signal.SIGINT, ignore_signal)
    except (OSError, ValueError):
        pass


class SideDiffApp(App):
    BINDINGS = []
    DEFAULT_CSS = """
    App {
        background: $surface-darken-3;
    }

    Screen {
        background: $surface-darken-3;
        width: 100%;
        height: 100%;
    }
    """

    def __init__(self, session: Session):
        """Initialize the viewer application.

        Args:
            session: A started session
        """
        super().__init__()
        self.theme = "textual-dark"
        self.session = session

    def on_mount(self):
        self.push_screen(DiffViewerScreen(self.session))


def _create_argument_parser():
    """Create and configure the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="sidediff",
        description="Side-by-side git diff viewer with live refresh",
    )
    parser.add_argument(
        'ref',
        nargs='?',
        help='Commit or range to show (HEAD~1, main..dev, main...dev); default: working tree',
    )
    parser.add_argument('--base', type=str, help='Base branch for a branch comparison (default: main)')
    parser.add_argument('--head', type=str, help='Head branch for a branch comparison (default: current branch)')
    parser.add_argument('--two-dot', action='store_true', help='Compare branches directly instead of from the merge base')
    parser.add_argument('--pr', type=str, help='Pull request: 123, #123, owner/repo#123 or a URL')
    parser.add_argument('--repo', type=str, help='Repository directory (default: current directory)')
    parser.add_argument('--path', action='append', help='Limit the diff to this path (repeatable)')
    parser.add_argument('--no-watch', action='store_true', help='Do not refresh on changes')
    parser.add_argument('--poll-interval', type=float, help='Seconds between pull request polls')
    parser.add_argument('--token', type=str, help='GitHub token (default: GITHUB_TOKEN / GH_TOKEN)')
    parser.add_argument(
        '--remember-positions',
        action='store_true',
        help='Restore the cursor of a file when returning to it',
    )
    return parser


def _build_configuration(args) -> SourceConfig:
    """Merge CLI arguments with the environment and validate the result."""
    try:
        return validate_source_config(SourceConfig.from_args(args).merge_with_env())
    except (ValidationError, ConfigError) as e:
        log(f"Configuration validation failed: {e}")
        sys.stderr.write(f"Configuration Error: {e}\n")
        sys.stderr.write("Use --help for usage information.\n")
        sys.exit(2)


def _start_session(source_config: SourceConfig) -> Session:
    """Create the source and run the first fetch; failures end the program."""
    try:
        source = create_source(source_config)
    except ValidationError as e:
        sys.stderr.write(f"Error: {e}\n")
        sys.exit(1)

    session = Session(
        source,
        watch=source_config.watch,
        remember_positions=source_config.remember_positions,
        poll_interval=source_config.poll_interval,
    )
    try:
        session.start()
    except FetchError as e:
        log.error(f"Initial fetch of {source.describe()} failed: {e}")
        sys.stderr.write(f"Error: {describe_error(e)}\n")
        session.close()
        sys.exit(1)
    return session


def run(source_config: SourceConfig) -> None:
    session = _start_session(source_config)
    # Console logging would corrupt the terminal while the UI is up
    log.set_console_output(False)
    try:
        SideDiffApp(session).run()
    except KeyboardInterrupt:
        log("Viewer stopped by user (KeyboardInterrupt)")
        _ignore_further_interrupts()
    finally:
        session.close()
        log.set_console_output(True)


def main():
    """Main entry point for sidediff."""
    parser = _create_argument_parser()
    args = parser.parse_args()
    run(_build_configuration(args))


if __name__ == "__main__":
    main()
