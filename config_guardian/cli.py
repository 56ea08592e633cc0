"""
Command-line interface for Config Guardian.
"""
import argparse
import logging
import os
import signal
import sys
from typing import List, Optional

import yaml

from . import __version__
from .baseline import ManifestBuilder, validate_root
from .config import Config
from .core import GuardianError, WatchError
from .diff import diff_manifests
from .handlers import CompositeSink, ConsoleSink, EventLogSink, ReportSink
from .store import ManifestStore
from .utils import excludes_for, format_size
from .watcher import WatchLoop

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DRIFT = 3


class GuardianCLI:
    """Command-line interface for snapshotting and checking configuration drift."""

    def __init__(self, stream=None):
        """Initialize the CLI.

        Args:
            stream: Output stream for command results (default: sys.stdout)
        """
        self.parser = self._create_parser()
        self.stream = stream
        self.loop: Optional[WatchLoop] = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser.

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            prog='config-guardian',
            description='Detect configuration drift in files.',
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )

        # Global arguments
        parser.add_argument(
            '--config',
            type=str,
            default=None,
            help='Path to a YAML configuration file'
        )
        parser.add_argument(
            '--log-level',
            type=str,
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
            default=None,
            help='Logging level (overrides the configuration file)'
        )
        parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

        # Subcommands
        subparsers = parser.add_subparsers(dest='command', help='Command to run')

        snapshot_parser = subparsers.add_parser('snapshot', help='Take a snapshot of configuration files')
        snapshot_parser.add_argument('directory', nargs='?', default='.', metavar='DIRECTORY')

        compare_parser = subparsers.add_parser('compare', help='Compare current files with the last snapshot')
        compare_parser.add_argument('directory', nargs='?', default='.', metavar='DIRECTORY')
        compare_parser.add_argument(
            '--fail-on-drift',
            action='store_true',
            help=f'Exit with status {EXIT_DRIFT} when drift is detected'
        )

        monitor_parser = subparsers.add_parser('monitor', help='Monitor directory for changes and detect drift')
        monitor_parser.add_argument('directory', nargs='?', default='.', metavar='DIRECTORY')
        monitor_parser.add_argument(
            '--debounce',
            type=float,
            default=None,
            metavar='SECONDS',
            help='Quiet period after the last change before comparing'
        )

        status_parser = subparsers.add_parser('status', help='Show statistics about the stored snapshot')
        status_parser.add_argument('directory', nargs='?', default='.', metavar='DIRECTORY')

        return parser

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """Parse command-line arguments.

        Args:
            args: Command-line arguments (default: sys.argv[1:])

        Returns:
            Parsed arguments
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI.

        Args:
            args: Command-line arguments (default: sys.argv[1:])

        Returns:
            Exit code
        """
        parsed_args = self.parse_args(args)

        if not parsed_args.command:
            self.parser.print_help(self.stream)
            return EXIT_OK

        try:
            self.config = Config(parsed_args.config)
            self._setup_logging(parsed_args.log_level)

            handler = getattr(self, f'handle_{parsed_args.command}')
            return handler(parsed_args)
        except GuardianError as e:
            logger.error(f"Error: {e}")
            logger.debug("Detailed error:", exc_info=True)
            return EXIT_ERROR
        except yaml.YAMLError as e:
            logger.error(f"Error: invalid configuration file: {e}")
            return EXIT_ERROR

    def _setup_logging(self, level: Optional[str]) -> None:
        logging.basicConfig(
            level=level or self.config.get('logging.level', 'INFO'),
            format=self.config.get('logging.format')
        )
        if level:
            logging.getLogger().setLevel(level)

    def _print(self, line: str = '') -> None:
        print(line, file=self.stream or sys.stdout)

    def _open_store(self) -> ManifestStore:
        return ManifestStore(self.config.section('store'))

    def _open_sink(self) -> ReportSink:
        return CompositeSink([
            ConsoleSink(stream=self.stream),
            EventLogSink({
                'log_file': self.config.get('logging.file'),
                'format': '%(asctime)s - %(levelname)s - %(message)s',
            }),
        ])

    def _make_builder(self, root: str, store: ManifestStore, sink: ReportSink) -> ManifestBuilder:
        """Create a builder that never records the tool's own files."""
        builder_config = self.config.section('builder')
        builder_config['exclude_patterns'] = (
            list(builder_config.get('exclude_patterns') or [])
            + excludes_for(root, [store.directory, self.config.get('logging.file')])
        )
        return ManifestBuilder(builder_config, sink=sink)

    # -- commands -------------------------------------------------------------

    def handle_snapshot(self, args: argparse.Namespace) -> int:
        """Build a manifest of the directory and store it as the new baseline."""
        root = validate_root(args.directory)
        logger.info(f"Taking snapshot of directory: {root}")
        store = self._open_store()

        with self._open_sink() as sink:
            manifest = self._make_builder(root, store, sink).build(root)

        if not manifest.entries:
            self._print(f"Warning: Directory {root} is empty.")
        path = store.save(manifest)
        self._print(f"Snapshot taken and saved to {path} ({len(manifest)} files)")
        return EXIT_OK

    def handle_compare(self, args: argparse.Namespace) -> int:
        """Compare the directory against its baseline once."""
        root = validate_root(args.directory)
        logger.info(f"Comparing directory: {root}")
        store = self._open_store()
        baseline = store.load(root)

        with self._open_sink() as sink:
            current = self._make_builder(root, store, sink).build(root)
            report = diff_manifests(baseline, current)
            sink(report, root)

        if report.has_drift and args.fail_on_drift:
            return EXIT_DRIFT
        return EXIT_OK

    def handle_monitor(self, args: argparse.Namespace) -> int:
        """Watch the directory and compare after every burst of changes."""
        root = validate_root(args.directory)
        monitor_config = self.config.section('monitor')
        if args.debounce is not None:
            monitor_config['debounce_seconds'] = args.debounce

        store = self._open_store()
        with self._open_sink() as sink:
            self.loop = WatchLoop(
                root,
                store,
                self._make_builder(root, store, sink),
                sink,
                config=monitor_config,
            )
            previous = self._install_signal_handlers()
            self._print(f"Monitoring {root} for changes... (Press Ctrl+C to stop)")
            try:
                self.loop.run()
            except WatchError as e:
                logger.critical(f"Monitoring stopped: {e}")
                return EXIT_ERROR
            finally:
                self._restore_signal_handlers(previous)

        self._print("Monitoring stopped.")
        return EXIT_OK

    def handle_status(self, args: argparse.Namespace) -> int:
        """Print statistics about the stored baseline."""
        root = os.path.abspath(args.directory)
        store = self._open_store()
        manifest = store.load(root)

        total_size = sum(record.size or 0 for record in manifest.entries.values())
        file_types = {}
        for path in manifest.entries:
            _, ext = os.path.splitext(path)
            ext = ext.lower() or 'no_extension'
            file_types[ext] = file_types.get(ext, 0) + 1

        self._print(f"Baseline:     {store.path_for(root)}")
        self._print(f"Root:         {manifest.root_path}")
        self._print(f"Taken at:     {manifest.taken_at_iso}")
        self._print(f"Files:        {len(manifest)}")
        self._print(f"Unreadable:   {manifest.unreadable_count}")
        self._print(f"Total size:   {format_size(total_size)}")
        for ext, count in sorted(file_types.items(), key=lambda x: (-x[1], x[0])):
            self._print(f"  {ext}: {count}")
        return EXIT_OK

    # -- signals --------------------------------------------------------------

    def _install_signal_handlers(self) -> dict:
        previous = {}

        def _stop(signum, frame):
            logger.info(f"Received signal {signum}, stopping...")
            if self.loop is not None:
                self.loop.stop()

        for signame in ('SIGINT', 'SIGTERM'):
            signum = getattr(signal, signame, None)
            if signum is None:
                continue
            try:
                previous[signum] = signal.signal(signum, _stop)
            except ValueError:
                # Not running in the main thread
                break
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def main(args: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    return GuardianCLI().run(args)


if __name__ == '__main__':
    sys.exit(main())
