import argparse
import json
import sys
import logging
import signal
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, TextIO

from dotenv import load_dotenv

from fulltrack.application.search import SearchController
from fulltrack.application.search_bar import SearchBar
from fulltrack.application.state import AppState
from fulltrack.application.track_card import FALLBACK_NOTICE, TrackCard, mount_cards
from fulltrack.crosscutting.config import ConfigError, LOG_LEVELS, Settings, load_settings
from fulltrack.crosscutting.logging import setup_logging
from fulltrack.domain.entities import Source
from fulltrack.domain.errors import FullTrackError
from fulltrack.infrastructure.backend import HttpBackend

EMPTY_NOTICE = 'Search for music from Jamendo, SoundCloud, Audiomack, and Internet Archive.'
META_USAGE = 'Usage: :meta on|off'
SWITCH_ON = ('on', 'true', '1')
SWITCH_OFF = ('off', 'false', '0')


def parse_switch(words: List[str]) -> Optional[bool]:
    """Read a single on/off word; anything else is None."""
    if len(words) != 1:
        return None
    word = words[0].lower()
    if word in SWITCH_ON:
        return True
    if word in SWITCH_OFF:
        return False
    return None


def render_card(card: TrackCard) -> str:
    """Render one card as a few lines of plain text."""
    lines = [card.track.title or '(untitled)', f"  {card.artist_label}"]
    badges = card.badges()
    if badges:
        lines.append('  ' + ' '.join(f"[{badge}]" for badge in badges))
    if card.audio_url:
        lines.append(f"  > {card.audio_url}")
    else:
        lines.append(f"  ! {card.notice}")
    return '\n'.join(lines)


def render_results(state: AppState, cards: List[TrackCard]) -> str:
    if state.loading:
        return 'Searching…'
    if state.show_empty_notice:
        return EMPTY_NOTICE
    return '\n\n'.join(render_card(card) for card in cards)


class CLI:
    """Command Line Interface for FullTrack."""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        """Initialize CLI."""
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.parser = self._create_parser()
        self._start_time = None
        self._backends: List[HttpBackend] = []

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            '--log-level',
            choices=list(LOG_LEVELS),
            default=None,
            help='Set logging level (default from FULLTRACK_LOG_LEVEL or INFO)'
        )
        common.add_argument(
            '--backend-url',
            default=None,
            help='Backend base URL (default from FULLTRACK_BACKEND_URL or http://localhost:8000)'
        )

        parser = argparse.ArgumentParser(
            prog='fulltrack',
            description='Search full, legally streamable tracks across music providers'
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        search_parser = subparsers.add_parser('search', parents=[common], help='Search tracks')
        search_parser.add_argument('query', help='Search text (at least 2 characters)')
        search_parser.add_argument(
            '--allow-metadata-only',
            action='store_true',
            help='Ask the backend to include metadata-only results (previews)'
        )
        search_parser.add_argument(
            '--json',
            action='store_true',
            help='Print results as JSON'
        )
        search_parser.add_argument(
            '--no-resolve',
            action='store_true',
            help='Do not resolve proxied stream URLs'
        )

        stream_parser = subparsers.add_parser('stream', parents=[common],
                                              help='Resolve a proxied stream URL')
        stream_parser.add_argument('--url', required=True, help='Provider stream or download URL')
        stream_parser.add_argument('--provider', required=True, help='Provider name, e.g. Jamendo')

        shell_parser = subparsers.add_parser('shell', parents=[common], help='Interactive search')
        shell_parser.add_argument(
            '--allow-metadata-only',
            action='store_true',
            help='Start with metadata-only results allowed'
        )

        serve_parser = subparsers.add_parser('serve', parents=[common], help='Run the web page')
        serve_parser.add_argument('--host', default='localhost', help='Bind address')
        serve_parser.add_argument('--port', type=int, default=5173, help='Port (default: 5173)')
        serve_parser.add_argument('--debug', action='store_true', help='Enable Flask debug mode')

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down")
            sys.exit(130)

        signal.signal(signal.SIGTERM, signal_handler)

    def _load_settings(self, args: argparse.Namespace) -> Settings:
        return load_settings().with_overrides(
            backend_url=args.backend_url,
            log_level=args.log_level,
        )

    def _create_backend(self, settings: Settings) -> HttpBackend:
        backend = HttpBackend(settings.backend_url, timeout=settings.timeout)
        self._backends.append(backend)
        return backend

    def _print(self, text: str = '') -> None:
        print(text, file=self.stdout)

    def _search(self, args: argparse.Namespace, settings: Settings) -> int:
        """One-shot search."""
        backend = self._create_backend(settings)
        controller = SearchController(backend)
        controller.set_allow_metadata_only(args.allow_metadata_only)
        state = controller.submit(args.query)

        if args.no_resolve:
            cards = [TrackCard(track, backend) for track in state.results]
        else:
            with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
                cards = mount_cards(state.results, backend, executor, timeout=settings.timeout)

        if args.json:
            self._print(json.dumps({
                'status': state.status.value,
                'query': state.query,
                'allow_metadata_only': state.allow_metadata_only,
                'results': [card.to_json() for card in cards],
            }, indent=2, ensure_ascii=False))
        else:
            self._print(render_results(state, cards))
        return 0

    def _stream(self, args: argparse.Namespace, settings: Settings) -> int:
        """Resolve one source through the stream proxy."""
        logger = logging.getLogger(__name__)
        backend = self._create_backend(settings)
        source = Source(provider_name=args.provider, stream_url=args.url)
        try:
            proxied_url = backend.resolve_stream(source)
        except FullTrackError as e:
            logger.error(f"Failed to resolve stream: {e}")
            self._print(f"! {FALLBACK_NOTICE}")
            return 1
        self._print(proxied_url)
        return 0

    def _shell(self, args: argparse.Namespace, settings: Settings) -> int:
        """Interactive loop: every line is typed into the search bar and submitted."""
        backend = self._create_backend(settings)
        controller = SearchController(backend)
        controller.set_allow_metadata_only(args.allow_metadata_only)

        with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
            def on_search(text: str) -> None:
                previous = controller.state
                state = controller.submit(text)
                if state is previous:
                    return
                cards = mount_cards(state.results, backend, executor, timeout=settings.timeout)
                self._print(render_results(state, cards))

            search_bar = SearchBar(on_search)
            self._print(f"{EMPTY_NOTICE} Type ':meta on|off' to toggle previews, ':quit' to exit.")
            for line in self._prompt_lines():
                command = line.strip()
                if command == ':quit':
                    break
                words = command.split()
                if words and words[0] == ':meta':
                    enabled = parse_switch(words[1:])
                    if enabled is None:
                        self._print(META_USAGE)
                        continue
                    controller.set_allow_metadata_only(enabled)
                    self._print(f"Metadata-only results {'allowed' if enabled else 'excluded'}.")
                    continue
                search_bar.change(line)
                search_bar.key_press('Enter')
        return 0

    def _prompt_lines(self) -> Iterable[str]:
        while True:
            self.stdout.write('search> ')
            self.stdout.flush()
            line = self.stdin.readline()
            if not line:
                return
            yield line.rstrip('\n')

    def _serve(self, args: argparse.Namespace, settings: Settings) -> int:
        from fulltrack.interfaces.http import HTTPServer
        server = HTTPServer(host=args.host, port=args.port, debug=args.debug, settings=settings)
        server.run()
        return 0

    def _cleanup_resources(self) -> None:
        """Clean up resources on exit."""
        logger = logging.getLogger(__name__)
        while self._backends:
            self._backends.pop().close()
        if self._start_time:
            duration = time.time() - self._start_time
            logger.debug(f"CLI execution time: {duration:.2f}s")

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return its exit code."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)

        try:
            args = self.parser.parse_args(argv)

            if not args.command:
                self.parser.print_help()
                return 1

            settings = self._load_settings(args)
            setup_logging(settings.log_level, settings.log_format)

            if args.command == 'search':
                return self._search(args, settings)
            if args.command == 'stream':
                return self._stream(args, settings)
            if args.command == 'shell':
                return self._shell(args, settings)
            if args.command == 'serve':
                return self._serve(args, settings)

            self.parser.print_help()
            return 1

        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
            print(f"Configuration error: {e}", file=sys.stderr)
            return 1
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    load_dotenv()
    cli = CLI()
    cli._setup_signal_handlers()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
