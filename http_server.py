#!/usr/bin/env python3
"""
FullTrack web page runner
"""

from dotenv import load_dotenv

from fulltrack.crosscutting.config import load_settings
from fulltrack.crosscutting.logging import setup_logging
from fulltrack.interfaces.http import HTTPServer


def main():
    """Run the web page against the configured backend."""
    load_dotenv()
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_format)
    server = HTTPServer(
        host='localhost',
        port=5173,
        debug=True,
        settings=settings,
    )
    server.run()


if __name__ == '__main__':
    main()
