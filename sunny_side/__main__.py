"""
Sunny Side - P2P chat and voice without a signaling server
----------------------------------------------------------
Main entry point for the Sunny Side application.
"""
import argparse
import asyncio
import logging
import sys

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Sunny Side - P2P chat and calls via connection codes")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase verbosity (can be used multiple times)")
    parser.add_argument("--role", choices=["initiator", "responder"],
                        help="Choose a role on startup")
    parser.add_argument("--ice-server", action="append", dest="ice_servers", metavar="URL",
                        help="STUN/TURN server URL (repeatable, replaces the defaults)")
    parser.add_argument("--gather-timeout", type=int, metavar="MS",
                        help="Candidate gathering timeout in milliseconds")
    parser.add_argument("--no-gather", action="store_true",
                        help="Do not wait for network candidates")
    parser.add_argument("--no-audio", action="store_true",
                        help="Do not negotiate audio for calls")
    return parser.parse_args(argv)


def build_settings(args) -> Settings:
    overrides = {}
    if args.ice_servers:
        overrides["ICE_SERVERS"] = args.ice_servers
    if args.gather_timeout:
        overrides["GATHER_TIMEOUT_MS"] = args.gather_timeout
    if args.no_gather:
        overrides["GATHER_CANDIDATES"] = False
    if args.no_audio:
        overrides["AUDIO_ENABLED"] = False
    if not overrides:
        return get_settings()
    return Settings(**overrides)


def configure_logging(settings: Settings, verbose: int) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler()])


async def run(settings: Settings, role=None) -> int:
    from .cli import ConsoleFrontend
    from .p2p.session import SessionStateMachine

    session = SessionStateMachine(settings)
    frontend = ConsoleFrontend(session)
    if role:
        await frontend.handle(f"role {role}")
    await frontend.run()
    return 0


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)
    try:
        settings = build_settings(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(settings, args.verbose)
    try:
        return asyncio.run(run(settings, args.role))
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logger.error(f"An error occurred: {e}", exc_info=args.verbose > 0)
        return 1


if __name__ == "__main__":
    sys.exit(main())
