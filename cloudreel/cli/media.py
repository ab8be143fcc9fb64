"""Command line front-end for CloudReel."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Awaitable, Callable, Optional, Sequence

from cloudreel.backend.common.errors import AuthFailure
from cloudreel.backend.common.logging import init_logging
from cloudreel.backend.common.notifications import Notification
from cloudreel.backend.media_session import MediaSession
from cloudreel.backend.player.controller import PlaybackState
from cloudreel.config.settings import get_settings, update_library_roots

from ._utils import build_subparser, exit_with_error, print_json, require_subcommand, run

SessionHandler = Callable[[MediaSession, argparse.Namespace], Awaitable[Any]]


def _echo_notification(notification: Notification) -> None:
    prefix = "FATAL" if notification.fatal else notification.level.value.upper()
    sys.stderr.write(f"[{prefix}] {notification.source}: {notification.message}\n")


async def _with_session(handler: SessionHandler, args: argparse.Namespace) -> Any:
    session = MediaSession.from_settings()
    session.notifier.subscribe(_echo_notification)
    try:
        await session.start()
    except AuthFailure as exc:
        await session.teardown()
        exit_with_error(f"{exc}. Update the refresh token and try again.")
    try:
        return await handler(session, args)
    finally:
        await session.teardown()


def _session_command(handler: SessionHandler) -> Callable[[argparse.Namespace], None]:
    def _run(args: argparse.Namespace) -> None:
        result = run(_with_session(handler, args))
        if result is not None:
            print_json(result)

    return _run


# Catalog ----------------------------------------------------------------
async def _catalog(session: MediaSession, args: argparse.Namespace) -> Any:
    catalog = session.get_catalog()
    payload = catalog.as_dict()
    if args.kind == "movies":
        return payload["movies"]
    if args.kind == "series":
        return payload["series"]
    return payload


async def _describe(session: MediaSession, args: argparse.Namespace) -> Any:
    return {"id": args.id, "description": await session.get_description(args.id)}


# History ----------------------------------------------------------------
async def _history_show(session: MediaSession, args: argparse.Namespace) -> Any:
    if args.id:
        record = session.get_progress(args.id)
        return {args.id: record} if record else {}
    return session.history.snapshot()


async def _history_remove(session: MediaSession, args: argparse.Namespace) -> Any:
    return {"id": args.id, "removed": session.remove_from_history(args.id)}


async def _history_complete(session: MediaSession, args: argparse.Namespace) -> Any:
    return {args.id: session.mark_as_complete(args.id)}


async def _continue(session: MediaSession, args: argparse.Namespace) -> Any:
    return session.continue_watching(limit=args.limit)


# Playback ---------------------------------------------------------------
async def _play(session: MediaSession, args: argparse.Namespace) -> Any:
    if not await session.play_request(args.id):
        exit_with_error(f"Could not start playback of {args.id}")
    player = session.player
    try:
        while player is not None and player.state not in (PlaybackState.IDLE, PlaybackState.CLOSED):
            await asyncio.sleep(1.0)
    finally:
        await session.close()
    return session.get_progress(args.id)


async def _status(session: MediaSession, args: argparse.Namespace) -> Any:
    return session.describe()


# Config -----------------------------------------------------------------
def _config_show(_: argparse.Namespace) -> None:
    print_json(get_settings().as_dict())


def _config_roots(args: argparse.Namespace) -> None:
    if args.root is None and args.movies is None and args.series is None:
        exit_with_error("Pass at least one of --root, --movies or --series.")
    settings = update_library_roots(root=args.root, movies_root=args.movies, series_root=args.series)
    print_json(settings.library.as_dict())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudreel",
        description="Browse a cloud-stored video library and keep watch progress in sync.",
    )
    subparsers = parser.add_subparsers(dest="command")
    require_subcommand(subparsers)

    catalog_parser = build_subparser(subparsers, "catalog", help="List movies and series found in the library.")
    catalog_parser.add_argument("--kind", choices=["all", "movies", "series"], default="all")
    catalog_parser.set_defaults(func=_session_command(_catalog))

    describe_parser = build_subparser(subparsers, "describe", help="Print the description of a movie or series.")
    describe_parser.add_argument("id", help="Movie id or series name.")
    describe_parser.set_defaults(func=_session_command(_describe))

    history_parser = build_subparser(subparsers, "history", help="Inspect or edit watch history.")
    history_sub = history_parser.add_subparsers(dest="history_command")
    require_subcommand(history_sub)

    history_show = build_subparser(history_sub, "show", help="Show all progress records, or one.")
    history_show.add_argument("id", nargs="?", help="Optional item id.")
    history_show.set_defaults(func=_session_command(_history_show))

    history_remove = build_subparser(history_sub, "remove", help="Forget the progress of an item.")
    history_remove.add_argument("id")
    history_remove.set_defaults(func=_session_command(_history_remove))

    history_complete = build_subparser(history_sub, "complete", help="Mark an item as watched.")
    history_complete.add_argument("id")
    history_complete.set_defaults(func=_session_command(_history_complete))

    continue_parser = build_subparser(subparsers, "continue", help="Started but unfinished items.")
    continue_parser.add_argument("--limit", type=int, default=10)
    continue_parser.set_defaults(func=_session_command(_continue))

    play_parser = build_subparser(subparsers, "play", help="Play an item with VLC, resuming where it was left.")
    play_parser.add_argument("id")
    play_parser.set_defaults(func=_session_command(_play))

    status_parser = build_subparser(subparsers, "status", help="Health of the remote store, catalog and history.")
    status_parser.set_defaults(func=_session_command(_status))

    config_parser = build_subparser(subparsers, "config", help="Show or change local settings.")
    config_sub = config_parser.add_subparsers(dest="config_command")
    require_subcommand(config_sub)

    config_show = build_subparser(config_sub, "show", help="Print the effective settings (secrets hidden).")
    config_show.set_defaults(func=_config_show)

    config_roots = build_subparser(config_sub, "roots", help="Change the library folders.")
    config_roots.add_argument("--root", help="Listing root in the remote store.")
    config_roots.add_argument("--movies", help="Movies folder.")
    config_roots.add_argument("--series", help="Series folder.")
    config_roots.set_defaults(func=_config_roots)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    init_logging(get_settings().log_level)
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return
    try:
        handler(args)
    except KeyboardInterrupt:
        sys.stderr.write("Interrupted\n")
        raise SystemExit(130)


if __name__ == "__main__":  # pragma: no cover
    main()
