#!/usr/bin/env python3
"""SongStream - command line player entry point."""

import argparse
import signal
import sys

import gi
gi.require_version('Gst', '1.0')
gi.require_version('GLib', '2.0')
from gi.repository import Gst, GLib

from core.application import SongStreamApplication
from core.config import get_config
from core.exceptions import SongStreamError
from core.logging import LinuxLogger, get_logger
from core.models import RepeatMode
from core.observation import PlayerState

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='songstream',
        description='Play songs from the local SongStream library.',
    )
    parser.add_argument('song_ids', nargs='*', help='Song ids to queue (default: whole library)')
    parser.add_argument('--playlist', help='Play a saved playlist by id')
    parser.add_argument('--shuffle', action='store_true', help='Shuffle the queue')
    parser.add_argument(
        '--repeat',
        choices=[m.value for m in RepeatMode],
        default=RepeatMode.OFF.value,
        help='Repeat mode',
    )
    parser.add_argument('--volume', type=float, help='Initial volume (0.0 - 1.0)')
    return parser


def _print_state(snapshot) -> None:
    track = snapshot.current_track
    if track is None:
        print(f"[{snapshot.state.value}]")
    else:
        print(f"[{snapshot.state.value}] {track.artist} - {track.title}")


class PlaybackWatcher:
    """Ends the main loop once nothing is left to play.

    The command line player never pauses on request, so a settled PAUSED
    state means the queue ran out or the device gave up. IDLE without a
    track means the track failed before it ever played.
    """

    def __init__(self, coordinator, loop):
        self._coordinator = coordinator
        self._loop = loop
        self.finished = False
        self.failed = False

    def __call__(self, snapshot) -> None:
        _print_state(snapshot)
        if self.finished:
            return
        if snapshot.state is PlayerState.IDLE and snapshot.current_track is None:
            self._finish(failed=True)
        elif snapshot.state is PlayerState.PAUSED and not snapshot.is_loading:
            coordinator = self._coordinator
            completed = coordinator.position >= coordinator.duration > 0
            self._finish(failed=not completed)

    def _finish(self, failed: bool) -> None:
        self.finished = True
        self.failed = failed
        if failed:
            logger.error("Playback stopped after a failure")
        self._loop.quit()


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Settings first, then logging into the configured directory
    config = get_config()
    LinuxLogger(log_dir=config.log_dir)

    Gst.init(None)

    options = {}
    if args.volume is not None:
        options['volume'] = args.volume
    app = SongStreamApplication(**options)
    loop = GLib.MainLoop()
    watcher = PlaybackWatcher(app.coordinator, loop)
    app.surface.subscribe_state(watcher)

    try:
        if args.playlist:
            app.queue.set_repeat_mode(RepeatMode(args.repeat))
            started = app.play_playlist(args.playlist, shuffle=args.shuffle)
        else:
            tracks = app.resolve_tracks(args.song_ids)
            started = app.play_tracks(tracks, shuffle=args.shuffle, repeat=RepeatMode(args.repeat))
    except SongStreamError as e:
        logger.error("%s", e)
        app.shutdown()
        return 1

    if not started:
        app.shutdown()
        return 1

    try:
        # A failure reported while starting has already settled the player
        if not watcher.finished:
            GLib.unix_signal_add(GLib.PRIORITY_DEFAULT, signal.SIGINT, loop.quit)
            loop.run()
    finally:
        app.shutdown()
    return 1 if watcher.failed else 0


if __name__ == '__main__':
    sys.exit(main())
