#!/usr/bin/env python3
"""
Print live changes to a Firebase location.
Run with: python scripts/watch-location.py https://my-app.firebaseio.com/rooms

Opens a watch session and prints one line per event until the stream
ends or Ctrl-C is pressed. The auth token is read from --auth or the
FIREBASE_AUTH environment variable.

Exit status is 0 when the stream ended cleanly or was interrupted, and
1 when it ended with an error.
"""
import argparse
import asyncio
import logging
import os
import signal
import sys

from firebase_sdk import FirebaseClient, StreamCancelledError


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('url', help='location to watch')
    parser.add_argument('--auth', default=os.environ.get('FIREBASE_AUTH'),
                        help='auth token (default: $FIREBASE_AUTH)')
    parser.add_argument('--order-by', help='child property to order by')
    parser.add_argument('--limit-to-last', type=int, help='only watch the last N children')
    parser.add_argument('-v', '--verbose', action='store_true', help='debug logging')
    return parser.parse_args()


async def watch(args: argparse.Namespace) -> int:
    """
    Watch the location and print events.

    Returns:
        0 on a clean or interrupted end, 1 if the stream failed
    """
    stop = asyncio.Event()
    asyncio.get_running_loop().add_signal_handler(signal.SIGINT, stop.set)

    async with FirebaseClient(args.url, auth=args.auth) as ref:
        if args.order_by:
            ref = ref.order_by(args.order_by)
        if args.limit_to_last is not None:
            ref = ref.limit_to_last(args.limit_to_last)

        session = await ref.watch(stop=stop)
        print(f'Watching {ref.url} (Ctrl-C to stop)\n')

        async with session:
            async for event in session:
                if event.terminal:
                    error = event.stream_error
                    if error is None or isinstance(error, StreamCancelledError):
                        print('\nStream closed.')
                        return 0
                    print(f'\nStream failed: {error}')
                    return 1
                if event.decode_error is not None:
                    print(f'[{event.event_type}] undecodable: {event.decode_error}')
                    continue
                print(f'[{event.event_type}] {event.path or "/"} {event.decoded_object!r}')

    return 0


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s %(message)s',
    )
    return asyncio.run(watch(args))


if __name__ == '__main__':
    sys.exit(main())
