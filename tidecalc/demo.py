#!/usr/bin/env python3
"""
WorldTides demo: high/low tides and water heights for the next 24 hours.

Retrieves the tidal constituents for the sea location closest to the given
coordinates from www.worldtides.info, then computes everything locally.

Usage:
    tidecalc-demo APIKEY LATITUDE LONGITUDE [--hours 24] [--interval 30] [--datum LAT]

The API key can be obtained from www.worldtides.info.
"""
import argparse
import logging
import sys
import time
from datetime import datetime
from typing import List, Optional

import numpy as np
from tabulate import tabulate

from .exceptions import WorldTidesError
from .worldtides import fetch_constituents


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser exiting with status 1 on bad arguments."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"\n*** {message}\n")


def _local_time(epoch: float) -> str:
    return datetime.fromtimestamp(epoch).astimezone().strftime('%a %d %b %Y %H:%M %Z')


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog='tidecalc-demo',
        description='Tide tables from WorldTides constituents.',
    )
    parser.add_argument('api_key', metavar='APIKEY', help='WorldTides API key')
    parser.add_argument('lat', metavar='LATITUDE', type=float, help='Latitude in decimal degrees')
    parser.add_argument('lon', metavar='LONGITUDE', type=float, help='Longitude in decimal degrees')
    parser.add_argument('--hours', type=float, default=24.0, help='Prediction window in hours (default 24)')
    parser.add_argument('--interval', type=int, default=30, help='Minutes between water heights (default 30)')
    parser.add_argument('--datum', help="Vertical datum requested from WorldTides, e.g. 'LAT'")
    parser.add_argument('-v', '--verbose', action='store_true', help='Log API and search details')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.hours <= 0 or args.interval <= 0:
        parser.error("--hours and --interval must be positive")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    print("World Tides (www.worldtides.info) Demo Application.")

    try:
        response = fetch_constituents(args.lat, args.lon, api_key=args.api_key, datum=args.datum)
    except WorldTidesError as e:
        sys.stdout.flush()
        print(f"\n*** {e}", file=sys.stderr)
        return 2

    location = response.location
    print(response.copyright)
    print(f"\nFor location: {location.response_lat} {location.response_lon}")
    if response.datum:
        print(f"Datum: {response.datum}")

    if args.verbose:
        print("\nConstituents:")
        print(tabulate(
            [(str(c), f"{amp.amplitude:.4f}", f"{amp.phase_degrees:+.1f}")
             for c, amp in response.constituents.items()],
            headers=['Name', 'Amplitude (m)', 'Phase (deg)'],
        ))

    calculator = response.calculator()
    start = time.time()
    length = args.hours * 3600.0

    extremes = calculator.extremes(start, length, corrected=True)
    print("\nHigh and Low Tides:")
    print(tabulate(
        [(_local_time(e.time), e.type.upper(), f"{e.height:+.2f}") for e in extremes],
        headers=['Time', 'Tide', 'Height (m)'],
    ))

    published = response.published_extremes(start, length)
    if published:
        print("\nPublished by WorldTides:")
        print(tabulate(
            [(_local_time(e.time), e.type.upper(), f"{e.height:+.2f}") for e in published],
            headers=['Time', 'Tide', 'Height (m)'],
        ))

    times = start + np.arange(0.0, length, args.interval * 60.0)
    print("\nWater Heights:")
    print(tabulate(
        [(_local_time(t), f"{h:+.2f}") for t, h in zip(times, calculator.heights(times, corrected=True))],
        headers=['Time', 'Height (m)'],
    ))
    return 0


if __name__ == '__main__':
    sys.exit(main())
