"""
Harmonic tide calculator.

Computes water heights and high/low tides from a set of tidal constituents
whose astronomical corrections were already applied by the data provider
(WorldTides publishes them this way).

Height formula (times in seconds since 1970-01-01T00:00:00Z):

    h(t) = sum( A_i * cos(w_i * t + phi_i) )

where:
- A_i   = amplitude of constituent i (magnitude of its complex amplitude)
- w_i   = angular speed of constituent i converted to radians per second
- phi_i = phase of constituent i (angle of its complex amplitude, radians)

This is the real part of C_i * exp(j * w_i * t) summed over constituents.
The phase is added, and the reference instant is the Unix epoch.

High and low tides are located in two passes:
- a coarse scan samples the curve at a fraction of the fastest period and
  looks for changes in the sign of the slope,
- each bracket found is then narrowed by ternary search until it is shorter
  than the time tolerance (or the iteration cap is hit).

Every function here is pure. Calling them concurrently on the same
constituent mapping needs no locking.
"""
import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Tuple

import numpy as np

from . import config
from .amplitude import ComplexAmplitude
from .constituents import TidalConstant, period_of, speed_of
from .exceptions import InvalidConstituents

logger = logging.getLogger(__name__)

ConstituentSet = Mapping[TidalConstant, ComplexAmplitude]


@dataclass(frozen=True)
class TideExtreme:
    """A high or low tide."""
    time: float
    height: float
    is_high: bool

    @property
    def type(self) -> str:
        return 'high' if self.is_high else 'low'

    def to_datetime(self, tz=timezone.utc) -> datetime:
        return datetime.fromtimestamp(self.time, tz)

    def __str__(self) -> str:
        return f"{self.to_datetime().replace(microsecond=0).isoformat()} {self.type.upper():<4} {self.height:+.3f}"


def _significant(constituents: ConstituentSet) -> Iterator[Tuple[TidalConstant, ComplexAmplitude]]:
    """Constituents with a non-zero amplitude, in catalog order."""
    for constant in TidalConstant:
        amp = constituents.get(constant)
        if amp is not None and amp.amplitude != 0.0:
            yield constant, amp


def _angular_speed(constant: TidalConstant) -> float:
    """Angular speed in radians per second."""
    return math.radians(speed_of(constant)) / 3600.0


def heights(constituents: ConstituentSet, times) -> np.ndarray:
    """
    Calculate tide heights for an array of times (vectorized).

    Args:
        constituents: Mapping of constituent to complex amplitude
        times: Epoch seconds, scalar or array-like

    Returns:
        Array of heights (same shape as times), relative to mean sea level
    """
    t = np.asarray(times, dtype=np.float64)
    result = np.zeros_like(t)

    for constant, amp in _significant(constituents):
        result += amp.amplitude * np.cos(_angular_speed(constant) * t + amp.phase)

    return result


def height(constituents: ConstituentSet, time: float) -> float:
    """Tide height at a single instant (epoch seconds)."""
    return float(heights(constituents, time))


def sample_step(constituents: ConstituentSet) -> float:
    """
    Sampling step of the extremum scan in seconds.

    An eighth of the fastest period present keeps each three-sample bracket
    inside a quarter period, where the curve is unimodal.
    """
    step = config.MAX_SAMPLE_STEP_SECONDS
    for constant, _ in _significant(constituents):
        step = min(step, period_of(constant) / 8.0)
    return step


def _refine(
    constituents: ConstituentSet,
    lo: float,
    hi: float,
    is_high: bool,
    tolerance: float,
    max_iterations: int,
) -> Tuple[float, float]:
    """
    Narrow a bracket around one extremum by ternary search.

    Each pass evaluates the points at one and two thirds of the bracket and
    drops the outer third that cannot hold the extremum. On equal heights the
    upper third is dropped.

    Returns:
        Final (lo, hi) bracket. Wider than tolerance only if max_iterations
        was reached first.
    """
    sign = 1.0 if is_high else -1.0
    iterations = 0

    while hi - lo > tolerance and iterations < max_iterations:
        third = (hi - lo) / 3.0
        left = lo + third
        right = hi - third
        h_left, h_right = sign * heights(constituents, [left, right])
        if h_left < h_right:
            lo = left
        else:
            hi = right
        iterations += 1

    if hi - lo > tolerance:
        logger.debug(
            f"Extremum refinement stopped after {iterations} iterations "
            f"with a {hi - lo:.1f}s bracket (tolerance {tolerance}s)"
        )
    return lo, hi


def find_extremes(
    constituents: ConstituentSet,
    start: float,
    length: float,
    tolerance: Optional[float] = None,
    max_iterations: Optional[int] = None,
) -> List[TideExtreme]:
    """
    Find high and low tides in the window [start, start + length).

    The curve is sampled on a grid of sample_step() multiples counted from
    the epoch, with one extra sample on each side of the window so a
    high/low sitting exactly on an edge is still seen as a change of slope.
    Exact ties between consecutive samples do not count as a change of
    slope: the last non-zero slope is carried over, so a flat top or bottom
    is reported once and a flat line not at all. Monotonic stretches at the
    window edges are never reported.

    A high/low is reported when its refined time lies in the half-open
    window. The grid does not depend on the window, so adjacent windows
    refine the same brackets and each high/low belongs to exactly one of
    them.

    Args:
        constituents: Mapping of constituent to complex amplitude
        start: Window start (epoch seconds)
        length: Window length (seconds)
        tolerance: Refinement stops below this bracket width (seconds)
        max_iterations: Refinement cap per extremum. Reaching it is not an
            error: the midpoint of the best bracket is returned.

    Returns:
        High/low tides sorted by time. Empty when the window is shorter than
        one sampling step.

    Raises:
        InvalidConstituents: If the curve is not finite in the window
    """
    if tolerance is None:
        tolerance = config.TIME_TOLERANCE_SECONDS
    if max_iterations is None:
        max_iterations = config.MAX_REFINE_ITERATIONS

    step = sample_step(constituents)
    if length < step:
        return []

    end = start + length
    first = math.floor(start / step) - 1
    last = math.ceil(end / step) + 1
    times = np.arange(first, last + 1, dtype=np.float64) * step
    samples = heights(constituents, times)

    if not np.all(np.isfinite(samples)):
        raise InvalidConstituents(
            f"Non-finite tide heights between {start} and {end}, check the constituent amplitudes"
        )

    slopes = np.sign(np.diff(samples))

    extremes = []
    previous_sign = 0.0
    previous_index = 0
    for i, slope in enumerate(slopes):
        if slope == 0.0:
            continue
        if previous_sign != 0.0 and slope != previous_sign:
            # + to - is a high, - to + a low
            is_high = bool(previous_sign > 0)
            lo, hi = _refine(
                constituents, times[previous_index], times[i + 1],
                is_high, tolerance, max_iterations,
            )
            time = (lo + hi) / 2.0
            if start <= time < end:
                extremes.append(TideExtreme(
                    time=float(time),
                    height=height(constituents, time),
                    is_high=is_high,
                ))
        previous_sign = slope
        previous_index = i

    return extremes


def apply_datum(value, offset: float):
    """
    Shift a height, an array of heights, a TideExtreme or a list of
    TideExtremes by a datum offset. Returns the same kind of value.
    """
    if isinstance(value, TideExtreme):
        return replace(value, height=value.height + offset)
    if isinstance(value, list):
        return [apply_datum(item, offset) for item in value]
    return value + offset


class TideCalculator:
    """
    Tide calculator for one location.

    Holds the constituents returned for a location and, optionally, a
    second set already corrected for the requested datum together with
    the datum offset. Pass corrected=True to get datum-referenced values.
    """

    def __init__(
        self,
        constituents: ConstituentSet,
        corrected_constituents: Optional[ConstituentSet] = None,
        datum_offset: float = 0.0,
        datum: Optional[str] = None,
    ):
        self.constituents = MappingProxyType(dict(constituents))
        self.corrected_constituents = (
            MappingProxyType(dict(corrected_constituents))
            if corrected_constituents is not None else None
        )
        self.datum_offset = float(datum_offset)
        self.datum = datum

    def _constituents_for(self, corrected: bool) -> ConstituentSet:
        if corrected and self.corrected_constituents is not None:
            return self.corrected_constituents
        return self.constituents

    def height(self, time: float, corrected: bool = False) -> float:
        value = height(self._constituents_for(corrected), time)
        return apply_datum(value, self.datum_offset) if corrected else value

    def heights(self, times, corrected: bool = False) -> np.ndarray:
        values = heights(self._constituents_for(corrected), times)
        return apply_datum(values, self.datum_offset) if corrected else values

    def extremes(
        self,
        start: float,
        length: float,
        corrected: bool = False,
        tolerance: Optional[float] = None,
        max_iterations: Optional[int] = None,
    ) -> List[TideExtreme]:
        found = find_extremes(
            self._constituents_for(corrected), start, length,
            tolerance=tolerance, max_iterations=max_iterations,
        )
        return apply_datum(found, self.datum_offset) if corrected else found
