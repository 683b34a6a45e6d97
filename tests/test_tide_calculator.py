"""
Unit tests for the harmonic tide calculator
"""
import math

import numpy as np
import pytest

from tidecalc import config, tide_calculator
from tidecalc.amplitude import ComplexAmplitude
from tidecalc.constituents import TidalConstant, period_of, speed_of
from tidecalc.exceptions import InvalidConstituents
from tidecalc.tide_calculator import (
    TideCalculator,
    TideExtreme,
    apply_datum,
    find_extremes,
    height,
    heights,
    sample_step,
)

HOUR = 3600.0
M2_PERIOD = period_of(TidalConstant.M2)

# Realistic semidiurnal mix (meters)
MIXED = {
    TidalConstant.M2: ComplexAmplitude(0.62, -0.48),
    TidalConstant.S2: ComplexAmplitude(0.11, 0.15),
    TidalConstant.N2: ComplexAmplitude(-0.09, -0.10),
    TidalConstant.K1: ComplexAmplitude(0.05, 0.07),
    TidalConstant.O1: ComplexAmplitude(-0.06, 0.03),
    TidalConstant.M4: ComplexAmplitude(0.02, -0.03),
}


def single(constant=TidalConstant.M2, amplitude=1.0, phase_degrees=0.0):
    """Constituent set with one constituent."""
    return {constant: ComplexAmplitude.from_polar(amplitude, phase_degrees)}


def analytic_extremes(constant, phase_degrees, start, end):
    """Times where cos(w * t + phi) peaks or bottoms out within [start, end]."""
    w = math.radians(speed_of(constant)) / HOUR
    phi = math.radians(phase_degrees)
    k = math.ceil((w * start + phi) / math.pi)
    times = []
    while True:
        t = (k * math.pi - phi) / w
        if t > end:
            return times
        times.append(t)
        k += 1


class TestHeight:
    """Tests for height evaluation."""

    def test_height_at_zero_equals_amplitude(self):
        """Zero phase peaks at the reference epoch."""
        assert height(single(amplitude=1.0), 0.0) == pytest.approx(1.0)
        assert height(single(amplitude=2.5), 0.0) == pytest.approx(2.5)

    def test_phase_is_added(self):
        """A +90 degree phase puts the trough a quarter period after the epoch."""
        constituents = single(phase_degrees=90.0)
        assert height(constituents, 0.0) == pytest.approx(0.0, abs=1e-12)
        assert height(constituents, M2_PERIOD / 4) == pytest.approx(-1.0)

    @pytest.mark.parametrize("constant", [
        TidalConstant.M2, TidalConstant.S2, TidalConstant.K1, TidalConstant.O1, TidalConstant.M4,
    ])
    def test_periodic_in_constituent_period(self, constant):
        """A single constituent repeats after 360 / speed hours."""
        constituents = single(constant, amplitude=0.8, phase_degrees=37.0)
        t = 1_700_000_000.0
        period = 360.0 / speed_of(constant) * HOUR
        assert height(constituents, t) == pytest.approx(height(constituents, t + period), abs=1e-8)

    def test_zero_amplitude_contributes_nothing(self):
        """Zero-amplitude constituents leave the sum bit-for-bit unchanged."""
        times = np.linspace(1_700_000_000.0, 1_700_000_000.0 + 7 * 86400, 500)
        with_zero = dict(MIXED)
        with_zero[TidalConstant.K2] = ComplexAmplitude(0.0, 0.0)
        with_zero[TidalConstant.SA] = ComplexAmplitude(0.0, -0.0)
        assert np.array_equal(heights(MIXED, times), heights(with_zero, times))

    def test_missing_constituents_contribute_nothing(self):
        """Constituents absent from the mapping contribute zero."""
        times = np.array([0.0, 1000.0, 50_000.0])
        m2_only = {TidalConstant.M2: MIXED[TidalConstant.M2]}
        expected = MIXED[TidalConstant.M2].amplitude * np.cos(
            math.radians(speed_of(TidalConstant.M2)) / HOUR * times + MIXED[TidalConstant.M2].phase
        )
        assert heights(m2_only, times) == pytest.approx(expected)

    def test_empty_set_is_flat(self):
        """No constituents means zero height everywhere."""
        assert height({}, 1_700_000_000.0) == 0.0
        assert not heights({}, np.arange(10.0)).any()

    def test_scalar_matches_vector(self):
        """height() and heights() agree."""
        times = np.linspace(1_700_000_000.0, 1_700_086_400.0, 25)
        vector = heights(MIXED, times)
        for t, h in zip(times, vector):
            assert height(MIXED, t) == pytest.approx(h, abs=1e-12)

    def test_heights_keep_shape(self):
        """Output has the shape of the input times."""
        times = np.zeros((3, 4))
        assert heights(MIXED, times).shape == (3, 4)

    def test_deterministic(self):
        """Identical inputs give identical outputs."""
        times = np.linspace(0.0, 30 * 86400, 1000)
        assert np.array_equal(heights(MIXED, times), heights(MIXED, times))

    def test_nan_propagates(self):
        """Bad upstream values are not silently coerced to zero."""
        constituents = {TidalConstant.M2: ComplexAmplitude(float('nan'), 0.0)}
        assert math.isnan(height(constituents, 0.0))


class TestSampleStep:
    """Tests for the coarse scan step."""

    def test_default_step_for_realistic_sets(self):
        """All catalog periods are long enough for the default step."""
        assert sample_step(MIXED) == config.MAX_SAMPLE_STEP_SECONDS

    def test_step_follows_fastest_constituent(self, monkeypatch):
        """With a coarse cap the step is an eighth of the fastest period."""
        monkeypatch.setattr(config, 'MAX_SAMPLE_STEP_SECONDS', 1e9)
        assert sample_step(MIXED) == pytest.approx(period_of(TidalConstant.M4) / 8)

    def test_zero_amplitudes_do_not_shrink_step(self, monkeypatch):
        """Only constituents that are present set the step."""
        monkeypatch.setattr(config, 'MAX_SAMPLE_STEP_SECONDS', 1e9)
        constituents = dict(single())
        constituents[TidalConstant.M8] = ComplexAmplitude(0.0, 0.0)
        assert sample_step(constituents) == pytest.approx(M2_PERIOD / 8)


class TestFindExtremes:
    """Tests for high/low tide search."""

    def test_m2_scenario_over_one_day(self):
        """Pure M2 over 24 hours: high at the epoch, then low, high, low."""
        extremes = find_extremes(single(), 0.0, 24 * HOUR)
        assert len(extremes) == 4
        assert [e.is_high for e in extremes] == [True, False, True, False]
        assert 0.0 <= extremes[0].time < 60
        assert extremes[0].height == pytest.approx(1.0, abs=1e-3)

    def test_single_sinusoid_spacing_and_heights(self):
        """Extremes of a sinusoid are half a period apart at +A and -A."""
        amplitude = 0.75
        extremes = find_extremes(single(amplitude=amplitude, phase_degrees=-40.0), 0.0, 3 * M2_PERIOD)
        assert len(extremes) >= 6
        for previous, current in zip(extremes, extremes[1:]):
            assert current.is_high != previous.is_high
            assert current.time - previous.time == pytest.approx(M2_PERIOD / 2, abs=config.TIME_TOLERANCE_SECONDS)
        for extreme in extremes:
            expected = amplitude if extreme.is_high else -amplitude
            assert extreme.height == pytest.approx(expected, abs=1e-4)

    @pytest.mark.parametrize("constant,phase", [
        (TidalConstant.M2, 0.0),
        (TidalConstant.K1, 123.0),
        (TidalConstant.S2, -75.0),
        (TidalConstant.M4, 10.0),
    ])
    def test_times_match_analytic_solution(self, constant, phase):
        """Refined times are within the tolerance of the true extremes."""
        start = 1_700_000_000.0
        length = 3 * 86400.0
        extremes = find_extremes(single(constant, 1.0, phase), start, length)
        expected = analytic_extremes(constant, phase, start, start + length)
        assert len(extremes) == len(expected)
        for extreme, t in zip(extremes, expected):
            assert extreme.time == pytest.approx(t, abs=config.TIME_TOLERANCE_SECONDS)

    def test_sorted_by_time(self):
        """Extremes come out in ascending time order."""
        extremes = find_extremes(MIXED, 1_700_000_000.0, 14 * 86400)
        times = [e.time for e in extremes]
        assert times == sorted(times)

    def test_mixed_tide_alternates(self):
        """Highs and lows alternate for a realistic constituent set."""
        extremes = find_extremes(MIXED, 1_700_000_000.0, 14 * 86400)
        assert 14 * 3 <= len(extremes) <= 14 * 5
        for previous, current in zip(extremes, extremes[1:]):
            assert current.is_high != previous.is_high

    def test_highs_above_neighbouring_samples(self):
        """Each reported high is a local maximum of the curve."""
        for extreme in find_extremes(MIXED, 1_700_000_000.0, 3 * 86400):
            around = heights(MIXED, [extreme.time - 600, extreme.time + 600])
            if extreme.is_high:
                assert extreme.height > around.max()
            else:
                assert extreme.height < around.min()

    def test_empty_set_has_no_extremes(self):
        """A flat line has no high or low tides."""
        assert find_extremes({}, 0.0, 7 * 86400) == []

    def test_all_zero_amplitudes_have_no_extremes(self):
        """Zero amplitudes behave like an empty set."""
        constituents = {TidalConstant.M2: ComplexAmplitude(0.0, 0.0)}
        assert find_extremes(constituents, 0.0, 7 * 86400) == []

    def test_window_shorter_than_step_is_empty(self):
        """A window shorter than one sampling step yields nothing."""
        assert find_extremes(single(), 0.0, sample_step(single()) / 2) == []

    def test_monotonic_window_reports_no_edges(self):
        """Rising water between a low and a high has no extremes, even at the edges."""
        start = M2_PERIOD / 2 + HOUR
        length = M2_PERIOD / 2 - 2 * HOUR
        assert find_extremes(single(), start, length) == []

    def test_extreme_beyond_window_not_reported(self):
        """A high well past the window end is left out."""
        extremes = find_extremes(single(), 0.0, 24 * HOUR)
        assert all(e.time < 24 * HOUR for e in extremes)

    def test_idempotent(self):
        """Repeated calls give identical results."""
        first = find_extremes(MIXED, 1_700_000_000.0, 7 * 86400)
        second = find_extremes(MIXED, 1_700_000_000.0, 7 * 86400)
        assert first == second

    def test_iteration_cap_is_best_effort(self):
        """Hitting the iteration cap returns the best bracket midpoint, no error."""
        expected = analytic_extremes(TidalConstant.M2, 0.0, -60.0, 24 * HOUR)
        step = sample_step(single())

        capped = find_extremes(single(), 0.0, 24 * HOUR, max_iterations=0)
        assert len(capped) == len(expected)
        for extreme, t in zip(capped, expected):
            assert abs(extreme.time - t) <= step

        refined = find_extremes(single(), 0.0, 24 * HOUR, max_iterations=3)
        assert [e.is_high for e in refined] == [e.is_high for e in capped]

    def test_tighter_tolerance_is_more_precise(self):
        """A smaller tolerance narrows the reported time."""
        expected = analytic_extremes(TidalConstant.M2, 0.0, -1.0, 24 * HOUR)
        extremes = find_extremes(single(), 0.0, 24 * HOUR, tolerance=1.0)
        assert len(extremes) == 4
        for extreme in extremes:
            nearest = min(expected, key=lambda t: abs(t - extreme.time))
            assert extreme.time == pytest.approx(nearest, abs=1.0)

    def test_non_finite_heights_raise(self):
        """NaN amplitudes are reported, not mistaken for a flat line."""
        constituents = {TidalConstant.M2: ComplexAmplitude(float('nan'), 0.0)}
        with pytest.raises(InvalidConstituents, match="Non-finite"):
            find_extremes(constituents, 0.0, 86400)

    def test_infinite_amplitude_raises(self):
        constituents = dict(MIXED)
        constituents[TidalConstant.K2] = ComplexAmplitude(float('inf'), 0.0)
        with pytest.raises(ValueError):
            find_extremes(constituents, 0.0, 86400)


def peak_at(t0, constant=TidalConstant.M2):
    """Single constituent whose high tide falls exactly at t0."""
    phase = -math.radians(speed_of(constant)) / HOUR * t0
    return {constant: ComplexAmplitude.from_polar(1.0, math.degrees(phase))}


class TestWindowEdges:
    """Tests for which window owns a high/low near an edge."""

    DAY = 86400.0
    OFFSETS = [-300.0, -10.0, -0.5, 0.0, 0.5, 10.0, 300.0]

    @pytest.mark.parametrize("offset", OFFSETS)
    def test_times_inside_window(self, offset):
        """Reported times always fall in [start, start + length)."""
        for constituents in (peak_at(offset), peak_at(self.DAY + offset)):
            for extreme in find_extremes(constituents, 0.0, self.DAY):
                assert 0.0 <= extreme.time < self.DAY, f"{extreme} outside window"

    @pytest.mark.parametrize("offset", OFFSETS)
    def test_adjacent_windows_split_extremes(self, offset):
        """Two consecutive windows report each high/low exactly once."""
        constituents = peak_at(self.DAY + offset)
        first = find_extremes(constituents, 0.0, self.DAY)
        second = find_extremes(constituents, self.DAY, self.DAY)
        both = find_extremes(constituents, 0.0, 2 * self.DAY)

        assert not {e.time for e in first} & {e.time for e in second}
        assert first + second == both

    def test_adjacent_windows_mixed_tide(self):
        """Same for a realistic set over a week of daily windows."""
        start = 1_700_000_000.0
        daily = []
        for day in range(7):
            daily.extend(find_extremes(MIXED, start + day * self.DAY, self.DAY))
        assert daily == find_extremes(MIXED, start, 7 * self.DAY)

    def test_high_before_start_left_out(self):
        """A high a minute before the window belongs to the previous window."""
        extremes = find_extremes(peak_at(-60.0), 0.0, self.DAY)
        assert extremes[0].is_high is False

    def test_high_after_end_left_out(self):
        extremes = find_extremes(peak_at(self.DAY + 60.0), 0.0, self.DAY)
        assert extremes[-1].time < self.DAY
        assert extremes[-1].is_high is False


class TestSlopeTies:
    """Tests for exact ties between consecutive samples."""

    def test_flat_top_reported_once(self, monkeypatch):
        """A plateau spanning several samples is one high, not two."""
        def plateau(constituents, times):
            t = np.asarray(times, dtype=np.float64)
            return -np.maximum(np.abs(t - 30_000.0) - 1_500.0, 0.0)

        monkeypatch.setattr(tide_calculator, 'heights', plateau)
        extremes = find_extremes(single(), 0.0, 60_000.0)

        tolerance = config.TIME_TOLERANCE_SECONDS
        assert len(extremes) == 1
        assert extremes[0].is_high
        assert extremes[0].height == pytest.approx(0.0, abs=tolerance)
        assert 28_500.0 - tolerance <= extremes[0].time <= 31_500.0 + tolerance

    def test_flat_bottom_reported_once(self, monkeypatch):
        """Same for a flat low."""
        def basin(constituents, times):
            t = np.asarray(times, dtype=np.float64)
            return np.maximum(np.abs(t - 20_000.0) - 2_000.0, 0.0)

        monkeypatch.setattr(tide_calculator, 'heights', basin)
        extremes = find_extremes(single(), 0.0, 40_000.0)

        assert len(extremes) == 1
        assert not extremes[0].is_high

    def test_shelf_is_not_an_extreme(self, monkeypatch):
        """Rising, flat, rising again: the tie is not a change of slope."""
        def shelf(constituents, times):
            t = np.asarray(times, dtype=np.float64)
            return np.where(t < 20_000.0, t, np.where(t < 30_000.0, 20_000.0, t - 10_000.0))

        monkeypatch.setattr(tide_calculator, 'heights', shelf)
        assert find_extremes(single(), 0.0, 50_000.0) == []


class TestApplyDatum:
    """Tests for datum correction."""

    def test_shifts_float(self):
        assert apply_datum(1.5, 0.25) == 1.75

    @pytest.mark.parametrize("value,offset", [
        (1.5, 0.25),
        (-0.75, 2.0),
        (0.0, -1.125),
        (3.0625, 0.5),
    ])
    def test_round_trip_is_exact(self, value, offset):
        """Applying +d then -d gives the original value back."""
        assert apply_datum(apply_datum(value, offset), -offset) == value

    def test_round_trip_general_values(self):
        """Without exact binary values the round trip is within rounding."""
        assert apply_datum(apply_datum(0.1, 0.2), -0.2) == pytest.approx(0.1, abs=1e-15)

    def test_shifts_extreme(self):
        """Only the height of an extreme moves."""
        extreme = TideExtreme(time=1000.0, height=0.5, is_high=True)
        shifted = apply_datum(extreme, 1.25)
        assert shifted == TideExtreme(time=1000.0, height=1.75, is_high=True)
        assert extreme.height == 0.5

    def test_shifts_list_of_extremes(self):
        extremes = [TideExtreme(0.0, 1.0, True), TideExtreme(100.0, -1.0, False)]
        assert [e.height for e in apply_datum(extremes, 2.0)] == [3.0, 1.0]

    def test_shifts_array(self):
        result = apply_datum(np.array([0.0, 1.0]), 0.5)
        assert np.array_equal(result, np.array([0.5, 1.5]))


class TestTideExtreme:
    """Tests for the TideExtreme value."""

    def test_type(self):
        assert TideExtreme(0.0, 1.0, True).type == 'high'
        assert TideExtreme(0.0, -1.0, False).type == 'low'

    def test_str(self):
        assert str(TideExtreme(0.0, -1.0, False)) == "1970-01-01T00:00:00+00:00 LOW  -1.000"


class TestTideCalculator:
    """Tests for the per-location calculator."""

    def test_uncorrected_matches_height(self):
        calculator = TideCalculator(MIXED, datum_offset=1.5)
        assert calculator.height(1_700_000_000.0) == height(MIXED, 1_700_000_000.0)

    def test_corrected_applies_offset(self):
        calculator = TideCalculator(MIXED, datum_offset=1.5)
        t = 1_700_000_000.0
        assert calculator.height(t, corrected=True) == pytest.approx(height(MIXED, t) + 1.5)

    def test_corrected_swaps_constituents(self):
        """With a corrected set, corrected values come from that set."""
        corrected = {TidalConstant.M2: ComplexAmplitude(0.9, 0.0)}
        calculator = TideCalculator(MIXED, corrected_constituents=corrected, datum_offset=0.5)
        t = 1_700_000_000.0
        assert calculator.height(t) == height(MIXED, t)
        assert calculator.height(t, corrected=True) == pytest.approx(height(corrected, t) + 0.5)

    def test_corrected_heights_array(self):
        calculator = TideCalculator(MIXED, datum_offset=-0.25)
        times = np.linspace(0.0, 86400.0, 10)
        assert calculator.heights(times, corrected=True) == pytest.approx(heights(MIXED, times) - 0.25)

    def test_corrected_extremes_keep_times(self):
        """The datum moves heights, never times."""
        calculator = TideCalculator(MIXED, datum_offset=2.0)
        plain = calculator.extremes(1_700_000_000.0, 3 * 86400)
        corrected = calculator.extremes(1_700_000_000.0, 3 * 86400, corrected=True)
        assert [e.time for e in plain] == [e.time for e in corrected]
        for p, c in zip(plain, corrected):
            assert c.height == pytest.approx(p.height + 2.0)

    def test_constituents_are_copied(self):
        """Later changes to the caller's mapping do not leak in."""
        constituents = dict(MIXED)
        calculator = TideCalculator(constituents)
        before = calculator.height(0.0)
        constituents[TidalConstant.M2] = ComplexAmplitude(10.0, 0.0)
        assert calculator.height(0.0) == before

    def test_constituents_are_read_only(self):
        calculator = TideCalculator(MIXED)
        with pytest.raises(TypeError):
            calculator.constituents[TidalConstant.M2] = ComplexAmplitude(0.0, 0.0)
