"""
Complex amplitude of a tidal constituent.

WorldTides publishes each constituent as a Cartesian pair (real, imaginary).
The amplitude is the magnitude of the pair and the phase its angle.
"""
import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ComplexAmplitude:
    """Constituent response at a location as a complex number (metres)."""
    real: float
    imaginary: float

    @classmethod
    def from_polar(cls, amplitude: float, phase_degrees: float) -> "ComplexAmplitude":
        """Build from an amplitude/phase pair (phase in degrees)."""
        phase = math.radians(phase_degrees)
        return cls(amplitude * math.cos(phase), amplitude * math.sin(phase))

    @property
    def amplitude(self) -> float:
        # hypot() would turn (inf, nan) into inf; NaN has to stay visible
        return math.sqrt(self.real * self.real + self.imaginary * self.imaginary)

    @property
    def phase(self) -> float:
        """Phase in radians, in (-pi, pi]."""
        return math.atan2(self.imaginary, self.real)

    @property
    def phase_degrees(self) -> float:
        return math.degrees(self.phase)

    def __complex__(self) -> complex:
        return complex(self.real, self.imaginary)
