"""
Tidal constituent catalog.

Every constituent the calculator understands is listed in ``TidalConstant``
together with its angular speed in degrees per mean solar hour. The set is
closed: names coming from a data provider are resolved with ``lookup()``,
which refuses anything it does not know rather than guessing a speed.

The member order is the summation order used by the height evaluator, so
results are reproducible regardless of how the caller built its mapping.

Speeds follow Schureman (1958) "Manual of Harmonic Analysis and Prediction
of Tides", Table 2, and the FES2014 constituent list used by WorldTides.
"""
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from .exceptions import UnknownConstituent


class TidalConstant(str, Enum):
    """Tidal constituents known to the calculator (catalog order)."""
    # Long period
    SA = "SA"
    SSA = "SSA"
    MM = "MM"
    MSF = "MSF"
    MF = "MF"
    MTM = "MTM"
    MSQM = "MSQM"
    # Diurnal
    Q1 = "Q1"
    RHO1 = "RHO1"
    O1 = "O1"
    M1 = "M1"
    P1 = "P1"
    S1 = "S1"
    K1 = "K1"
    J1 = "J1"
    OO1 = "OO1"
    # Semidiurnal
    EPS2 = "EPS2"
    TWO_N2 = "2N2"
    MU2 = "MU2"
    N2 = "N2"
    NU2 = "NU2"
    M2 = "M2"
    MKS2 = "MKS2"
    LAMBDA2 = "LAMBDA2"
    L2 = "L2"
    T2 = "T2"
    S2 = "S2"
    R2 = "R2"
    K2 = "K2"
    # Terdiurnal and shallow water
    M3 = "M3"
    N4 = "N4"
    MN4 = "MN4"
    M4 = "M4"
    MS4 = "MS4"
    S4 = "S4"
    M6 = "M6"
    M8 = "M8"

    def __str__(self) -> str:
        return self.value


# Angular speeds in degrees per mean solar hour
SPEEDS: Mapping[TidalConstant, float] = MappingProxyType({
    TidalConstant.SA: 0.0410686,        # Solar annual
    TidalConstant.SSA: 0.0821373,       # Solar semiannual
    TidalConstant.MM: 0.5443747,        # Lunar monthly
    TidalConstant.MSF: 1.0158958,       # Lunisolar synodic fortnightly
    TidalConstant.MF: 1.0980331,        # Lunisolar fortnightly
    TidalConstant.MTM: 1.6424078,       # Lunar termensual
    TidalConstant.MSQM: 2.1139288,      # Lunisolar quarter-monthly
    TidalConstant.Q1: 13.3986609,       # Larger lunar elliptic diurnal
    TidalConstant.RHO1: 13.4715145,     # Larger lunar evectional diurnal
    TidalConstant.O1: 13.9430356,       # Principal lunar diurnal
    TidalConstant.M1: 14.4966939,       # Smaller lunar elliptic diurnal
    TidalConstant.P1: 14.9589314,       # Principal solar diurnal
    TidalConstant.S1: 15.0,             # Solar diurnal
    TidalConstant.K1: 15.0410686,       # Lunisolar diurnal
    TidalConstant.J1: 15.5854433,       # Smaller lunar elliptic diurnal
    TidalConstant.OO1: 16.1391017,      # Lunar diurnal, second order
    TidalConstant.EPS2: 27.4238337,     # Lunar semidiurnal
    TidalConstant.TWO_N2: 27.8953548,   # Lunar elliptic semidiurnal, second order
    TidalConstant.MU2: 27.9682084,      # Variational
    TidalConstant.N2: 28.4397295,       # Larger lunar elliptic semidiurnal
    TidalConstant.NU2: 28.5125831,      # Larger lunar evectional
    TidalConstant.M2: 28.9841042,       # Principal lunar semidiurnal
    TidalConstant.MKS2: 29.0662415,     # Shallow water compound
    TidalConstant.LAMBDA2: 29.4556253,  # Smaller lunar evectional
    TidalConstant.L2: 29.5284789,       # Smaller lunar elliptic semidiurnal
    TidalConstant.T2: 29.9589333,       # Larger solar elliptic
    TidalConstant.S2: 30.0,             # Principal solar semidiurnal
    TidalConstant.R2: 30.0410667,       # Smaller solar elliptic
    TidalConstant.K2: 30.0821373,       # Lunisolar semidiurnal
    TidalConstant.M3: 43.4761563,       # Lunar terdiurnal
    TidalConstant.N4: 56.8794590,       # Shallow water overtide of N2
    TidalConstant.MN4: 57.4238337,      # Shallow water quarter diurnal
    TidalConstant.M4: 57.9682084,       # Shallow water overtide of M2
    TidalConstant.MS4: 58.9841042,      # Shallow water quarter diurnal
    TidalConstant.S4: 60.0,             # Shallow water overtide of S2
    TidalConstant.M6: 86.9523126,       # Shallow water overtide of M2
    TidalConstant.M8: 115.9364168,      # Shallow water eighth diurnal
})


def speed_of(constant: TidalConstant) -> float:
    """Angular speed of a constituent in degrees per hour."""
    return SPEEDS[constant]


def period_of(constant: TidalConstant) -> float:
    """Period of a constituent in seconds."""
    return 360.0 / SPEEDS[constant] * 3600.0


def lookup(name: str) -> TidalConstant:
    """
    Resolve a provider constituent name to a catalog entry.

    Matching ignores case and surrounding whitespace ('m2', ' M2 ').

    Args:
        name: Constituent name as published by the data provider

    Returns:
        The matching TidalConstant

    Raises:
        UnknownConstituent: If the name is not in the catalog
    """
    try:
        return TidalConstant(name.strip().upper())
    except (ValueError, AttributeError):
        raise UnknownConstituent(name) from None
