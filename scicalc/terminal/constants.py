"""Physics and mathematics constants available in the terminal.

The table is built once at import time and exposed read-only.
"""

from __future__ import annotations

import math
from types import MappingProxyType
from typing import Mapping

from scicalc.terminal.errors import ConstantLookupError

_CONSTANTS: dict[str, float] = {
    # Fundamental
    "c": 2.99792458e8,           # speed of light (m/s)
    "h": 6.62607015e-34,         # Planck constant (J s)
    "hbar": 1.054571817e-34,     # reduced Planck constant
    "e": 1.602176634e-19,        # elementary charge (C)
    "me": 9.1093837015e-31,      # electron mass (kg)
    "mp": 1.67262192369e-27,     # proton mass (kg)
    "mn": 1.67492749804e-27,     # neutron mass (kg)
    "k": 1.380649e-23,           # Boltzmann constant (J/K)
    "NA": 6.02214076e23,         # Avogadro constant (1/mol)
    "R": 8.314462618,            # gas constant (J/(mol K))
    "G": 6.67430e-11,            # gravitational constant (m^3/(kg s^2))
    "epsilon0": 8.8541878128e-12,  # vacuum permittivity (F/m)
    "mu0": 1.25663706212e-6,     # vacuum permeability (H/m)
    "sigma": 5.670374419e-8,     # Stefan-Boltzmann constant (W/(m^2 K^4))
    "alpha": 7.2973525693e-3,    # fine structure constant
    # Mathematical
    "pi": math.pi,
    "e_math": math.e,
    # Derived
    "ke": 8.9875517923e9,        # Coulomb constant (N m^2/C^2)
    "a0": 5.29177210903e-11,     # Bohr radius (m)
    "Ry": 1.0973731568160e7,     # Rydberg constant (1/m)
    "g": 9.80665,                # standard gravity (m/s^2)
}

CONSTANTS: Mapping[str, float] = MappingProxyType(_CONSTANTS)


def lookup_constant(name: str, constants: Mapping[str, float] = CONSTANTS) -> float:
    """Return the value of a named constant or raise ``ConstantLookupError``."""
    try:
        return constants[name]
    except KeyError:
        raise ConstantLookupError(name) from None
