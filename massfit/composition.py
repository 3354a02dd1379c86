"""Elemental composition from NIST-style molecular formula names.

Formula names arrive underscore-delimited, as reconstructed by the JDX parser
from the whitespace-split ``##MOLFORM=`` tag (``C O2`` -> ``C_O2``).

Only a closed element set is recognised. Symbols are matched by substring
containment in declared order, so the order of ``ELEMENTS`` is a tie-break
and must not change. Only the last character of a token is read as the
multiplicity: ``C10`` is C with multiplicity 0.
"""

from __future__ import annotations

import logging
from types import MappingProxyType

logger = logging.getLogger(__name__)

# Symbol -> atomic number (protons). Declared order is the match order.
ELEMENTS = MappingProxyType({
    'H': 1,
    'C': 6,
    'O': 8,
    'N': 7,
    'Ar': 18,
    'D': 1,
})


def empty_composition() -> dict[str, int]:
    """Composition with every known element set to zero."""
    return {symbol: 0 for symbol in ELEMENTS}


def _split_token(token: str) -> tuple[str, int]:
    """Split a formula token into (symbol, multiplicity)."""
    if token[-1].isdigit():
        return token[:-1], int(token[-1])
    return token, 1


def analyze_formula(name: str) -> tuple[dict[str, int], int]:
    """Decode an underscore-delimited formula into element counts and Z.

    Args:
        name: Formula name such as ``"C_O2"`` or ``"H2_O"``

    Returns:
        Tuple of (composition, proton_count). The composition has a key for
        every element in ``ELEMENTS``; proton_count is the sum of
        count * atomic number.

    """
    composition = empty_composition()

    for token in name.split('_'):
        if not token:
            continue
        symbol, multiplicity = _split_token(token)

        for element in ELEMENTS:
            if element in symbol:
                composition[element] = multiplicity
                break
        else:
            logger.debug(f"Ignoring unrecognised formula token '{token}' in '{name}'")

    return composition, proton_count(composition)


def proton_count(composition: dict[str, int]) -> int:
    """Total number of protons for a composition."""
    return sum(composition.get(symbol, 0) * z for symbol, z in ELEMENTS.items())


def format_composition(composition: dict[str, int]) -> str:
    """Compact text of the non-zero counts in element order, e.g. ``C1 O2``."""
    parts = [f"{symbol}{count}" for symbol, count in composition.items() if count]
    return ' '.join(parts) if parts else '-'
