"""Mass spectrum records and the NIST JDX parser.

This module reads electron-ionisation mass spectra in the JCAMP-DX flavour
served by the NIST Chemistry WebBook and turns them into SpectrumRecord
objects with a fixed-length, normalized intensity vector.

Supported file layout (whitespace tokenized, line breaks are not significant):

    ##MOLFORM=C O2
    ...
    ##PEAK TABLE=(XY..XY)
    1,210 2,9999
    ##END=

Key concepts:
- The formula may be split across tokens; the pieces are joined with '_'
  until the next token containing '#'
- Peak values are relative abundances on a 0-9999 scale, divided by 9999
- Intensities are indexed by integer m/z, 1-based, over a fixed channel count
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

import numpy as np
import pandas as pd

from .composition import analyze_formula, empty_composition
from .exceptions import FileOpenError, MalformedFileError, MalformedPeakError, OutOfRangeError

logger = logging.getLogger(__name__)

# Number of m/z channels (m/z 1..N_MZ) kept per spectrum
N_MZ = 50

# NIST peak tables store relative abundance with the base peak at 9999
INTENSITY_SCALE = 9999.0

MOLFORM_TAG = '##MOLFORM='
PEAK_TABLE_TOKEN = 'TABLE=(XY..XY)'
END_TAG = '##END='

_PEAK_SPLIT = re.compile(r'[,\[\]]')


@dataclass
class SpectrumRecord:
    """A single parsed mass spectrum.

    ``intensities[i]`` holds the relative intensity (0-1) at m/z ``i + 1``.
    Records read from a file have a read-only intensity array; use ``reload``
    to replace it, or ``copy`` for a writable record.
    """

    name: str = ''
    filename: str = ''
    composition: dict[str, int] = field(default_factory=empty_composition)
    proton_count: int = 0
    intensities: np.ndarray = field(default_factory=lambda: np.zeros(N_MZ))

    @classmethod
    def empty(cls, n_mz: int = N_MZ) -> SpectrumRecord:
        """Create an empty spectrum with all intensities zero."""
        return cls(intensities=np.zeros(n_mz))

    @property
    def n_mz(self) -> int:
        return len(self.intensities)

    @property
    def mz(self) -> np.ndarray:
        """The 1-based m/z axis matching ``intensities``."""
        return np.arange(1, self.n_mz + 1)

    @property
    def source_file(self) -> str:
        return self.filename

    def intensity_at(self, mz: int) -> float:
        """Return the relative intensity at an integer m/z.

        Raises:
            OutOfRangeError: If mz is outside [1, n_mz]

        """
        if mz < 1 or mz > self.n_mz:
            raise OutOfRangeError(f"m/z {mz} outside valid range [1, {self.n_mz}]")
        return float(self.intensities[mz - 1])

    def nonzero_peaks(self) -> list[tuple[int, float]]:
        """List of (m/z, intensity) for every non-zero channel."""
        indices = np.flatnonzero(self.intensities)
        return [(int(i) + 1, float(self.intensities[i])) for i in indices]

    def to_series(self) -> pd.Series:
        """Intensities as a Series indexed by m/z and named after the molecule."""
        return pd.Series(
            self.intensities,
            index=pd.Index(self.mz, name='mz'),
            name=self.name,
        )

    def copy(self) -> SpectrumRecord:
        clone = copy.deepcopy(self)
        clone.intensities = np.array(self.intensities, dtype=float)
        return clone

    def reload(self, path: Path | str) -> None:
        """Re-read this record from another file, replacing all fields.

        The record is left untouched if parsing fails.
        """
        fresh = load_spectrum(path, n_mz=self.n_mz)
        self.name = fresh.name
        self.filename = fresh.filename
        self.composition = fresh.composition
        self.proton_count = fresh.proton_count
        self.intensities = fresh.intensities


def _parse_peak(token: str) -> tuple[int, float]:
    """Parse an ``index,value`` peak token into (m/z, raw intensity)."""
    parts = [p for p in _PEAK_SPLIT.split(token) if p]
    if len(parts) < 2:
        raise MalformedPeakError(f"Peak token '{token}' is not of the form index,value")
    try:
        return int(parts[0]), float(parts[1])
    except ValueError as e:
        raise MalformedPeakError(f"Peak token '{token}' is not numeric: {e}") from e


class JDXSpectrumParser:
    """Parse a NIST JDX mass spectrum file into a SpectrumRecord.

    Usage:
        record = JDXSpectrumParser("co2.jdx").parse()

    The parser only fills ``name``, ``filename`` and ``intensities``; element
    counts are added by ``load_spectrum`` through ``analyze_formula``.
    """

    def __init__(self, path: Path | str, n_mz: int = N_MZ):
        """Initialize parser.

        Args:
            path: Path to the .jdx file
            n_mz: Number of m/z channels to keep (peaks above are dropped)

        """
        self.path = Path(path)
        self.n_mz = n_mz

    def _tokens(self) -> Iterator[str]:
        try:
            text = self.path.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            raise FileOpenError(f"Cannot open spectrum file {self.path}: {e}") from e
        return iter(text.split())

    def parse(self) -> SpectrumRecord:
        """Read the file and return the raw record.

        Raises:
            FileOpenError: If the file cannot be read
            MalformedFileError: If ##MOLFORM= is missing or the peak table is
                not closed by ##END=
            MalformedPeakError: If a peak token cannot be parsed

        """
        tokens = self._tokens()
        formula_parts: list[str] = []
        found_formula = False
        found_table = False
        intensities = np.zeros(self.n_mz)

        for token in tokens:
            if MOLFORM_TAG in token:
                found_formula = True
                head = token.replace(MOLFORM_TAG, '')
                if head:
                    formula_parts.append(head)
                # The terminating '#' token is consumed here, not re-examined
                for word in tokens:
                    if '#' in word:
                        break
                    formula_parts.append(word)

            elif token == PEAK_TABLE_TOKEN:
                found_table = True
                self._read_peak_table(tokens, intensities)

        if not found_formula:
            raise MalformedFileError(f"No {MOLFORM_TAG} tag found in {self.path}")

        intensities.flags.writeable = False
        name = '_'.join(formula_parts)
        if not found_table:
            logger.warning(f"No peak table in {self.path}; spectrum '{name}' is empty")

        return SpectrumRecord(
            name=name,
            filename=str(self.path),
            intensities=intensities,
        )

    def _read_peak_table(self, tokens: Iterator[str], intensities: np.ndarray) -> None:
        for word in tokens:
            if word == END_TAG:
                return
            mz, value = _parse_peak(word)
            if mz < 1 or mz > self.n_mz:
                logger.warning(
                    f"{self.path.name}: ignoring peak at m/z {mz} "
                    f"outside [1, {self.n_mz}]"
                )
                continue
            intensities[mz - 1] = value / INTENSITY_SCALE

        raise MalformedFileError(f"Peak table in {self.path} is not terminated by {END_TAG}")


def load_spectrum(path: Path | str, n_mz: int = N_MZ) -> SpectrumRecord:
    """Load a JDX spectrum and fill in its elemental composition.

    Args:
        path: Path to the .jdx file
        n_mz: Number of m/z channels

    Returns:
        SpectrumRecord with name, composition, proton count and intensities

    """
    record = JDXSpectrumParser(path, n_mz=n_mz).parse()
    record.composition, record.proton_count = analyze_formula(record.name)
    logger.debug(
        f"Loaded {record.name} (Z={record.proton_count}, "
        f"{len(record.nonzero_peaks())} peaks) from {path}"
    )
    return record
