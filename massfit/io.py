"""Loading observed spectra and writing fit results."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .exceptions import FileOpenError, MalformedFileError
from .fitting import FitResult
from .spectrum import N_MZ, load_spectrum

logger = logging.getLogger(__name__)

JDX_SUFFIXES = ['.jdx', '.jcamp', '.dx']


def _separator(path: Path) -> str:
    suffix = path.suffix.lower()
    return '\t' if suffix in ['.tsv', '.txt'] else ','


def load_observation(path: Path | str, n_mz: int = N_MZ) -> np.ndarray:
    """Load an observed spectrum as an n_mz intensity vector.

    JDX files go through the spectrum parser. Tables (TSV/CSV) must have the
    m/z in the first column and the intensity in the second; a header row is
    detected by whether the first cell is numeric. Intensities from tables are
    used as-is (no 9999 normalization).

    Args:
        path: Path to .jdx, .tsv, .txt or .csv file
        n_mz: Number of m/z channels

    Returns:
        Array of length n_mz indexed by m/z - 1

    """
    path = Path(path)
    if path.suffix.lower() in JDX_SUFFIXES:
        return load_spectrum(path, n_mz=n_mz).intensities.copy()

    if not path.exists():
        raise FileOpenError(f"Observation file not found: {path}")

    sep = _separator(path)
    try:
        df = pd.read_csv(path, sep=sep, header=None)
    except pd.errors.EmptyDataError as e:
        raise MalformedFileError(f"Observation table {path} is empty") from e
    if df.shape[1] < 2:
        raise MalformedFileError(f"Observation table {path} needs m/z and intensity columns")

    first = pd.to_numeric(df.iloc[:1, 0], errors='coerce')
    if first.isna().all():
        df = df.iloc[1:]

    mz = pd.to_numeric(df.iloc[:, 0], errors='coerce')
    intensity = pd.to_numeric(df.iloc[:, 1], errors='coerce')
    if mz.isna().any() or intensity.isna().any():
        raise MalformedFileError(f"Non-numeric values in observation table {path}")

    mz = mz.round().astype(int)
    duplicated = mz[mz.duplicated()].unique().tolist()
    if duplicated:
        raise MalformedFileError(f"Duplicate m/z values in observation table {path}: {duplicated}")

    in_range = (mz >= 1) & (mz <= n_mz)
    n_dropped = int((~in_range).sum())
    if n_dropped:
        logger.warning(f"{path.name}: dropped {n_dropped} rows with m/z outside [1, {n_mz}]")

    observed = np.zeros(n_mz)
    observed[mz[in_range].to_numpy() - 1] = intensity[in_range].to_numpy()
    return observed


def write_table(df: pd.DataFrame, path: Path | str, float_format: str | None = None,
                index: bool = False) -> Path:
    """Write a DataFrame as TSV or CSV depending on the suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep=_separator(path), index=index, float_format=float_format)
    logger.info(f"Wrote {len(df)} rows to {path}")
    return path


def write_fit_result(result: FitResult, path: Path | str,
                     float_format: str | None = None) -> Path:
    """Write the coefficient table of a fit."""
    return write_table(result.to_frame(), path, float_format=float_format)
