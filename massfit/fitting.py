"""Least-squares fitting of an observed spectrum to reference spectra.

The observed spectrum Y is modelled as a linear combination of reference
spectra, the columns of the design matrix X (n_mz rows x n references):

    Y = X . c + residuals
    c = (Xt X)^-1 Xt Y

Key concepts:
- Reference spectra are appended as columns in insertion order
- Xt, XtX and (XtX)^-1 are derived lazily and cached until the next append
- Standard errors come from Var(c) = (XtX)^-1 * sigma^2, where sigma^2 is
  estimated from the residuals of the fit

The default sigma^2 is the population variance of the residuals
(mean(r^2) - mean(r)^2). This is biased low compared with the regression
estimate sum(r^2) / (n_mz - n), which is available as
``variance_estimator="unbiased"``.

A FitEngine is not safe for concurrent mutation. Once all references are
added, calling ``gram_inverse()`` once leaves the caches warm and
``evaluate`` only reads them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError, DimensionMismatchError, SingularMatrixError
from .spectrum import N_MZ, SpectrumRecord, load_spectrum

logger = logging.getLogger(__name__)

VARIANCE_ESTIMATORS = ('population', 'unbiased')


class LazyMatrix:
    """A derived matrix computed on first access and cached until invalidated."""

    def __init__(self, compute: Callable[[], np.ndarray]):
        self._compute = compute
        self._value: np.ndarray | None = None
        self.dirty = True

    def get(self) -> np.ndarray:
        if self.dirty:
            self._value = self._compute()
            # Cached arrays are shared with callers and stay read-only
            self._value.flags.writeable = False
            self.dirty = False
        return self._value

    def invalidate(self) -> None:
        self._value = None
        self.dirty = True


@dataclass
class FitResult:
    """Result of fitting one observed spectrum.

    ``standard_errors`` is None unless the fit was evaluated with errors.
    """

    names: list[str]
    coefficients: np.ndarray
    fitted: np.ndarray
    residuals: np.ndarray
    standard_errors: np.ndarray | None = None
    residual_variance: float | None = None

    @property
    def r_squared(self) -> float:
        """Coefficient of determination of the fit (0.0 for a flat observation)."""
        observed = self.fitted + self.residuals
        ss_tot = np.sum((observed - np.mean(observed)) ** 2)
        ss_res = np.sum(self.residuals ** 2)
        return float(1.0 - ss_res / ss_tot) if ss_tot > 0 else 0.0

    def to_frame(self) -> pd.DataFrame:
        """Coefficient table with one row per reference spectrum."""
        errors = self.standard_errors
        if errors is None:
            errors = np.full(len(self.coefficients), np.nan)
        return pd.DataFrame({
            'reference': self.names,
            'coefficient': self.coefficients,
            'std_error': errors,
        })


class FitEngine:
    """A collection of reference spectra fitted to observations by least squares.

    Usage:
        engine = FitEngine()
        engine.add_spectrum_file("co2.jdx")
        engine.add_spectrum_file("n2.jdx")
        result = engine.evaluate(observed, with_error=True)
        print(result.to_frame())

    """

    def __init__(self, n_mz: int = N_MZ, variance_estimator: str = 'population'):
        """Initialize an empty collection.

        Args:
            n_mz: Number of m/z channels every spectrum must have
            variance_estimator: 'population' (mean(r^2) - mean(r)^2) or
                'unbiased' (sum(r^2) / (n_mz - n_references))

        """
        if variance_estimator not in VARIANCE_ESTIMATORS:
            raise ConfigurationError(
                f"Unknown variance estimator: {variance_estimator}. "
                f"Must be one of: {VARIANCE_ESTIMATORS}"
            )
        self.n_mz = n_mz
        self.variance_estimator = variance_estimator
        self._spectra: list[SpectrumRecord] = []
        self._design = np.zeros((n_mz, 0))

        self._transpose = LazyMatrix(lambda: self._design.T.copy())
        self._gram = LazyMatrix(lambda: self.transpose() @ self._design)
        self._gram_inverse = LazyMatrix(self._invert_gram)

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def add_spectrum(self, record: SpectrumRecord) -> None:
        """Append a reference spectrum as a new design-matrix column.

        Raises:
            DimensionMismatchError: If the record does not have n_mz channels

        """
        intensities = np.asarray(record.intensities, dtype=float)
        if intensities.shape != (self.n_mz,):
            raise DimensionMismatchError(
                f"Spectrum '{record.name}' has {intensities.size} m/z channels, "
                f"collection expects {self.n_mz}"
            )

        self._spectra.append(record.copy())
        self._design = np.column_stack([self._design, intensities])

        for cache in (self._transpose, self._gram, self._gram_inverse):
            cache.invalidate()

    def add_spectrum_file(self, path: Path | str) -> SpectrumRecord:
        """Load a JDX file and add it to the collection."""
        record = load_spectrum(path, n_mz=self.n_mz)
        logger.info(f"Adding {record.name} to collection")
        self.add_spectrum(record)
        return record

    @property
    def reference_spectra(self) -> list[SpectrumRecord]:
        return [s.copy() for s in self._spectra]

    @property
    def n_references(self) -> int:
        return len(self._spectra)

    def reference_names(self) -> list[str]:
        return [s.name for s in self._spectra]

    # ------------------------------------------------------------------
    # Matrices
    # ------------------------------------------------------------------

    def design_matrix(self) -> np.ndarray:
        """X, n_mz x n_references."""
        return self._design.copy()

    def transpose(self) -> np.ndarray:
        return self._transpose.get()

    def gram(self) -> np.ndarray:
        """XtX, n_references x n_references."""
        return self._gram.get()

    def gram_inverse(self) -> np.ndarray:
        """(XtX)^-1.

        Raises:
            SingularMatrixError: If XtX is not invertible

        """
        return self._gram_inverse.get()

    def gram_frame(self) -> pd.DataFrame:
        """XtX labelled by reference name."""
        names = self.reference_names()
        return pd.DataFrame(self.gram(), index=names, columns=names)

    def design_frame(self) -> pd.DataFrame:
        """X with an m/z index and one column per reference name."""
        return pd.DataFrame(
            self.design_matrix(),
            index=pd.Index(np.arange(1, self.n_mz + 1), name='mz'),
            columns=self.reference_names(),
        )

    def _invert_gram(self) -> np.ndarray:
        n = self.n_references
        if n == 0:
            raise SingularMatrixError("No reference spectra in collection")
        if n > self.n_mz:
            raise SingularMatrixError(
                f"{n} reference spectra exceed {self.n_mz} m/z channels; "
                "system is underdetermined"
            )
        rank = np.linalg.matrix_rank(self._design)
        if rank < n:
            raise SingularMatrixError(
                f"Reference spectra are linearly dependent (rank {rank} < {n})"
            )
        try:
            return np.linalg.inv(self.gram())
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(f"Cannot invert XtX: {e}") from e

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def _as_observation(self, observed: SpectrumRecord | np.ndarray) -> np.ndarray:
        if isinstance(observed, SpectrumRecord):
            observed = observed.intensities
        return self._as_vector(observed, "Observed spectrum")

    def _as_vector(self, values, label: str) -> np.ndarray:
        """A length-n_mz vector from a flat or single-column array."""
        v = np.asarray(values, dtype=float)
        if v.shape not in ((self.n_mz,), (self.n_mz, 1)):
            raise DimensionMismatchError(
                f"{label} has shape {v.shape}, collection expects ({self.n_mz},)"
            )
        return v.reshape(self.n_mz)

    def _residual_variance(self, residuals: np.ndarray) -> float:
        n = residuals.size
        if self.variance_estimator == 'unbiased':
            dof = n - self.n_references
            if dof <= 0:
                raise ConfigurationError(
                    f"Unbiased variance needs more m/z channels ({n}) "
                    f"than reference spectra ({self.n_references})"
                )
            sigma_sq = np.sum(residuals ** 2) / dof
        else:
            mean = np.sum(residuals) / n
            sigma_sq = np.sum(residuals ** 2) / n - mean * mean
        # Rounding can leave an exact fit slightly negative
        return max(float(sigma_sq), 0.0)

    def evaluate(
        self,
        observed: SpectrumRecord | np.ndarray,
        with_error: bool = False,
        weights: np.ndarray | None = None,
    ) -> FitResult:
        """Fit the observed spectrum as a linear combination of the references.

        Args:
            observed: Observed intensities (length n_mz) or a SpectrumRecord
            with_error: Also estimate per-coefficient standard errors
            weights: Optional per-channel weights for weighted least squares.
                Weighted fits do not use the cached XtX.

        Returns:
            FitResult with coefficients in reference insertion order

        Raises:
            DimensionMismatchError: If observed or weights have the wrong length
            SingularMatrixError: If XtX (or XtWX) is not invertible
            ConfigurationError: If weights are negative, or the unbiased variance
                has no degrees of freedom left

        """
        y = self._as_observation(observed)

        if weights is None:
            inverse = self.gram_inverse()
            xty = self.transpose() @ y
        else:
            w = self._as_vector(weights, "Weights")
            if np.any(w < 0):
                raise ConfigurationError("Weights must be non-negative")
            # Validates rank and size before the weighted product
            self.gram_inverse()
            weighted_t = self.transpose() * w
            try:
                inverse = np.linalg.inv(weighted_t @ self._design)
            except np.linalg.LinAlgError as e:
                raise SingularMatrixError(f"Cannot invert XtWX: {e}") from e
            xty = weighted_t @ y

        coefficients = inverse @ xty
        fitted = self._design @ coefficients
        residuals = y - fitted

        result = FitResult(
            names=self.reference_names(),
            coefficients=coefficients,
            fitted=fitted,
            residuals=residuals,
        )

        if with_error:
            if weights is None:
                sigma_sq = self._residual_variance(residuals)
            else:
                sigma_sq = self._residual_variance(np.sqrt(w) * residuals)
            variance = inverse * sigma_sq
            result.residual_variance = sigma_sq
            result.standard_errors = np.sqrt(np.clip(np.diag(variance), 0.0, None))

        logger.debug(
            f"Fit {self.n_references} references: "
            + ', '.join(f"{n}={c:.4g}" for n, c in zip(result.names, coefficients))
        )
        return result
