"""Exception hierarchy for massfit.

Every error derives from MassFitError and also from the builtin exception a
caller would naturally expect (ValueError for bad content, OSError for files
that cannot be opened, and so on), so ``except ValueError`` keeps working.
"""

from __future__ import annotations

import numpy as np


class MassFitError(Exception):
    """Base class for all massfit errors."""


class FileOpenError(MassFitError, OSError):
    """A spectrum file is missing or cannot be read."""


class MalformedFileError(MassFitError, ValueError):
    """A required tag is missing or a tagged block is never terminated."""


class MalformedPeakError(MalformedFileError):
    """A peak-table token cannot be parsed as ``index,value``."""


class DimensionMismatchError(MassFitError, ValueError):
    """A vector length disagrees with the collection's m/z channel count."""


class SingularMatrixError(MassFitError, np.linalg.LinAlgError):
    """The Gram matrix XtX cannot be inverted.

    Raised for rank-deficient (collinear or duplicated) reference sets and for
    collections with more reference spectra than m/z channels.
    """


class OutOfRangeError(MassFitError, IndexError):
    """An m/z value outside the valid 1-based channel range was requested."""


class ConfigurationError(MassFitError, ValueError):
    """A fit option is invalid or cannot be applied to the collection."""
