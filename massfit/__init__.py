"""
massfit: least-squares decomposition of electron-ionisation mass spectra

Parses NIST WebBook JDX mass spectra and fits an observed spectrum as a
linear combination of reference spectra, with standard errors on the
fitted coefficients.

See: https://webbook.nist.gov/chemistry/ for the source spectra.
"""

__version__ = "0.1.0"

from .composition import (
    ELEMENTS,
    analyze_formula,
    format_composition,
)
from .exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    FileOpenError,
    MalformedFileError,
    MalformedPeakError,
    MassFitError,
    OutOfRangeError,
    SingularMatrixError,
)
from .fitting import (
    FitEngine,
    FitResult,
    LazyMatrix,
)
from .io import (
    load_observation,
    write_fit_result,
)
from .spectrum import (
    N_MZ,
    JDXSpectrumParser,
    SpectrumRecord,
    load_spectrum,
)
