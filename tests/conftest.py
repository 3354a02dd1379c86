"""Shared fixtures: small NIST-style JDX files written to tmp_path."""

from pathlib import Path

import pytest

JDX_TEMPLATE = """##TITLE={title}
##JCAMP-DX=4.24
##DATA TYPE=MASS SPECTRUM
##ORIGIN=NIST Mass Spectrometry Data Center
##OWNER=NIST OSRD
##MOLFORM={formula}
##MW={mw}
##$NIST MASS SPEC NO=12345
##NPOINTS={npoints}
##XUNITS=M/Z
##YUNITS=RELATIVE ABUNDANCE
##PEAK TABLE=(XY..XY)
{peaks}
##END=
"""


def make_jdx(title: str, formula: str, peaks: dict[int, int], mw: int = 0) -> str:
    """Render a JDX document with peaks written five per line."""
    pairs = [f"{mz},{value}" for mz, value in sorted(peaks.items())]
    lines = [' '.join(pairs[i:i + 5]) for i in range(0, len(pairs), 5)]
    return JDX_TEMPLATE.format(
        title=title,
        formula=formula,
        mw=mw,
        npoints=len(pairs),
        peaks='\n'.join(lines),
    )


CO2_PEAKS = {12: 87, 16: 96, 22: 19, 28: 98, 29: 1, 44: 9999, 45: 118, 46: 39}
N2_PEAKS = {14: 1379, 15: 5, 28: 9999, 29: 74}
H2O_PEAKS = {1: 10, 16: 90, 17: 2122, 18: 9999, 19: 50, 20: 22}
AR_PEAKS = {20: 1462, 36: 34, 38: 6, 40: 9999}


@pytest.fixture
def write_jdx(tmp_path):
    """Factory writing a JDX file and returning its path."""
    def _write(filename: str, title: str, formula: str, peaks: dict[int, int],
               mw: int = 0) -> Path:
        path = tmp_path / filename
        path.write_text(make_jdx(title, formula, peaks, mw))
        return path
    return _write


@pytest.fixture
def co2_file(write_jdx):
    return write_jdx("co2.jdx", "Carbon dioxide", "C O2", CO2_PEAKS, mw=44)


@pytest.fixture
def n2_file(write_jdx):
    return write_jdx("n2.jdx", "Nitrogen", "N2", N2_PEAKS, mw=28)


@pytest.fixture
def h2o_file(write_jdx):
    return write_jdx("h2o.jdx", "Water", "H2 O", H2O_PEAKS, mw=18)


@pytest.fixture
def ar_file(write_jdx):
    return write_jdx("ar.jdx", "Argon", "Ar", AR_PEAKS, mw=40)
