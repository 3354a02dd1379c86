"""Tests for observation loading and result export."""

import numpy as np
import pandas as pd
import pytest

from massfit.exceptions import FileOpenError, MalformedFileError
from massfit.fitting import FitEngine
from massfit.io import load_observation, write_fit_result, write_table
from massfit.spectrum import N_MZ


class TestLoadObservation:
    """Tests for load_observation."""

    def test_tsv_with_header(self, tmp_path):
        path = tmp_path / 'obs.tsv'
        path.write_text("mz\tintensity\n28\t0.8\n44\t0.35\n")
        observed = load_observation(path)
        assert observed.shape == (N_MZ,)
        assert observed[27] == pytest.approx(0.8)
        assert observed[43] == pytest.approx(0.35)
        assert np.count_nonzero(observed) == 2

    def test_csv_without_header(self, tmp_path):
        path = tmp_path / 'obs.csv'
        path.write_text("1,0.5\n50,0.25\n")
        observed = load_observation(path)
        assert observed[0] == 0.5
        assert observed[49] == 0.25

    def test_out_of_range_rows_dropped(self, tmp_path):
        path = tmp_path / 'obs.csv'
        path.write_text("0,1.0\n10,0.5\n51,1.0\n")
        observed = load_observation(path)
        assert np.count_nonzero(observed) == 1
        assert observed[9] == 0.5

    def test_jdx_observation(self, co2_file):
        observed = load_observation(co2_file)
        assert observed[43] == 1.0

    def test_single_column_rejected(self, tmp_path):
        path = tmp_path / 'obs.csv'
        path.write_text("1\n2\n")
        with pytest.raises(MalformedFileError):
            load_observation(path)

    def test_non_numeric_rejected(self, tmp_path):
        path = tmp_path / 'obs.csv'
        path.write_text("mz,intensity\n1,high\n")
        with pytest.raises(MalformedFileError):
            load_observation(path)

    def test_empty_table_rejected(self, tmp_path):
        path = tmp_path / 'empty.tsv'
        path.write_text("")
        with pytest.raises(MalformedFileError, match='empty'):
            load_observation(path)

    def test_duplicate_mz_rejected(self, tmp_path):
        path = tmp_path / 'obs.csv'
        path.write_text("28,0.5\n44,0.2\n28,0.9\n")
        with pytest.raises(MalformedFileError, match='Duplicate'):
            load_observation(path)

    def test_jdx_observation_is_writable(self, co2_file):
        observed = load_observation(co2_file)
        observed[0] = 0.5
        assert observed[0] == 0.5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileOpenError):
            load_observation(tmp_path / 'missing.tsv')


class TestWriteResults:
    """Tests for writing tables."""

    def test_write_fit_result_tsv(self, tmp_path, co2_file, n2_file):
        engine = FitEngine()
        co2 = engine.add_spectrum_file(co2_file)
        engine.add_spectrum_file(n2_file)
        result = engine.evaluate(co2, with_error=True)

        out = write_fit_result(result, tmp_path / 'out' / 'fit.tsv')
        df = pd.read_csv(out, sep='\t')
        assert list(df['reference']) == ['C_O2', 'N2']
        assert df['coefficient'].iloc[0] == pytest.approx(1.0)
        assert df['coefficient'].iloc[1] == pytest.approx(0.0, abs=1e-9)

    def test_write_table_csv_with_index(self, tmp_path):
        frame = pd.DataFrame({'a': [1.0, 2.0]}, index=['x', 'y'])
        out = write_table(frame, tmp_path / 'm.csv', index=True)
        text = out.read_text().splitlines()
        assert text[0] == ',a'
        assert text[1] == 'x,1.0'
