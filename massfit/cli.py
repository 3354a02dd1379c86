"""Command-line interface for massfit.

Fit an observed mass spectrum as a linear combination of NIST reference
spectra, or inspect parsed JDX files.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from . import __version__
from .composition import format_composition
from .exceptions import MassFitError
from .fitting import VARIANCE_ESTIMATORS, FitEngine
from .io import load_observation, write_fit_result, write_table
from .spectrum import N_MZ, load_spectrum

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def load_config(config_path: Path | None) -> dict:
    """Load configuration from YAML file or return defaults."""
    defaults = {
        'spectrum': {
            'n_mz': N_MZ,
        },
        'fit': {
            'with_error': True,
            'variance_estimator': 'population',
        },
        'output': {
            'float_format': '%.6g',
        },
    }

    if config_path and config_path.exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f) or {}
        # Deep merge user config over defaults
        defaults = _deep_merge(defaults, user_config)
    elif config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")

    return defaults


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override dict into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _build_engine(reference_paths: list[str], config: dict) -> FitEngine:
    engine = FitEngine(
        n_mz=int(config['spectrum']['n_mz']),
        variance_estimator=config['fit']['variance_estimator'],
    )
    for path in reference_paths:
        engine.add_spectrum_file(Path(path))
    return engine


def cmd_show(args: argparse.Namespace) -> int:
    """Print the parsed contents of JDX files."""
    config = load_config(Path(args.config) if args.config else None)
    n_mz = int(config['spectrum']['n_mz'])

    for path in args.files:
        record = load_spectrum(Path(path), n_mz=n_mz)
        logger.info(f"{record.name} from {record.source_file}")
        logger.info(f"  Z = {record.proton_count}, composition: "
                    f"{format_composition(record.composition)}")
        for mz, intensity in record.nonzero_peaks():
            print(f"{mz}\t{intensity:.6g}")

    return 0


def cmd_fit(args: argparse.Namespace) -> int:
    """Fit an observed spectrum against reference spectra."""
    config = load_config(Path(args.config) if args.config else None)
    if args.variance_estimator:
        config['fit']['variance_estimator'] = args.variance_estimator
    if args.with_error is not None:
        config['fit']['with_error'] = args.with_error

    engine = _build_engine(args.references, config)
    observed = load_observation(Path(args.input), n_mz=engine.n_mz)

    result = engine.evaluate(observed, with_error=config['fit']['with_error'])
    logger.info(f"Fitted {engine.n_references} references, R^2 = {result.r_squared:.4f}")

    float_format = config['output']['float_format']
    if args.output:
        write_fit_result(result, Path(args.output), float_format=float_format)
    else:
        print(result.to_frame().to_string(index=False, float_format=lambda v: float_format % v))

    return 0


def cmd_matrix(args: argparse.Namespace) -> int:
    """Write the design matrix or the Gram matrix."""
    config = load_config(Path(args.config) if args.config else None)
    engine = _build_engine(args.references, config)

    frame = engine.gram_frame() if args.gram else engine.design_frame()
    float_format = config['output']['float_format']
    if args.output:
        write_table(frame, Path(args.output), float_format=float_format, index=True)
    else:
        print(frame.to_string(float_format=lambda v: float_format % v))

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='massfit',
        description='massfit: least-squares decomposition of mass spectra\n\n'
                    'Fit an observed spectrum as a linear combination of NIST\n'
                    'reference spectra (JDX format).\n\n'
                    'Primary usage:\n'
                    '  massfit fit -r co2.jdx n2.jdx -i observed.tsv -o fit.tsv',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    fit_parser = subparsers.add_parser(
        'fit',
        help='Fit an observed spectrum to reference spectra',
        description='Solve observed = sum(c_j * reference_j) by least squares and '
                    'report the coefficients with optional standard errors.'
    )
    fit_parser.add_argument('-r', '--references', nargs='+', required=True,
                            help='Reference spectrum JDX files (column order)')
    fit_parser.add_argument('-i', '--input', required=True,
                            help='Observed spectrum (.jdx, or m/z,intensity TSV/CSV)')
    fit_parser.add_argument('-o', '--output', help='Output coefficient table (TSV/CSV)')
    fit_parser.add_argument('-c', '--config', help='Configuration YAML file')
    fit_parser.add_argument('--with-error', dest='with_error', action='store_true',
                            default=None, help='Estimate standard errors')
    fit_parser.add_argument('--no-error', dest='with_error', action='store_false',
                            help='Skip standard errors')
    fit_parser.add_argument('--variance-estimator', choices=VARIANCE_ESTIMATORS,
                            help='Residual variance estimator for standard errors')

    show_parser = subparsers.add_parser('show', help='Show parsed JDX spectra')
    show_parser.add_argument('files', nargs='+', help='JDX files')
    show_parser.add_argument('-c', '--config', help='Configuration YAML file')

    matrix_parser = subparsers.add_parser('matrix', help='Write the design or Gram matrix')
    matrix_parser.add_argument('-r', '--references', nargs='+', required=True,
                               help='Reference spectrum JDX files')
    matrix_parser.add_argument('-o', '--output', help='Output table (TSV/CSV)')
    matrix_parser.add_argument('-c', '--config', help='Configuration YAML file')
    matrix_parser.add_argument('--gram', action='store_true', help='Write XtX instead of X')

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    commands = {
        'fit': cmd_fit,
        'show': cmd_show,
        'matrix': cmd_matrix,
    }
    if args.command not in commands:
        parser.print_help()
        return 1

    try:
        return commands[args.command](args)
    except MassFitError as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
