"""Command-line entry point

Compares a learner recording against a native reference and prints the
comparison report as JSON:

    python -m pronunciation_engine.main NATIVE USER [--config PATH] [--no-dtw]

Recordings are decoded with librosa at their native sample rate and mixed
down to mono. Logs go to stderr (and to a file when ``logging.file`` is
configured) so stdout carries only the report.
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import librosa
import numpy as np
import yaml

from pronunciation_engine.config.config_loader import AnalysisConfig, LoggingConfig, load_analysis_config
from pronunciation_engine.models.buffers import SampleBuffer
from pronunciation_engine.models.results import ComparisonResult
from pronunciation_engine.scoring.comparator import PronunciationComparator


logger = logging.getLogger(__name__)


def setup_logging(settings: LoggingConfig) -> None:
    """Configure root logging from the ``logging`` config section"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file:
        Path(settings.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.file))

    logging.basicConfig(
        level=getattr(logging, str(settings.level).upper(), logging.INFO),
        format=settings.format,
        handlers=handlers,
        force=True,
    )


def load_recording(path: str) -> SampleBuffer:
    """Decode an audio file into a mono SampleBuffer at its own sample rate"""
    samples, sample_rate = librosa.load(path, sr=None, mono=True)
    logger.info(f"Loaded {path}: {len(samples)} samples at {sample_rate} Hz")
    return SampleBuffer(samples=samples, sample_rate=int(sample_rate))


def _to_builtin(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def result_to_dict(result: ComparisonResult) -> Dict[str, Any]:
    return {
        'generated_at': datetime.now(timezone.utc).isoformat(),
        'overall_score': result.overall_score,
        'breakdown': result.breakdown,
        'feedback': result.feedback,
        'detailed_report': result.detailed_report,
    }


async def main_async(native_path: str, user_path: str, config: AnalysisConfig) -> ComparisonResult:
    comparator = PronunciationComparator(config)
    native = load_recording(native_path)
    user = load_recording(user_path)
    return await comparator.compare_async(native, user)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='pronunciation_engine',
        description='Score a pronunciation attempt against a native reference recording.',
    )
    parser.add_argument('native', help='Native reference recording')
    parser.add_argument('user', help='Learner recording')
    parser.add_argument('--config', default=None, help='YAML configuration file')
    parser.add_argument('--no-dtw', action='store_true',
                        help='Compare tracks point-by-point instead of with DTW')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point

    Returns:
        Process exit code
    """
    args = parse_args(argv)

    try:
        config = load_analysis_config(args.config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        logging.basicConfig(level=logging.ERROR, format=LoggingConfig().format)
        logger.error(f"Invalid configuration: {e}")
        return 2

    if args.no_dtw:
        config = dataclasses.replace(
            config, scoring=dataclasses.replace(config.scoring, use_dtw=False)
        )

    setup_logging(config.logging)

    for path in (args.native, args.user):
        if not Path(path).exists():
            logger.error(f"Audio file not found: {path}")
            return 1

    try:
        result = asyncio.run(main_async(args.native, args.user, config))
    except KeyboardInterrupt:
        logger.info("Comparison interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Comparison failed: {e}", exc_info=True)
        return 1

    print(json.dumps(result_to_dict(result), indent=2, default=_to_builtin))
    return 0


if __name__ == "__main__":
    sys.exit(main())
