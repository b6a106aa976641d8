"""Batch command line: decode Study Box WAV captures into containers."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .container import write_outputs
from .decoder import DEFAULT_CONFIG, DecoderConfig, decode_wav
from .wav import WavImage

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="studybox_tool",
        description=(
            "Decode 16-bit stereo Study Box recordings into .studybox containers. "
            "Each file is written to a directory named after it."
        ),
    )
    parser.add_argument(
        "wav_files",
        nargs="*",
        type=Path,
        help="WAV captures to decode (default: every *.wav in the current directory)",
    )
    return parser


def _discover(base: Path) -> list[Path]:
    return sorted(p for p in base.glob("*.wav") if p.is_file())


def process_file(
    path: Path, base: Path, config: DecoderConfig = DEFAULT_CONFIG
) -> bool:
    """Decode one file; return True when a container was written."""

    logger.info("Processing: %s", path.name)
    wav = WavImage.from_file(path)
    result = decode_wav(wav, config)
    outputs = write_outputs(result, base / path.stem, wav)
    return outputs.container is not None


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s")

    base = Path.cwd()
    wav_files = list(args.wav_files) or _discover(base)
    if not wav_files:
        logger.warning("No WAV files to process in %s", base)
        return 0

    ok = True
    for path in wav_files:
        try:
            ok = process_file(path, base) and ok
        except (OSError, ValueError) as exc:
            logger.error("Skipping %s: %s", path, exc)
            ok = False
    return 0 if ok else 1


__all__ = ["build_arg_parser", "main", "process_file"]
