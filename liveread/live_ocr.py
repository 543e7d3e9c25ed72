#!/usr/bin/env python3
"""
Live Document OCR

Watches a camera, video or folder of frames, waits for the document in view
to hold steady, and emits its text once per document.

Usage:
    python -m liveread.live_ocr --input 0 --engine easyocr
    python -m liveread.live_ocr --input receipt.mp4 --out_dir out --keyword coffee
    python -m liveread.live_ocr --input frames/ --scan_at 0 --no_roi
"""

import argparse
import sys
import warnings

from liveread.core import (
    ConfigError, EngineConfig, EngineState, LiveOCRPipeline, create_live_engine,
)

warnings.filterwarnings("ignore", category=FutureWarning)
warnings.filterwarnings("ignore", category=UserWarning, module="torch")


STATE_MESSAGES = {
    EngineState.FINDING_ROI: "Align document in frame",
    EngineState.UNSTABLE: "Hold steady...",
    EngineState.PROCESSING: "Processing...",
    EngineState.READY: "Ready",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Live Document OCR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Webcam, emit each receipt once it holds steady
  python -m liveread.live_ocr --input 0

  # Video file, save emissions as JSON, flag receipts mentioning coffee
  python -m liveread.live_ocr --input receipt.mp4 --out_dir out --keyword coffee

  # Force an immediate capture of frames 0 and 120
  python -m liveread.live_ocr --input frames/ --scan_at 0 120

Thresholds also read LIVEREAD_* environment variables
(e.g. LIVEREAD_WINDOW_SIZE=8); flags take precedence.
        """
    )

    parser.add_argument(
        "--input", "-i", required=True,
        help="Camera index, video file, image, or folder of frames"
    )
    parser.add_argument(
        "--out_dir", "-o", default=None,
        help="Directory for emitted results as JSON (default: don't save)"
    )
    parser.add_argument(
        "--engine", "-e", choices=["paddle", "easyocr", "tesseract"], default=None,
        help="OCR engine (default: $LIVEREAD_ENGINE or easyocr)"
    )
    parser.add_argument(
        "--lang", "-l", default="en",
        help="Language code (default: en)"
    )
    parser.add_argument(
        "--scan_at", type=int, nargs="*", default=[],
        help="Frame indices to capture immediately, bypassing stability checks"
    )
    parser.add_argument(
        "--keyword", "-k", default=None,
        help="Report READY only when the emitted text contains this word"
    )
    parser.add_argument(
        "--no_roi", action="store_true",
        help="Disable document rectangle detection (always use the full frame)"
    )
    parser.add_argument(
        "--enhance", action="store_true",
        help="Apply CLAHE contrast enhancement before recognition"
    )

    tuning = parser.add_argument_group("stability tuning")
    tuning.add_argument("--window_size", type=int, default=None,
                        help="Frames that must agree before emitting (default: 6)")
    tuning.add_argument("--min_lines", type=int, default=None,
                        help="Minimum distinct lines per frame (default: 4)")
    tuning.add_argument("--convergence", type=float, default=None, dest="convergence_threshold",
                        help="Oldest/newest frame similarity to count as stable (default: 0.90)")
    tuning.add_argument("--repeat", type=float, default=None, dest="repeat_threshold",
                        help="Similarity to the last emission treated as the same document (default: 0.80)")
    tuning.add_argument("--cooldown", type=float, default=None, dest="fire_cooldown",
                        help="Minimum seconds between emissions (default: 1.0)")
    tuning.add_argument("--roi_reset_iou", type=float, default=None,
                        help="Rectangle IoU below which the scene counts as changed (default: 0.65)")

    parser.add_argument(
        "--no_progress", action="store_true",
        help="Disable the progress bar"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Verbose output"
    )
    return parser


def config_from_args(args: argparse.Namespace) -> EngineConfig:
    """Environment defaults overridden by any flags given on the command line."""
    config = EngineConfig.from_env()
    for name in config.__dataclass_fields__:
        value = getattr(args, name, None)
        if value is not None:
            setattr(config, name, value)
    return config.validate()


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(2)

    print(f"[Live OCR] Input: {args.input}")
    print(f"[Live OCR] Output: {args.out_dir or '-'}")
    print(f"[Live OCR] Engine: {args.engine or 'default'}")
    print(f"[Live OCR] Window: {config.window_size} frames, min {config.min_lines} lines")
    print()

    engine = create_live_engine(
        engine=args.engine,
        lang=args.lang,
        config=config,
        detect_roi=not args.no_roi,
        enhance=args.enhance,
        verbose=args.verbose
    )
    if args.verbose:
        engine.subscribe_state(lambda state: print(f"[Live OCR] {STATE_MESSAGES[state]}"))

    pipeline = LiveOCRPipeline(
        engine,
        out_dir=args.out_dir,
        scan_at=args.scan_at,
        keyword=args.keyword,
        show_progress=not args.no_progress
    )

    try:
        emissions = pipeline.run(args.input)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n[Live OCR] Interrupted")
        emissions = []
    finally:
        engine.close()

    for emission in emissions:
        print("\n" + "=" * 60)
        print(f"{emission.source.value.upper()} CAPTURE (frame {emission.frame_index}) [{pipeline.status(emission)}]")
        print("-" * 60)
        print(emission.text)
    print("=" * 60)
    print(f"Emissions: {len(emissions)}")


if __name__ == "__main__":
    main()
