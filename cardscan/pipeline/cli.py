"""
Command-line card scan.

Runs the full pipeline on one image, parses the recognized text, optionally
validates it against a roster and prints the outcome as JSON.

Usage:
    cardscan-scan --image card.jpg --roster data.json --output-dir out/
    cardscan-scan --image card.jpg --threshold 60 --threshold 80 --no-enhance
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import cv2

from cardscan.common.config_loader import get_default_config, load_config
from cardscan.ocr.matcher import RosterValidator
from cardscan.ocr.parser import parse_engine_result
from cardscan.ocr.roster import InMemoryRoster, load_roster

from .orchestrator import PipelineOrchestrator
from .types import PipelineResult, ProcessingOptions

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan a student ID card image")
    parser.add_argument("--image", type=Path, required=True, help="Card photo")
    parser.add_argument("--roster", type=Path, default=None, help="Roster JSON file")
    parser.add_argument("--config", type=Path, default=None, help="Configuration YAML")
    parser.add_argument(
        "--threshold",
        type=int,
        action="append",
        default=None,
        help="Hough vote threshold (repeat to sweep)",
    )
    parser.add_argument("--no-crop", action="store_true", help="Skip perspective warp")
    parser.add_argument("--no-enhance", action="store_true", help="Skip contrast enhancement")
    parser.add_argument("--no-threshold", action="store_true", help="Skip OCR binarization")
    parser.add_argument("--no-ocr", action="store_true", help="Stop before OCR")
    parser.add_argument("--output-dir", type=Path, default=None, help="Write stage images here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def save_images(result: PipelineResult, output_dir: Path) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    processed = result.result.unwrap()
    cv2.imwrite(str(output_dir / "overlay.png"), processed.original_with_overlay)
    cv2.imwrite(str(output_dir / "cropped.png"), processed.cropped_card)
    cv2.imwrite(str(output_dir / "enhanced.png"), processed.enhanced_card)
    if processed.thresholded_card is not None:
        cv2.imwrite(str(output_dir / "thresholded.png"), processed.thresholded_card)
    logger.info(f"Saved stage images to {output_dir}")


def summarize(result: PipelineResult, roster: Optional[InMemoryRoster], config) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "success": result.success,
        "total_duration_ms": round(result.total_duration_ms, 2),
        "stages": [
            {
                "stage": s.stage,
                "duration_ms": round(s.duration_ms, 2),
                "success": s.success,
                "details": s.details,
            }
            for s in result.stages
        ],
    }

    if not result.success:
        error = result.result.error
        summary["error"] = {
            "code": error.code.value,
            "id": error.reason.error_id,
            "stage": error.stage,
            "message": error.message,
            "diagnosis": error.reason.message,
        }
        return summary

    processed = result.result.unwrap()
    summary["detection"] = {
        "confidence": processed.detection_result.confidence,
        "aspect_ratio": round(processed.detection_result.detected_aspect_ratio, 3),
        "corners": [p.to_tuple() for p in processed.detection_result.corners],
    }
    if processed.ocr_result is None:
        return summary

    parsed = parse_engine_result(processed.ocr_result, config.parser.weight_by_line_confidence)
    summary["ocr_text"] = processed.ocr_text
    summary["fields"] = parsed.to_dict()

    if roster is not None:
        validation = RosterValidator(roster, config.matcher).validate(parsed)
        student = validation.matched_student
        summary["validation"] = {
            "is_valid": validation.is_valid,
            "match_type": validation.match_type.value,
            "matched_fields": list(validation.matched_fields),
            "student": None if student is None else {"id": student.id, "name": student.full_name},
        }
    return summary


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config) if args.config else get_default_config()

    image = cv2.imread(str(args.image))
    if image is None:
        logger.error(f"Could not read image: {args.image}")
        return 2

    roster = None
    if args.roster is not None:
        try:
            roster = load_roster(args.roster)
        except (FileNotFoundError, ValueError) as e:
            logger.error(f"Could not load roster: {e}")
            return 2

    options = ProcessingOptions(
        enable_crop=not args.no_crop,
        enable_enhancement=not args.no_enhance,
        enable_ocr_preprocessing=not args.no_threshold,
        enable_ocr=not args.no_ocr,
        hough_thresholds=args.threshold,
    )

    async with PipelineOrchestrator(config) as orchestrator:
        result = await orchestrator.process(image, options)

    if result.success and args.output_dir:
        save_images(result, args.output_dir)

    print(json.dumps(summarize(result, roster, config), ensure_ascii=False, indent=2))
    return 0 if result.success else 1


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
