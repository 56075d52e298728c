import argparse
import sys
from pathlib import Path
from typing import Optional

import cv2

from .config import DetectorConfig, load_config
from .detector import DetectorSession
from .errors import AprilTagPoseError
from .logging_utils import add_file_handler, setup_logger
from .output import CsvOutput, NullOutput, OutputSink
from .pose import SOLVER_NAMES
from .types import ImageData


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Detect AprilTags and their poses in grayscale images")
    ap.add_argument("images", nargs="+", help="Image files to process")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config")

    ap.add_argument("--session-name")
    ap.add_argument("--calib")
    ap.add_argument("--decision-margin", type=float)
    ap.add_argument("--quad-decimate", type=float)
    ap.add_argument("--refine-edges", action="store_true")
    ap.add_argument("--reflect", action="store_true", help="Mirror detections horizontally")
    ap.add_argument("--pose-solver", choices=SOLVER_NAMES)
    ap.add_argument("--csv", help="Write one row per detection to this CSV file")
    ap.add_argument("--log-file")

    return ap


def _apply_args(cfg: DetectorConfig, args: argparse.Namespace) -> DetectorConfig:
    cfg.apply_overrides(
        session_name=args.session_name,
        calibration_path=args.calib,
        decision_margin=args.decision_margin,
        quad_decimate=args.quad_decimate,
        refine_edges=True if args.refine_edges else None,
        reflect_horizontally=True if args.reflect else None,
        pose_solver=args.pose_solver,
    )
    return cfg


def load_image(path: str) -> Optional[ImageData]:
    gray = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if gray is None:
        return None
    return ImageData.from_array(gray)


def main(argv: Optional[list[str]] = None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    cfg = _apply_args(cfg, args)

    logger = setup_logger(cfg.session_name)
    file_handler = add_file_handler(logger, cfg.session_name, args.log_file) if args.log_file else None

    out: OutputSink = CsvOutput(args.csv) if args.csv else NullOutput()
    out.open()

    total = 0
    status = 0
    try:
        with DetectorSession.from_config(cfg, logger=logger) as session:
            for path in args.images:
                image = load_image(path)
                if image is None:
                    logger.error("failed to read image: %s", path)
                    status = 2
                    continue
                try:
                    detections = session.process_image(image)
                except AprilTagPoseError as exc:
                    logger.error("image=%s rejected: %s", path, exc)
                    status = 2
                    continue

                name = Path(path).name
                for det in detections:
                    out.write_detection(name, det)
                    t = det.transform[:3, 3]
                    logger.info("image=%s tag=%d t=(%.4f, %.4f, %.4f)", name, det.tag_id, t[0], t[1], t[2])
                total += len(detections)
    finally:
        out.close()
        logger.info("summary images=%d detections=%d", len(args.images), total)
        if file_handler is not None:
            logger.removeHandler(file_handler)
            file_handler.close()

    return status


if __name__ == "__main__":
    sys.exit(main())
