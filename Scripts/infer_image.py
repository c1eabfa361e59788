import argparse
import logging
from pathlib import Path

import cv2

from infer_kit import (
    DetectionConfig,
    DetectionPostConfig,
    NMSConfig,
    draw_boxes,
    load_detection_pipeline,
    load_image,
    load_ocr_pipeline,
)


def _parse_ranges(value):
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def main() -> int:
    parser = argparse.ArgumentParser(description="Run OCR or box detection on a single image.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    ocr = sub.add_parser("ocr", help="Recognize the text in a single-line image.")
    ocr.add_argument("image", help="Path to an input image.")
    ocr.add_argument("--model", required=True, help="Path to an OCR model (.onnx/.pt).")
    ocr.add_argument("--charset", required=True, help="Path to the charset file (.json array or one entry per line).")
    ocr.add_argument("--ranges", default=None, help="Charset range code 0-7 or a literal string of allowed characters.")
    ocr.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")

    det = sub.add_parser("detect", help="Detect boxes in an image.")
    det.add_argument("image", help="Path to an input image.")
    det.add_argument("--model", required=True, help="Path to a detection model (.onnx/.pt).")
    det.add_argument("--imgsz", type=int, default=416, help="Letterbox canvas size.")
    det.add_argument("--conf", type=float, default=0.1, help="Score threshold.")
    det.add_argument("--iou", type=float, default=0.45, help="IoU threshold for NMS.")
    det.add_argument("--backend", default=None, help="Force backend: onnxruntime / torchscript.")
    det.add_argument("--debug-dir", default=None, help="Write intermediate images to this directory.")
    det.add_argument("--out", default=None, help="Optional output path to save the visualization.")

    args = parser.parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "ocr":
        pipeline = load_ocr_pipeline(
            args.model,
            args.charset,
            backend=args.backend,
            root=Path.cwd(),
            ranges=_parse_ranges(args.ranges),
        )
        print(pipeline(args.image))
        return 0

    cfg = DetectionConfig(
        canvas_size=(args.imgsz, args.imgsz),
        post=DetectionPostConfig(nms=NMSConfig(iou_threshold=args.iou, score_threshold=args.conf)),
        debug_dir=args.debug_dir,
    )
    pipeline = load_detection_pipeline(args.model, backend=args.backend, root=Path.cwd(), cfg=cfg)
    image = load_image(args.image)
    boxes = pipeline(image)
    for box in boxes:
        print(*box.as_xyxy())

    if args.out:
        if not cv2.imwrite(args.out, draw_boxes(image, boxes)):
            raise OSError(f"Could not write output image: {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
