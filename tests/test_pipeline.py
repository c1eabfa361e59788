import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import cv2
import numpy as np

from infer_kit import normalize, runtime
from infer_kit.charset import resolve
from infer_kit.nms import NMSConfig
from infer_kit.postprocess import DetectionPostConfig
from infer_kit.runtime import (
    DetectionConfig,
    DetectionPipeline,
    OcrPipeline,
    _make_backend,
    load_detection_pipeline,
    load_ocr_pipeline,
    resolve_path,
)
from infer_kit.types import Box


CHARSET = ["", "a", "1", "b"]


class _RecordingModel:
    def __init__(self, output: np.ndarray):
        self.output = output
        self.calls = []

    def __call__(self, tensor: np.ndarray) -> np.ndarray:
        self.calls.append(tensor.shape)
        return self.output


def _ocr_output(indices) -> np.ndarray:
    out = np.zeros((1, len(indices), len(CHARSET)), dtype=np.float32)
    for t, idx in enumerate(indices):
        out[0, t, idx] = 1.0
    return out


def _detection_output() -> np.ndarray:
    # Same layout as the decode tests: (64, 32) canvas, 42 anchors.
    p = np.zeros((1, 42, 6), dtype=np.float32)
    p[0, 1] = [0.5, 0.5, 0.0, 0.0, 0.9, 1.0]
    p[0, 2] = [-0.5, 0.5, 0.0, 0.0, 0.8, 1.0]
    p[0, 40] = [0.5, 0.5, 0.0, 0.0, 0.5, 0.5]
    return p


class TestOcrPipeline(unittest.TestCase):
    def test_end_to_end(self) -> None:
        model = _RecordingModel(_ocr_output([0, 1, 1, 0, 2, 3]))
        pipe = OcrPipeline(model, CHARSET)
        image = np.full((32, 100, 3), 200, dtype=np.uint8)
        self.assertEqual(pipe(image), "a1b")
        self.assertEqual(model.calls, [(1, 1, 64, 200)])

    def test_with_ranges_returns_new_pipeline(self) -> None:
        model = _RecordingModel(_ocr_output([1, 0, 2, 3]))
        pipe = OcrPipeline(model, CHARSET)
        digits = pipe.with_ranges(0)
        image = np.zeros((16, 16, 3), dtype=np.uint8)

        self.assertIsNot(pipe, digits)
        self.assertEqual(digits(image), "1")
        self.assertEqual(pipe(image), "a1b")
        self.assertEqual(pipe.with_ranges("ab")(image), "ab")

    def test_empty_charset_rejected(self) -> None:
        with self.assertRaises(ValueError):
            OcrPipeline(lambda t: t, [])


class TestDetectionPipeline(unittest.TestCase):
    def _pipeline(self, model, **kwargs) -> DetectionPipeline:
        cfg = DetectionConfig(canvas_size=(64, 32), **kwargs)
        return DetectionPipeline(model, cfg)

    def test_end_to_end(self) -> None:
        model = _RecordingModel(_detection_output())
        pipe = self._pipeline(model)
        # 128x64 into a 64x32 canvas -> ratio 0.5
        image = np.zeros((64, 128, 3), dtype=np.uint8)
        boxes = pipe(image)
        self.assertEqual(model.calls, [(1, 3, 32, 64)])
        self.assertEqual(boxes, [Box(16, 0, 32, 16), Box(0, 0, 64, 64)])

    def test_thresholds_from_config(self) -> None:
        model = _RecordingModel(_detection_output())
        pipe = self._pipeline(model, post=DetectionPostConfig(nms=NMSConfig(score_threshold=0.3)))
        boxes = pipe(np.zeros((64, 128, 3), dtype=np.uint8))
        self.assertEqual(boxes, [Box(16, 0, 32, 16)])

    def test_debug_dir_dumps_images(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        debug_dir = Path(tmpdir.name) / "debug"
        pipe = self._pipeline(_RecordingModel(_detection_output()), debug_dir=str(debug_dir))
        pipe(np.zeros((64, 128, 3), dtype=np.uint8))
        self.assertTrue((debug_dir / "pre-process.jpg").is_file())
        self.assertTrue((debug_dir / "post-process.jpg").is_file())

    def test_decodes_source_once(self) -> None:
        model = _RecordingModel(_detection_output())
        pipe = self._pipeline(model)
        ok, buf = cv2.imencode(".png", np.zeros((64, 128, 3), dtype=np.uint8))
        self.assertTrue(ok)

        with mock.patch.object(runtime, "load_image", wraps=runtime.load_image) as outer, mock.patch.object(
            normalize, "load_image", wraps=normalize.load_image
        ) as inner:
            boxes = pipe(buf.tobytes())

        outer.assert_called_once()
        inner.assert_not_called()
        self.assertEqual(boxes, [Box(16, 0, 32, 16), Box(0, 0, 64, 64)])

    def test_invalid_canvas(self) -> None:
        with self.assertRaises(ValueError):
            DetectionConfig(canvas_size=(16, 16))


class _FakeBackend:
    def __init__(self, output: np.ndarray):
        self.output = output

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        return self.output


class TestLoaders(unittest.TestCase):
    def test_load_ocr_pipeline(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        root = Path(tmpdir.name)
        (root / "m").mkdir()
        (root / "m" / "cs.json").write_text(json.dumps(CHARSET), encoding="utf-8")

        made = []

        def fake_backend(model_path, backend, **kwargs):
            made.append(model_path)
            return _FakeBackend(_ocr_output([1, 0, 2, 3]))

        with mock.patch.object(runtime, "_make_backend", side_effect=fake_backend):
            pipe = load_ocr_pipeline("m/o.onnx", "m/cs.json", root=root, ranges="a")

        self.assertEqual(made, [root.resolve() / "m" / "o.onnx"])
        self.assertEqual(pipe.charset, tuple(CHARSET))
        self.assertEqual(pipe.spec, resolve("a"))
        self.assertIsInstance(pipe.backend, _FakeBackend)
        self.assertEqual(pipe(np.zeros((16, 16, 3), dtype=np.uint8)), "a")

    def test_unknown_extension(self) -> None:
        with self.assertRaises(ValueError):
            _make_backend(Path("model.bin"), None)

    def test_unknown_backend(self) -> None:
        with self.assertRaises(ValueError):
            load_detection_pipeline("model.onnx", backend="tensorflow", root=tempfile.gettempdir())

    def test_resolve_path(self) -> None:
        absolute = Path(tempfile.gettempdir()).resolve() / "x.onnx"
        self.assertEqual(resolve_path(absolute), absolute)
        self.assertEqual(resolve_path("models/x.onnx", root=absolute.parent), absolute.parent / "models" / "x.onnx")


if __name__ == "__main__":
    unittest.main()
