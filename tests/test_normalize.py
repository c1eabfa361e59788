import tempfile
import unittest
from pathlib import Path

import cv2
import numpy as np

from infer_kit.errors import DecodeError
from infer_kit.letterbox import letterbox
from infer_kit.normalize import load_image, normalize_detection, normalize_ocr, prepare_detection


def _solid(h: int, w: int, bgr=(10, 20, 30)) -> np.ndarray:
    img = np.empty((h, w, 3), dtype=np.uint8)
    img[...] = bgr
    return img


def _png_bytes(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


class TestLoadImage(unittest.TestCase):
    def test_array_is_copied(self) -> None:
        src = _solid(4, 4)
        out = load_image(src)
        out[0, 0] = 0
        self.assertEqual(src[0, 0].tolist(), [10, 20, 30])

    def test_decode_png_bytes(self) -> None:
        img = load_image(_png_bytes(_solid(5, 7)))
        self.assertEqual(img.shape, (5, 7, 3))
        self.assertEqual(img[2, 3].tolist(), [10, 20, 30])

    def test_decode_from_path(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / "line.png"
        path.write_bytes(_png_bytes(_solid(6, 9)))
        self.assertEqual(load_image(path).shape, (6, 9, 3))
        self.assertEqual(load_image(str(path)).shape, (6, 9, 3))

    def test_decode_errors(self) -> None:
        with self.assertRaises(DecodeError):
            load_image(b"not an image")
        with self.assertRaises(DecodeError):
            load_image(b"")
        with self.assertRaises(DecodeError):
            load_image("/nonexistent/definitely_missing.png")
        with self.assertRaises(DecodeError):
            load_image(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_decode_error_is_os_error(self) -> None:
        with self.assertRaises(OSError):
            load_image(b"not an image")

    def test_unsupported_source_type(self) -> None:
        with self.assertRaises(TypeError):
            load_image(12345)


class TestOcrPolicy(unittest.TestCase):
    def test_fixed_height_and_floor_width(self) -> None:
        out = normalize_ocr(_solid(10, 20))
        self.assertEqual((out.width, out.height), (128, 64))
        self.assertEqual(out.data.shape, (128 * 64,))
        self.assertEqual(out.data.dtype, np.float32)
        self.assertEqual(out.tensor.shape, (1, 1, 64, 128))

        out = normalize_ocr(_solid(30, 50))
        # floor(50 * 64 / 30) = 106
        self.assertEqual(out.width, 106)

    def test_scaled_to_minus_one_one(self) -> None:
        white = normalize_ocr(_solid(16, 40, (255, 255, 255)))
        black = normalize_ocr(_solid(16, 40, (0, 0, 0)))
        self.assertTrue(np.allclose(white.data, 1.0))
        self.assertTrue(np.allclose(black.data, -1.0))

    def test_gray_and_rgba_inputs(self) -> None:
        gray = np.full((32, 64), 255, dtype=np.uint8)
        self.assertTrue(np.allclose(normalize_ocr(gray).data, 1.0))

        bgra = np.zeros((32, 64, 4), dtype=np.uint8)
        bgra[..., 3] = 255
        out = normalize_ocr(bgra)
        self.assertEqual(out.width, 128)
        self.assertTrue(np.allclose(out.data, -1.0))

    def test_from_bytes(self) -> None:
        out = normalize_ocr(_png_bytes(_solid(8, 8, (255, 255, 255))))
        self.assertEqual(out.width, 64)
        self.assertTrue(np.allclose(out.data, 1.0))


class TestDetectionPolicy(unittest.TestCase):
    def test_letterbox_top_left(self) -> None:
        padded, ratio = letterbox(_solid(50, 100), new_shape=(64, 64))
        self.assertAlmostEqual(ratio, 0.64)
        self.assertEqual(padded.shape, (64, 64, 3))
        self.assertEqual(padded[0, 0].tolist(), [10, 20, 30])
        self.assertEqual(padded[31, 63].tolist(), [10, 20, 30])
        self.assertTrue(np.all(padded[32:] == 114))

    def test_letterbox_rounds_half_up(self) -> None:
        # 5 * 0.5 = 2.5 rows; round() would give 2
        padded, ratio = letterbox(np.full((5, 832, 3), 7, np.uint8), (416, 416))
        self.assertEqual(ratio, 0.5)
        self.assertEqual(padded.shape, (416, 416, 3))
        self.assertTrue(np.all(padded[:3] == 7))
        self.assertTrue(np.all(padded[3:] == 114))

    def test_prepare_detection_leaves_input_alone(self) -> None:
        image = _solid(8, 16)
        before = image.copy()
        out = prepare_detection(image, canvas_size=(32, 32), model_order="rgb")
        self.assertTrue(np.array_equal(image, before))
        self.assertEqual(out.tensor[0][:, 0, 0].tolist(), [30.0, 20.0, 10.0])
        with self.assertRaises(ValueError):
            prepare_detection(image, source_order="rgba")

    def test_ratio_and_padding(self) -> None:
        out = normalize_detection(_solid(104, 208))
        self.assertEqual(out.ratio, 2.0)
        self.assertEqual((out.width, out.height), (208, 104))
        self.assertEqual(out.canvas_size, (416, 416))
        self.assertEqual(out.data.shape, (3 * 416 * 416,))

        chw = out.tensor[0]
        self.assertEqual(chw.shape, (3, 416, 416))
        self.assertEqual(chw[:, 0, 0].tolist(), [10.0, 20.0, 30.0])
        self.assertEqual(chw[:, 207, 415].tolist(), [10.0, 20.0, 30.0])
        self.assertTrue(np.all(chw[:, 208:, :] == 114.0))

    def test_channel_swap(self) -> None:
        out = normalize_detection(_solid(8, 16), canvas_size=(32, 32), source_order="bgr", model_order="rgb")
        self.assertEqual(out.ratio, 2.0)
        self.assertEqual(out.tensor[0][:, 0, 0].tolist(), [30.0, 20.0, 10.0])
        self.assertTrue(np.all(out.tensor[0][:, 16:, :] == 114.0))

    def test_gray_source_gets_three_channels(self) -> None:
        gray = np.full((20, 40), 77, dtype=np.uint8)
        out = normalize_detection(gray, canvas_size=(64, 64))
        self.assertEqual(out.tensor.shape, (1, 3, 64, 64))
        self.assertEqual(out.tensor[0][:, 0, 0].tolist(), [77.0, 77.0, 77.0])
        self.assertTrue(np.all(out.tensor[0][:, 32:, :] == 114.0))

    def test_bad_channel_order(self) -> None:
        with self.assertRaises(ValueError):
            normalize_detection(_solid(8, 8), source_order="rgba")


if __name__ == "__main__":
    unittest.main()
