import base64
import sys
import tempfile
import unittest
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

import fitz  # PyMuPDF
import requests
from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from raster_loader import RasterLoadError, load_raster, read_source_bytes


def _png_bytes(size=(12, 8), colour=(10, 20, 30)):
    buffer = BytesIO()
    Image.new("RGB", size, colour).save(buffer, format="PNG")
    return buffer.getvalue()


class LoadRasterTests(unittest.TestCase):
    def test_bytes_and_data_uri(self):
        data = _png_bytes()
        uri = "data:image/png;base64," + base64.b64encode(data).decode("ascii")

        self.assertEqual(load_raster(data).size, (12, 8))
        self.assertEqual(load_raster(uri).getpixel((0, 0)), (10, 20, 30))

    def test_file_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "bg.png"
            path.write_bytes(_png_bytes())

            self.assertEqual(load_raster(path).size, (12, 8))
            self.assertEqual(load_raster(str(path)).size, (12, 8))

    def test_pil_image_is_copied(self):
        image = Image.new("RGB", (3, 3))
        loaded = load_raster(image)

        self.assertIsNot(loaded, image)
        self.assertEqual(loaded.size, (3, 3))

    def test_pdf_first_page_is_rasterized(self):
        doc = fitz.open()
        doc.new_page(width=72, height=144)
        doc.new_page(width=300, height=300)
        data = doc.tobytes()
        doc.close()

        image = load_raster(data)

        self.assertEqual(image.size, (300, 600))

    def test_failures_are_raster_load_errors(self):
        for source in (
            b"",
            b"not an image",
            "/nonexistent/background.png",
            "data:image/png;base64,@@@",
            "data:image/png;base64,",
        ):
            with self.subTest(source=source):
                with self.assertRaises(RasterLoadError):
                    load_raster(source)


class RemoteSourceTests(unittest.TestCase):
    def test_successful_download(self):
        response = SimpleNamespace(status_code=200, content=_png_bytes())
        with mock.patch("raster_loader.requests.get", return_value=response) as get:
            image = load_raster("https://cdn.example/bg.png")

        self.assertEqual(image.size, (12, 8))
        self.assertEqual(get.call_args[0][0], "https://cdn.example/bg.png")
        self.assertIn("timeout", get.call_args[1])

    def test_non_200_status_fails(self):
        response = SimpleNamespace(status_code=404, content=b"")
        with mock.patch("raster_loader.requests.get", return_value=response):
            with self.assertRaises(RasterLoadError) as ctx:
                read_source_bytes("https://cdn.example/missing.png")
        self.assertIn("404", str(ctx.exception))

    def test_network_error_fails(self):
        with mock.patch(
            "raster_loader.requests.get", side_effect=requests.ConnectionError("down")
        ):
            with self.assertRaises(RasterLoadError):
                load_raster("http://cdn.example/bg.png")


if __name__ == "__main__":
    unittest.main()
