import sys
import unittest
from pathlib import Path

from PIL import Image

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rounded_image import draw_rounded_cover, rounded_mask

WHITE = (255, 255, 255)
RED = (200, 30, 30)


def _close(actual, expected, tolerance=2):
    return all(abs(a - e) <= tolerance for a, e in zip(actual, expected))


class RoundedMaskTests(unittest.TestCase):
    def test_corners_are_cut_and_centre_is_opaque(self):
        mask = rounded_mask(100, 60, 20)

        self.assertEqual(mask.getpixel((0, 0)), 0)
        self.assertEqual(mask.getpixel((99, 59)), 0)
        self.assertEqual(mask.getpixel((50, 30)), 255)
        self.assertEqual(mask.getpixel((50, 0)), 255)

    def test_oversized_radius_is_clamped(self):
        mask = rounded_mask(40, 20, 500)
        self.assertEqual(mask.getpixel((20, 10)), 255)
        self.assertEqual(mask.getpixel((0, 0)), 0)

    def test_zero_radius_is_a_plain_rectangle(self):
        mask = rounded_mask(30, 30, 0)
        self.assertEqual(mask.getpixel((0, 0)), 255)


class DrawRoundedCoverTests(unittest.TestCase):
    def test_pixels_outside_the_rounded_rectangle_are_untouched(self):
        surface = Image.new("RGB", (200, 200), WHITE)
        photo = Image.new("RGB", (50, 80), RED)

        draw_rounded_cover(surface, photo, 20, 30, 100, 60, 20)

        for x in range(200):
            for y in range(200):
                if not (20 <= x < 120 and 30 <= y < 90):
                    self.assertEqual(surface.getpixel((x, y)), WHITE, (x, y))
        self.assertEqual(surface.getpixel((20, 30)), WHITE)
        self.assertEqual(surface.getpixel((119, 89)), WHITE)
        self.assertTrue(_close(surface.getpixel((70, 60)), RED))

    def test_overflow_is_cropped_evenly(self):
        photo = Image.new("RGB", (200, 100), (0, 0, 255))
        photo.paste((0, 255, 0), (100, 0, 200, 100))
        photo.paste((0, 0, 0), (0, 0, 50, 100))
        photo.paste((0, 0, 0), (150, 0, 200, 100))
        surface = Image.new("RGB", (100, 100), WHITE)

        draw_rounded_cover(surface, photo, 0, 0, 100, 100, 0)

        # Only the middle half of the source is kept.
        self.assertEqual(surface.getpixel((2, 50)), (0, 0, 255))
        self.assertEqual(surface.getpixel((25, 50)), (0, 0, 255))
        self.assertEqual(surface.getpixel((75, 50)), (0, 255, 0))
        self.assertEqual(surface.getpixel((97, 50)), (0, 255, 0))

    def test_transparent_photo_leaves_surface_as_is(self):
        surface = Image.new("RGB", (60, 60), WHITE)
        photo = Image.new("RGBA", (30, 30), (255, 0, 0, 0))

        draw_rounded_cover(surface, photo, 0, 0, 60, 60, 10)

        self.assertEqual(surface.getcolors(), [(3600, WHITE)])

    def test_empty_box_is_skipped(self):
        surface = Image.new("RGB", (60, 60), WHITE)
        draw_rounded_cover(surface, Image.new("RGB", (10, 10), RED), 0, 0, 0, 20, 5)
        self.assertEqual(surface.getcolors(), [(3600, WHITE)])


if __name__ == "__main__":
    unittest.main()
