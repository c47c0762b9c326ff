"""Tests for the data model types."""
import cv2
import numpy as np
import pytest

from conftest import encode_png, white_frame
from plan_progress.models import (AnalysisResult, ColorGroup, ColorProfile, CornerQuad, CornerTag,
                                  Swatch, Template, decode_image)


class TestColorTypes:

    def test_group_parse(self):
        assert ColorGroup.parse('normal') is ColorGroup.NORMAL
        assert ColorGroup.parse('OT') is ColorGroup.OVERTIME
        assert ColorGroup.parse(' overtime ') is ColorGroup.OVERTIME
        with pytest.raises(ValueError):
            ColorGroup.parse('blue')

    def test_swatch_from_hex(self):
        red = Swatch.from_hex(ColorGroup.OVERTIME, '#ff0000')
        assert red.hue == pytest.approx(0.0)
        assert red.saturation == pytest.approx(1.0)
        assert red.value == pytest.approx(1.0)
        assert red.to_opencv() == (0, 255, 255)

        blue = Swatch.from_hex(ColorGroup.NORMAL, '0000FF')
        assert blue.to_opencv()[0] == 120

    def test_swatch_bad_hex(self):
        with pytest.raises(ValueError):
            Swatch.from_hex(ColorGroup.NORMAL, '#fff')

    def test_profile_from_dict(self):
        profile = ColorProfile.from_dict({
            'tolerance': 150,
            'colors': [
                {'colorGroup': 'normal', 'hex': '#101010'},
                {'colorGroup': 'ot', 'h': 355, 's': 0.9, 'v': 0.8},
            ]
        })
        assert profile.tolerance == 100
        assert len(profile.swatches) == 2
        assert len(profile.for_group(ColorGroup.NORMAL)) == 1
        assert profile.for_group(ColorGroup.OVERTIME)[0].hue == 355
        assert not profile.is_empty

    def test_empty_profile(self):
        profile = ColorProfile.from_dict({})
        assert profile.is_empty
        assert profile.tolerance == 30


class TestCorners:

    def test_tag_parse(self):
        assert CornerTag.parse(' tl ') is CornerTag.TL
        assert CornerTag.parse('Br') is CornerTag.BR
        assert CornerTag.parse('center') is None

    def test_quad_array_order(self):
        points = {
            CornerTag.BL: np.array([0, 10]),
            CornerTag.TL: np.array([0, 0]),
            CornerTag.BR: np.array([10, 10]),
            CornerTag.TR: np.array([10, 0]),
        }
        arr = CornerQuad(points).as_array()
        assert arr.dtype == np.float32
        assert arr.tolist() == [[0, 0], [10, 0], [10, 10], [0, 10]]


class TestAnalysisResult:

    def test_empty(self):
        result = AnalysisResult.empty()
        assert result.to_dict() == {
            'normalPercent': 0.0, 'otPercent': 0.0, 'totalPercent': 0.0, 'isComplete': False
        }

    def test_str(self):
        text = str(AnalysisResult(10.5, 2.25, 12.75, False))
        assert 'Normal=10.50%' in text
        assert 'Total=12.75%' in text


class TestDecode:

    def test_empty_and_garbage(self):
        assert decode_image(b'') is None
        assert decode_image(None) is None
        assert decode_image(b'not an image at all') is None

    def test_png(self):
        frame = white_frame(40, 30)
        decoded = decode_image(encode_png(frame))
        assert decoded.shape == (30, 40, 3)


class TestTemplate:

    def test_from_arrays_resizes_mask(self):
        image = white_frame(200, 100)
        mask = np.zeros((50, 100), dtype=np.uint8)
        mask[:, :50] = 255
        template = Template.from_arrays(image, mask)
        assert template.paintable_mask.shape == (100, 200)
        assert template.paintable_pixels == 100 * 100
        assert (template.width, template.height) == (200, 100)

    def test_save_and_load(self, tmp_path):
        image = white_frame(120, 80)
        mask = np.zeros((80, 120), dtype=np.uint8)
        cv2.rectangle(mask, (10, 10), (60, 40), 255, -1)
        template = Template.from_arrays(image, mask)

        image_path = tmp_path / 'tpl' / 'template.jpg'
        mask_path = tmp_path / 'tpl' / 'paintable.png'
        template.save(image_path, mask_path)

        loaded = Template.load(image_path, mask_path)
        assert loaded is not None
        assert loaded.paintable_pixels == template.paintable_pixels
        assert np.array_equal(loaded.paintable_mask, template.paintable_mask)
        assert loaded.to_record() == {
            'paintablePixels': template.paintable_pixels,
            'templateWidth': 120,
            'templateHeight': 80
        }

    def test_load_missing_files(self, tmp_path):
        assert Template.load(tmp_path / 'a.jpg', tmp_path / 'b.png') is None

    def test_from_bytes(self):
        image = white_frame(60, 40)
        mask = np.full((40, 60), 255, dtype=np.uint8)
        template = Template.from_bytes(encode_png(image), encode_png(mask))
        assert template.paintable_pixels == 60 * 40
        assert Template.from_bytes(encode_png(image), b'') is None
