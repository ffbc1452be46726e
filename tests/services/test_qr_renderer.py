import io
from unittest.mock import patch

import pytest
import qrcode
import zxingcpp
from PIL import Image, ImageOps

from qrcoded.errors import RenderError
from qrcoded.services import qr_renderer
from qrcoded.services.qr_renderer import RenderOptions, render_qr_png

PAYLOAD = "https://swartjide.com/?uuid=0b1c2d3e-0000-4000-8000-000000000000"


def _open(data: bytes) -> Image.Image:
    return Image.open(io.BytesIO(data)).convert("RGB")


def test_render_is_deterministic():
    assert render_qr_png(PAYLOAD) == render_qr_png(PAYLOAD)


def test_different_payloads_render_differently():
    assert render_qr_png(PAYLOAD) != render_qr_png(PAYLOAD + "x")


def test_render_produces_300px_png_in_brand_colors():
    data = render_qr_png(PAYLOAD)
    assert data[:8] == b"\x89PNG\r\n\x1a\n"

    img = _open(data)
    assert img.size == (300, 300)

    colors = {color for _, color in img.getcolors(maxcolors=1 << 16)}
    assert (0xfa, 0xcb, 0x05) in colors
    assert (0x04, 0x4c, 0x73) in colors


def test_render_uses_high_error_correction():
    with patch.object(qr_renderer.qrcode, "QRCode", wraps=qrcode.QRCode) as mock_qr:
        render_qr_png(PAYLOAD)

    assert mock_qr.call_args.kwargs["error_correction"] == qrcode.constants.ERROR_CORRECT_H


def test_default_brand_mark_is_centered():
    img = _open(render_qr_png(PAYLOAD))
    # Center of the drawn mark is the dark-colored disc.
    assert img.getpixel((150, 150)) == (0xfa, 0xcb, 0x05)
    # Corner of the mark area is its light rounded square.
    assert img.getpixel((125, 150)) == (0x04, 0x4c, 0x73)


def test_logo_file_is_overlaid(tmp_path):
    logo_path = tmp_path / "logo.png"
    Image.new("RGB", (120, 120), (255, 0, 0)).save(logo_path)

    options = RenderOptions(logo_path=str(logo_path))
    img = _open(render_qr_png(PAYLOAD, options))

    assert img.getpixel((150, 150)) == (255, 0, 0)
    assert img.getpixel((121, 121)) == (255, 0, 0)
    assert img.getpixel((178, 178)) == (255, 0, 0)


def test_missing_logo_raises_render_error(tmp_path):
    options = RenderOptions(logo_path=str(tmp_path / "nope.png"))
    with pytest.raises(RenderError):
        render_qr_png(PAYLOAD, options)


def test_empty_payload_raises_render_error():
    with pytest.raises(RenderError):
        render_qr_png("")


def test_oversized_payload_raises_render_error():
    with pytest.raises(RenderError):
        render_qr_png("x" * 5000)


@pytest.mark.parametrize(
    "payload",
    [
        PAYLOAD,
        "https://swartjide.com/?uuid=f47ac10b-58cc-4372-a567-0e02b2c3d479",
        "https://example.org/?uuid=00000000-0000-4000-8000-ffffffffffff",
    ],
)
def test_rendered_code_decodes_to_payload(payload):
    results = zxingcpp.read_barcodes(_open(render_qr_png(payload)))

    assert [r.text for r in results] == [payload]


def test_polarity_inverted_copy_still_decodes():
    # Brand colours put light modules on a dark background; readers that
    # only handle dark-on-light codes need the image inverted first.
    img = ImageOps.invert(_open(render_qr_png(PAYLOAD)))
    results = zxingcpp.read_barcodes(img)

    assert [r.text for r in results] == [PAYLOAD]
