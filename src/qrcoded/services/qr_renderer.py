# src/qrcoded/services/qr_renderer.py

"""
QR image rendering.

Encodes a payload with high error correction, paints it two-tone on a fixed
canvas and overlays a centered brand mark. The overlay hides part of the
pattern, which only stays scannable because ERROR_CORRECT_H keeps ~30% of
the codewords redundant.
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from typing import Optional

import qrcode
from PIL import Image, ImageDraw
from qrcode.exceptions import DataOverflowError
from opentelemetry import trace

from qrcoded.errors import RenderError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LOGO_PATH = os.getenv("QR_LOGO_PATH")  # optional; a drawn mark is used otherwise


@dataclass(frozen=True)
class RenderOptions:
    size: int = 300
    dark_color: str = "#facb05"
    light_color: str = "#044c73"
    logo_size: int = 60
    border: int = 4
    logo_path: Optional[str] = LOGO_PATH


DEFAULT_OPTIONS = RenderOptions()


def _build_matrix_image(payload: str, options: RenderOptions) -> Image.Image:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=1,
        border=options.border,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    # Largest whole-pixel module size that still fits the canvas.
    modules = qr.modules_count + 2 * options.border
    qr.box_size = max(1, options.size // modules)

    img = qr.make_image(fill_color=options.dark_color, back_color=options.light_color)
    return img.get_image().convert("RGB")


def _default_brand_mark(options: RenderOptions) -> Image.Image:
    mark = Image.new("RGBA", (options.logo_size, options.logo_size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(mark)
    inset = max(2, options.logo_size // 10)
    draw.rounded_rectangle(
        (0, 0, options.logo_size - 1, options.logo_size - 1),
        radius=options.logo_size // 5,
        fill=options.light_color,
    )
    draw.ellipse(
        (inset, inset, options.logo_size - 1 - inset, options.logo_size - 1 - inset),
        fill=options.dark_color,
    )
    return mark


def _load_brand_mark(options: RenderOptions) -> Image.Image:
    if not options.logo_path:
        return _default_brand_mark(options)

    with Image.open(options.logo_path) as logo:
        return logo.convert("RGBA").resize(
            (options.logo_size, options.logo_size), Image.LANCZOS
        )


def render_qr_png(payload: str, options: RenderOptions = DEFAULT_OPTIONS) -> bytes:
    """
    Render `payload` as a branded PNG and return the encoded bytes.

    Same payload and options always give byte-identical output.
    Raises RenderError for empty or oversized payloads and unreadable logos.
    """
    if not payload:
        raise RenderError("Cannot render an empty payload")

    with tracer.start_as_current_span("qr.render") as span:
        span.set_attribute("qr.payload_length", len(payload))
        try:
            matrix = _build_matrix_image(payload, options)

            canvas = Image.new("RGB", (options.size, options.size), options.light_color)
            offset = ((options.size - matrix.width) // 2, (options.size - matrix.height) // 2)
            canvas.paste(matrix, offset)

            mark = _load_brand_mark(options)
            position = (options.size - options.logo_size) // 2
            canvas.paste(mark, (position, position), mark)

            buffer = io.BytesIO()
            canvas.save(buffer, format="PNG")
        except DataOverflowError as exc:
            raise RenderError(f"Payload too large to encode: {len(payload)} chars") from exc
        except (OSError, ValueError) as exc:
            raise RenderError(f"QR rendering failed: {exc}") from exc

        data = buffer.getvalue()
        span.set_attribute("image.size", len(data))

    logger.debug("Rendered QR image (%d bytes) for payload of %d chars", len(data), len(payload))
    return data
