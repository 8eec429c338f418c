"""Freehand signature capture.

A ``SignaturePad`` is a plain value: the strokes drawn so far plus an
optional saved signature underneath, rendered on demand to a fixed-size
Pillow raster. Nothing here needs a browser canvas, so the same code serves
the HTTP layer (validating uploaded rasters) and the tests.
"""
import base64
import binascii
import io
from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger
from PIL import Image, ImageDraw

from app.change_orders.errors import EmptySignature
from app.config import get_settings

DATA_URL_PREFIX = "data:image/png;base64,"
BACKGROUND = (255, 255, 255)
INK_COLOR = "#1a1a1a"
# Pixels darker than this count as ink on an otherwise white raster.
INK_THRESHOLD = 200

Point = tuple[float, float]


@dataclass
class Signature:
    """A captured signature ready to embed in a change order."""
    image_png: bytes
    source: str  # "drawn" | "saved"
    signer_name: str | None = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def data_url(self) -> str:
        return encode_data_url(self.image_png)


def encode_data_url(png_bytes: bytes) -> str:
    return DATA_URL_PREFIX + base64.b64encode(png_bytes).decode("ascii")


def decode_signature_data(value: str | bytes) -> bytes:
    """Accept a ``data:`` URL, bare base64 or raw PNG bytes; return PNG bytes."""
    if isinstance(value, bytes):
        return value
    text = value.strip()
    if text.startswith("data:"):
        _, _, text = text.partition(",")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EmptySignature(f"Signature data is not valid base64: {e}")


def _flatten(img: Image.Image) -> Image.Image:
    """Composite onto white so transparent canvases read as blank paper."""
    if img.mode in ("RGBA", "LA", "P"):
        if img.mode == "P":
            img = img.convert("RGBA")
        background = Image.new("RGB", img.size, BACKGROUND)
        background.paste(img, mask=img.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def open_signature_image(value: str | bytes) -> Image.Image:
    png = decode_signature_data(value)
    try:
        img = Image.open(io.BytesIO(png))
        img.load()
    except OSError as e:
        raise EmptySignature(f"Signature image could not be read: {e}")
    return _flatten(img)


def raster_has_ink(value: str | bytes) -> bool:
    """True if the image contains at least one dark pixel."""
    img = open_signature_image(value)
    darkest, _ = img.convert("L").getextrema()
    return darkest < INK_THRESHOLD


def require_ink(value: str | bytes | None) -> bytes:
    """Return PNG bytes for ``value`` or raise EmptySignature."""
    if not value:
        raise EmptySignature()
    png = decode_signature_data(value)
    if not raster_has_ink(png):
        raise EmptySignature()
    return png


class SignaturePad:
    """Stroke accumulator over a fixed backing resolution.

    Pointer coordinates arrive in display space (the element's on-screen box)
    and are scaled into canvas space, the same way a browser canvas maps
    ``clientX``/``clientY`` through ``getBoundingClientRect``.
    """

    def __init__(
        self,
        width: int | None = None,
        height: int | None = None,
        line_width: int = 2,
        color: str = INK_COLOR,
    ):
        settings = get_settings()
        self.width = width or settings.signature_canvas_width
        self.height = height or settings.signature_canvas_height
        self.line_width = line_width
        self.color = color
        self.strokes: list[list[Point]] = []
        self._current: list[Point] | None = None
        self._saved: Image.Image | None = None
        self._touched = False
        self._display = (0.0, 0.0, float(self.width), float(self.height))
        self._raster: Image.Image | None = None

    # -- coordinate mapping --

    def set_display_rect(self, left: float, top: float, width: float, height: float):
        if width <= 0 or height <= 0:
            raise ValueError("Display size must be positive")
        self._display = (float(left), float(top), float(width), float(height))

    @property
    def scale(self) -> tuple[float, float]:
        _, _, w, h = self._display
        return self.width / w, self.height / h

    def to_canvas(self, x: float, y: float) -> Point:
        left, top, _, _ = self._display
        sx, sy = self.scale
        cx = min(max((x - left) * sx, 0.0), float(self.width))
        cy = min(max((y - top) * sy, 0.0), float(self.height))
        return cx, cy

    # -- strokes --

    @property
    def is_drawing(self) -> bool:
        return self._current is not None

    @property
    def using_saved(self) -> bool:
        return self._saved is not None

    def begin_stroke(self, x: float, y: float):
        if self._saved is not None:
            # Drawing replaces a pre-loaded saved signature.
            self._saved = None
            self.strokes = []
        self._touched = True
        self._current = [self.to_canvas(x, y)]
        self._raster = None

    def append_point(self, x: float, y: float):
        if self._current is None:
            return
        self._current.append(self.to_canvas(x, y))
        self._raster = None

    def end_stroke(self):
        if self._current is None:
            return
        # A press without movement leaves no line, so it is not ink.
        if len(self._current) > 1:
            self.strokes.append(self._current)
        self._current = None
        self._raster = None

    def clear(self):
        self.strokes = []
        self._current = None
        self._saved = None
        self._touched = True
        self._raster = None

    def has_ink(self) -> bool:
        return bool(self.strokes) or self._saved is not None

    def load_saved(self, saved: str | bytes | None) -> bool:
        """Pre-populate with the signer's saved signature.

        Ignored once the user has drawn or cleared in this session.
        """
        if not saved or self._touched:
            return False
        try:
            img = open_signature_image(saved)
        except EmptySignature as e:
            logger.warning(f"Ignoring unreadable saved signature: {e.message}")
            return False
        self._saved = img.resize((self.width, self.height), Image.LANCZOS)
        self._raster = None
        return True

    # -- raster --

    def _render(self) -> Image.Image:
        if self._raster is not None:
            return self._raster
        if self._saved is not None:
            img = self._saved.copy()
        else:
            img = Image.new("RGB", (self.width, self.height), BACKGROUND)
        draw = ImageDraw.Draw(img)
        pending = [self._current] if self._current and len(self._current) > 1 else []
        radius = self.line_width / 2
        for stroke in self.strokes + pending:
            draw.line(stroke, fill=self.color, width=self.line_width, joint="curve")
            for px, py in (stroke[0], stroke[-1]):
                draw.ellipse(
                    (px - radius, py - radius, px + radius, py + radius),
                    fill=self.color,
                )
        self._raster = img
        return img

    def export(self) -> bytes:
        buf = io.BytesIO()
        self._render().save(buf, format="PNG")
        return buf.getvalue()

    def export_data_url(self) -> str:
        return encode_data_url(self.export())

    def to_signature(self, signer_name: str | None = None) -> Signature:
        if not self.has_ink():
            raise EmptySignature()
        source = "saved" if self._saved is not None and not self.strokes else "drawn"
        return Signature(image_png=self.export(), source=source, signer_name=signer_name)
