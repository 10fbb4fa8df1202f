"""
Overlay compositor.

Draws a call sign centered on a template raster using a fixed style and
returns the finished PNG. The text layer is rendered on a transparent
canvas the size of the template and alpha-composited over it, so the
output keeps the template's dimensions, DPI and pixels outside the text.
"""

from dataclasses import dataclass
from io import BytesIO
from typing import Optional
import structlog

from PIL import Image, ImageColor, ImageDraw, ImageFont, UnidentifiedImageError

from config import settings
from exceptions import AssetCorruptError, ValidationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OverlayStyle:
    """Text styling applied to every design."""
    fill_color: str = "#f0cc00"
    font_path: str = "DejaVuSans-Bold.ttf"
    font_size: int = 980
    letter_spacing: int = 5
    baseline_shift_em: float = 0.05


class OverlayCompositor:
    """
    Composites text over template rasters.

    Deterministic for a given style and no side effects besides logging.
    """

    def __init__(self, style: OverlayStyle):
        self.style = style
        self._font: Optional[ImageFont.FreeTypeFont] = None

    def _get_font(self):
        """Load the configured font once, falling back to Pillow's bundled face."""
        if self._font is None:
            try:
                self._font = ImageFont.truetype(self.style.font_path, self.style.font_size)
            except OSError as e:
                logger.warning(
                    "overlay_font_unavailable",
                    font_path=self.style.font_path,
                    error=str(e)
                )
                self._font = ImageFont.load_default(size=self.style.font_size)
        return self._font

    def _decode(self, raster: bytes) -> Image.Image:
        """Decode template bytes, forcing a full read so corruption surfaces here."""
        try:
            image = Image.open(BytesIO(raster))
            image.load()
            return image
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            logger.error("template_raster_decode_failed", error=str(e), size_bytes=len(raster))
            raise AssetCorruptError("template raster", str(e)) from e

    def render_text_layer(self, size: tuple[int, int], text: str) -> Image.Image:
        """
        Render the styled text on a transparent canvas.

        Glyphs are placed one by one so letter spacing is applied between
        them; the run as a whole is centered horizontally and vertically.

        Args:
            size: (width, height) of the canvas
            text: Text to draw

        Returns:
            RGBA image with the text and a transparent background
        """
        width, height = size
        layer = Image.new("RGBA", size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        font = self._get_font()
        fill = ImageColor.getrgb(self.style.fill_color)[:3] + (255,)

        advances = [font.getlength(char) for char in text]
        run_width = sum(advances) + self.style.letter_spacing * (len(text) - 1)

        x = (width - run_width) / 2
        y = height / 2 + self.style.baseline_shift_em * self.style.font_size

        for char, advance in zip(text, advances):
            # "lm": left edge, vertical middle of the glyph line
            draw.text((x, y), char, font=font, fill=fill, anchor="lm")
            x += advance + self.style.letter_spacing

        return layer

    def compose(self, template_raster: bytes, text: str) -> bytes:
        """
        Overlay text onto a template raster.

        Args:
            template_raster: Encoded template image (PNG)
            text: Call sign to draw

        Returns:
            PNG bytes of the finished raster

        Raises:
            ValidationError: If the text is empty
            AssetCorruptError: If the template cannot be decoded
        """
        if not text or not text.strip():
            raise ValidationError(
                code="OVERLAY_TEXT_EMPTY",
                message="Overlay text cannot be empty"
            )

        template = self._decode(template_raster)
        base = template.convert("RGBA")

        layer = self.render_text_layer(base.size, text)
        finished = Image.alpha_composite(base, layer)

        save_options = {}
        if template.info.get("dpi"):
            save_options["dpi"] = template.info["dpi"]

        output = BytesIO()
        finished.save(output, format="PNG", **save_options)

        logger.debug(
            "overlay_composed",
            width=base.width,
            height=base.height,
            text_length=len(text)
        )
        return output.getvalue()


def build_overlay_compositor() -> OverlayCompositor:
    """Create a compositor from application settings."""
    return OverlayCompositor(
        OverlayStyle(
            fill_color=settings.overlay_fill_color,
            font_path=settings.overlay_font_path,
            font_size=settings.overlay_font_size,
            letter_spacing=settings.overlay_letter_spacing,
            baseline_shift_em=settings.overlay_baseline_shift_em,
        )
    )
