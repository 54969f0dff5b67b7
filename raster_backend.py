import io
import logging
import os
import threading
from typing import Optional, Tuple

import fitz  # PyMuPDF
from PIL import Image, ImageOps, UnidentifiedImageError

from polaroid_errors import BackendError, DecodeError, EncodeError, GeometryError

logger = logging.getLogger("polaroid.backend")

# PDF pages are rasterized at print resolution
PDF_RENDER_DPI = 300

FILTERS = {
    "box": Image.Resampling.BOX,
}

COLORSPACES = {
    "CMYK": "CMYK",
}

# Formats Pillow writes without dropping the CMYK channels
CMYK_FORMATS = ("TIFF", "JPEG", "PDF")

# What Pillow raises for sizes it cannot allocate or address
PILLOW_ERRORS = (ValueError, OverflowError, MemoryError, OSError)


class Raster:
    """Mutable image state owned by one polaroid at a time."""

    def __init__(self, image: Image.Image, source: Optional[str] = None):
        self.image = image
        self.source = source
        self.properties = {}
        self.quality = 95

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def mode(self) -> str:
        return self.image.mode

    def __repr__(self):
        return f"Raster(mode={self.image.mode!r}, size={self.image.size!r}, source={self.source!r})"


def _normalize_mode(image):
    """Bring decoded images to RGB, or RGBA when they carry transparency"""
    if image.mode in ('RGBA', 'LA', 'PA') or (image.mode == 'P' and 'transparency' in image.info):
        return image.convert('RGBA')
    if image.mode != 'RGB':
        return image.convert('RGB')
    return image


def _has_alpha(image):
    return image.mode in ('RGBA', 'LA', 'PA')


def _render_pdf_first_page(path):
    """Render the first page of a PDF to a PIL Image"""
    try:
        pdf_document = fitz.open(path)
        try:
            if len(pdf_document) == 0:
                raise DecodeError(f"PDF has no pages: {path}")
            page = pdf_document[0]
            zoom = PDF_RENDER_DPI / 72
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
            img_data = pix.tobytes("png")
        finally:
            pdf_document.close()
    except DecodeError:
        raise
    except Exception as e:
        # MuPDF errors do not share a common Python base class
        raise DecodeError(f"Cannot render PDF {path}: {e}") from e

    image = Image.open(io.BytesIO(img_data))
    image.load()
    return image


class PillowBackend:
    """
    Raster operations used by the polaroid layout engine, done with Pillow.

    Every method takes pixel-space instructions; none of them knows about
    millimeters or templates.
    """

    def __init__(self):
        # Registers every Pillow file format plugin
        Image.init()
        logger.debug("Pillow backend ready (%d formats)", len(Image.ID))

    def decode(self, path) -> Raster:
        path = os.fspath(path)
        if not os.path.isfile(path):
            raise DecodeError(f"No such file: {path}")

        if path.lower().endswith('.pdf'):
            image = _render_pdf_first_page(path)
        else:
            try:
                image = Image.open(path)
                image.load()
            except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
                raise DecodeError(f"Cannot decode {path}: {e}") from e

        # convert() carries info over, so EXIF orientation survives for auto_orient
        image = _normalize_mode(image)
        logger.debug("Decoded %s as %s %dx%d", path, image.mode, *image.size)
        return Raster(image, source=path)

    def auto_orient(self, raster: Raster):
        try:
            raster.image = ImageOps.exif_transpose(raster.image)
        except PILLOW_ERRORS as e:
            raise BackendError(f"Cannot apply EXIF orientation: {e}") from e

    def get_pixel_dimensions(self, raster: Raster) -> Tuple[int, int]:
        return raster.image.size

    def resize(self, raster: Raster, width: int, height: int, filter: str = "box"):
        if width <= 0 or height <= 0:
            raise GeometryError(f"Invalid resize target {width}x{height}")
        try:
            resample = FILTERS[filter]
        except KeyError:
            raise GeometryError(f"Unknown resize filter: {filter}") from None
        try:
            raster.image = raster.image.resize((width, height), resample)
        except PILLOW_ERRORS as e:
            raise GeometryError(f"Cannot resize to {width}x{height}: {e}") from e

    def crop(self, raster: Raster, width: int, height: int, x_offset: int, y_offset: int):
        img_width, img_height = raster.image.size
        if (width <= 0 or height <= 0 or x_offset < 0 or y_offset < 0
                or x_offset + width > img_width or y_offset + height > img_height):
            raise GeometryError(
                f"Crop {width}x{height}+{x_offset}+{y_offset} is outside a {img_width}x{img_height} image"
            )
        try:
            raster.image = raster.image.crop((x_offset, y_offset, x_offset + width, y_offset + height))
        except PILLOW_ERRORS as e:
            raise GeometryError(f"Cannot crop {width}x{height}: {e}") from e

    def border(self, raster: Raster, color, thickness_x: int, thickness_y: int, compose: str = "src-over"):
        """Surround the image with a solid border, growing it by twice the thickness"""
        if thickness_x < 0 or thickness_y < 0:
            raise GeometryError(f"Invalid border thickness {thickness_x}x{thickness_y}")
        image = raster.image
        width, height = image.size
        try:
            bordered = Image.new(image.mode, (width + 2 * thickness_x, height + 2 * thickness_y), color)
            if compose == "src-over" and _has_alpha(image):
                bordered.alpha_composite(image, dest=(thickness_x, thickness_y))
            else:
                bordered.paste(image, (thickness_x, thickness_y))
        except PILLOW_ERRORS as e:
            raise GeometryError(f"Cannot draw a {thickness_x}x{thickness_y} border: {e}") from e
        raster.image = bordered

    def extend_canvas(self, raster: Raster, width: int, height: int, x_offset: int, y_offset: int, fill="white"):
        """
        Resize the canvas to width x height filled with ``fill``.

        Offsets follow the canvas-geometry convention: the existing content is
        drawn at (-x_offset, -y_offset) on the new canvas.
        """
        if width <= 0 or height <= 0:
            raise GeometryError(f"Invalid canvas size {width}x{height}")
        image = raster.image
        mask = image if _has_alpha(image) else None
        try:
            canvas = Image.new(image.mode, (width, height), fill)
            canvas.paste(image, (-x_offset, -y_offset), mask)
        except PILLOW_ERRORS as e:
            raise GeometryError(f"Cannot extend canvas to {width}x{height}: {e}") from e
        raster.image = canvas

    def new_canvas(self, width: int, height: int, fill_color) -> Raster:
        if width <= 0 or height <= 0:
            raise GeometryError(f"Invalid canvas size {width}x{height}")
        try:
            return Raster(Image.new('RGB', (width, height), fill_color))
        except PILLOW_ERRORS as e:
            raise GeometryError(f"Cannot create a {width}x{height} canvas: {e}") from e

    def composite(self, dest: Raster, src: Raster, x_offset: int, y_offset: int, mode: str = "over"):
        if mode != "over":
            raise GeometryError(f"Unsupported composite mode: {mode}")
        mask = src.image if _has_alpha(src.image) else None
        try:
            dest.image.paste(src.image, (x_offset, y_offset), mask)
        except PILLOW_ERRORS as e:
            raise GeometryError(f"Cannot composite at {x_offset},{y_offset}: {e}") from e

    def set_property(self, raster: Raster, name: str, value: str):
        raster.properties[name] = value

    def convert_colorspace(self, raster: Raster, target: str = "CMYK"):
        try:
            mode = COLORSPACES[target.upper()]
        except KeyError:
            raise BackendError(f"Unsupported color space: {target}") from None
        if raster.image.mode != mode:
            try:
                raster.image = raster.image.convert(mode)
            except PILLOW_ERRORS as e:
                raise BackendError(f"Cannot convert to {target}: {e}") from e

    def set_compression_quality(self, raster: Raster, quality: int):
        raster.quality = max(1, min(100, int(quality)))

    def encode(self, raster: Raster, path):
        path = os.fspath(path)
        save_kwargs = {}

        density = raster.properties.get('density')
        if density:
            save_kwargs['dpi'] = _parse_density(density)

        fmt = Image.registered_extensions().get(os.path.splitext(path)[1].lower())
        if fmt is None:
            raise EncodeError(f"Cannot write {path}: unknown file extension")
        if raster.image.mode == 'CMYK' and fmt not in CMYK_FORMATS:
            # WebP and GIF would silently save RGB or a palette
            raise EncodeError(f"Cannot write {path}: {fmt} does not store CMYK")

        if fmt == 'TIFF':
            save_kwargs['compression'] = 'tiff_lzw'
        elif fmt == 'JPEG':
            save_kwargs['quality'] = raster.quality
            save_kwargs['subsampling'] = 0

        try:
            raster.image.save(path, **save_kwargs)
        except (OSError, ValueError, KeyError) as e:
            raise EncodeError(f"Cannot write {path}: {e}") from e
        logger.debug("Wrote %s (%s %dx%d)", path, raster.image.mode, *raster.image.size)


def _parse_density(density):
    """Turn an 'XxY' density string into a (x, y) DPI tuple"""
    try:
        x, _, y = density.partition('x')
        return (int(x), int(y or x))
    except ValueError:
        raise EncodeError(f"Invalid density: {density!r}") from None


_backend = None
_backend_lock = threading.Lock()


def get_backend() -> PillowBackend:
    """Process-wide backend, created on first use"""
    global _backend
    if _backend is None:
        with _backend_lock:
            if _backend is None:
                _backend = PillowBackend()
    return _backend
