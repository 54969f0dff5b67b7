import logging
from typing import List, NamedTuple, Optional, Tuple

from polaroid_config import DEFAULT_DPI
from polaroid_errors import NotLoadedError
from polaroid_templates import (
    HORIZONTAL,
    POLAROID_TEMPLATES,
    SQUARE,
    VERTICAL,
    PolaroidTemplate,
    TemplateKind,
    select_template,
)
from print_settings import Dimensions, Length, round_half_away
from raster_backend import PillowBackend, Raster, get_backend

logger = logging.getLogger("polaroid.layout")


class Placement(NamedTuple):
    """A pixel size and where the content sits relative to it."""
    size: Dimensions[int]
    offset: Dimensions[int]


def fill_crop_geometry(source: Dimensions[int], image_size: Dimensions[Length], dpi: int) -> Tuple[Dimensions[int], Placement]:
    """
    Work out how to scale an image so it covers the template's image area,
    and which centered rectangle to crop out of the scaled result.

    Returns the intermediate resize size and the crop placement (target size
    plus the crop origin inside the resized image).
    """
    target = image_size.to_pixels(dpi)
    source_ratio = source.ratio()

    if source_ratio > image_size.ratio():
        # wider than the image area: height is binding
        resized = Dimensions(int(target.height * source_ratio), target.height)
    else:
        # width is binding
        resized = Dimensions(target.width, round_half_away(target.width / source_ratio))

    # Truncation can leave a dimension a pixel short of the target when the
    # ratios are nearly equal; never resize below what the crop needs.
    resized = Dimensions(max(resized.width, target.width), max(resized.height, target.height))

    offset = Dimensions(
        max(0, (resized.width - target.width) // 2),
        max(0, (resized.height - target.height) // 2),
    )
    return resized, Placement(target, offset)


def frame_geometry(current: Dimensions[int], template: PolaroidTemplate, dpi: int) -> Placement:
    """Frame canvas size and the position of the bordered photo on it"""
    frame = template.frame_size.to_pixels(dpi)
    offset_left = (frame.width - current.width) // 2

    top = template.frame_top_offset
    if top is None:
        top = Length.from_pixels(offset_left, dpi)
    # The border already used up part of the top margin
    offset_top = (top - template.border_thickness).to_pixels(dpi)

    return Placement(frame, Dimensions(offset_left, offset_top))


def page_geometry(current: Dimensions[int], template: PolaroidTemplate, dpi: int) -> Placement:
    """Output page size and the centered position of the framed photo"""
    page = template.output_size.to_pixels(dpi)
    return Placement(
        page,
        Dimensions(page.width // 2 - current.width // 2, page.height // 2 - current.height // 2),
    )


class Polaroid:
    """
    Turns one photo into a polaroid-style print.

    The steps must run in order: ``resize``, ``add_border``, ``add_frame``,
    ``add_output_filler`` and finally ``write``. ``process`` runs the first
    four. Every step needs a loaded image and raises ``NotLoadedError``
    otherwise.
    """

    def __init__(self, template: PolaroidTemplate, dpi: Optional[int] = None, backend: Optional[PillowBackend] = None):
        self.template = template
        self.dpi = DEFAULT_DPI
        if dpi is not None:
            self.set_dpi(dpi)
        self.backend = backend if backend is not None else get_backend()
        self._raster: Optional[Raster] = None
        self.stages: List[Tuple[str, Placement]] = []

    @classmethod
    def for_kind(cls, kind: TemplateKind, **kwargs) -> "Polaroid":
        return cls(POLAROID_TEMPLATES[kind], **kwargs)

    @classmethod
    def square(cls, **kwargs) -> "Polaroid":
        return cls(SQUARE, **kwargs)

    @classmethod
    def horizontal(cls, **kwargs) -> "Polaroid":
        return cls(HORIZONTAL, **kwargs)

    @classmethod
    def vertical(cls, **kwargs) -> "Polaroid":
        return cls(VERTICAL, **kwargs)

    @classmethod
    def from_file(cls, path, dpi: Optional[int] = None, backend: Optional[PillowBackend] = None) -> "Polaroid":
        """Load a photo, straighten it from its EXIF orientation and pick the matching template"""
        backend = backend if backend is not None else get_backend()
        raster = backend.decode(path)
        backend.auto_orient(raster)
        backend.set_compression_quality(raster, 100)

        width, height = backend.get_pixel_dimensions(raster)
        template = select_template(width, height)
        logger.info("%s is %dx%d, using the %s template", path, width, height, template.kind.value)

        polaroid = cls(template, dpi=dpi, backend=backend)
        polaroid._raster = raster
        return polaroid

    def load(self, path):
        """Load a photo as-is, replacing any image loaded before"""
        raster = self.backend.decode(path)
        self.backend.set_compression_quality(raster, 100)
        self._raster = raster
        self.stages = []

    @property
    def is_loaded(self) -> bool:
        return self._raster is not None

    @property
    def raster(self) -> Raster:
        if self._raster is None:
            raise NotLoadedError("Need an image to be loaded")
        return self._raster

    def set_dpi(self, dpi: int):
        if isinstance(dpi, bool) or not isinstance(dpi, int) or dpi <= 0:
            raise ValueError(f"DPI must be a positive integer, got {dpi!r}")
        self.dpi = dpi

    def pixel_size(self) -> Dimensions[int]:
        width, height = self.backend.get_pixel_dimensions(self.raster)
        return Dimensions(width, height)

    def resize(self) -> Placement:
        """Scale the photo to cover the image area, then center-crop it to size"""
        raster = self.raster
        resized, crop = fill_crop_geometry(self.pixel_size(), self.template.image_size, self.dpi)

        self.backend.resize(raster, resized.width, resized.height, filter="box")
        self.backend.crop(raster, crop.size.width, crop.size.height, crop.offset.width, crop.offset.height)

        logger.debug("Resized to %dx%d, cropped %dx%d at +%d+%d", resized.width, resized.height,
                     crop.size.width, crop.size.height, crop.offset.width, crop.offset.height)
        self.stages.append(("resize", Placement(resized, Dimensions(0, 0))))
        self.stages.append(("crop", crop))
        return crop

    def add_border(self) -> Placement:
        raster = self.raster
        thickness = self.template.border_thickness.to_pixels(self.dpi)
        self.backend.border(raster, self.template.border_color, thickness, thickness, compose="src-over")

        placement = Placement(self.pixel_size(), Dimensions(thickness, thickness))
        self.stages.append(("border", placement))
        return placement

    def add_frame(self) -> Placement:
        """Grow the canvas to the frame size with the bordered photo near the top"""
        raster = self.raster
        placement = frame_geometry(self.pixel_size(), self.template, self.dpi)

        self.backend.extend_canvas(
            raster,
            placement.size.width,
            placement.size.height,
            -placement.offset.width,
            -placement.offset.height,
            fill=self.template.frame_color,
        )
        self.stages.append(("frame", placement))
        return placement

    def add_output_filler(self) -> Placement:
        """Center the framed photo on a fresh output page, which then replaces it"""
        framed = self.raster
        placement = page_geometry(self.pixel_size(), self.template, self.dpi)

        page = self.backend.new_canvas(placement.size.width, placement.size.height, self.template.output_color)
        self.backend.composite(page, framed, placement.offset.width, placement.offset.height, mode="over")
        page.source = framed.source
        self.backend.set_compression_quality(page, framed.quality)

        self._raster = page
        self.stages.append(("page", placement))
        return placement

    def process(self) -> List[Tuple[str, Placement]]:
        self.resize()
        self.add_border()
        self.add_frame()
        self.add_output_filler()
        return list(self.stages)

    def write(self, path):
        """Tag the print resolution, convert to CMYK and encode"""
        raster = self.raster
        self.backend.set_property(raster, "density", "{0}x{0}".format(self.dpi))
        self.backend.convert_colorspace(raster, "CMYK")
        self.backend.set_compression_quality(raster, 100)
        self.backend.encode(raster, path)
        logger.info("Saved %s", path)
