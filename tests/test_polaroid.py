import dataclasses

import numpy as np
import pytest
from PIL import Image

from polaroid import Placement, Polaroid, fill_crop_geometry, frame_geometry, page_geometry
from polaroid_errors import DecodeError, EncodeError, NotLoadedError
from polaroid_templates import HORIZONTAL, POLAROID_TEMPLATES, SQUARE, VERTICAL, TemplateKind
from print_settings import Dimensions, Length
from raster_backend import PillowBackend

RED = (200, 30, 30)
SNOW4 = (139, 137, 137)
WHITE = (255, 255, 255)
BLUE = (0, 0, 255)


class RecordingBackend(PillowBackend):
    """Pillow backend that remembers the canvas geometry it was asked for"""

    def __init__(self):
        super().__init__()
        self.calls = []

    def crop(self, raster, width, height, x_offset, y_offset):
        self.calls.append(("crop", width, height, x_offset, y_offset))
        super().crop(raster, width, height, x_offset, y_offset)

    def extend_canvas(self, raster, width, height, x_offset, y_offset, fill="white"):
        self.calls.append(("extend", width, height, x_offset, y_offset))
        super().extend_canvas(raster, width, height, x_offset, y_offset, fill)

    def composite(self, dest, src, x_offset, y_offset, mode="over"):
        self.calls.append(("composite", x_offset, y_offset))
        super().composite(dest, src, x_offset, y_offset, mode)


def assert_color(image, xy, expected):
    pixel = np.asarray(image.convert("RGB"))[xy[1], xy[0]].astype(int)
    assert np.all(np.abs(pixel - np.array(expected)) <= 1), f"{xy}: {tuple(pixel)} != {expected}"


def test_fill_crop_geometry_wide_source_binds_height():
    resized, crop = fill_crop_geometry(Dimensions(3000, 2000), HORIZONTAL.image_size, 300)
    assert resized == Dimensions(1293, 862)
    assert crop == Placement(Dimensions(1087, 862), Dimensions(103, 0))


def test_fill_crop_geometry_tall_source_binds_width():
    resized, crop = fill_crop_geometry(Dimensions(1000, 3000), HORIZONTAL.image_size, 300)
    assert resized == Dimensions(1087, 3261)
    assert crop.offset == Dimensions(0, (3261 - 862) // 2)


@pytest.mark.parametrize("source", [Dimensions(4000, 1000), Dimensions(1000, 4000), Dimensions(1001, 999)])
@pytest.mark.parametrize("kind", list(TemplateKind))
def test_crop_offset_is_centered(source, kind):
    template = POLAROID_TEMPLATES[kind]
    resized, crop = fill_crop_geometry(source, template.image_size, 300)
    target = template.image_size.to_pixels(300)
    assert crop.size == target
    assert resized.width >= target.width and resized.height >= target.height
    assert crop.offset == Dimensions((resized.width - target.width) // 2, (resized.height - target.height) // 2)


def test_fill_crop_geometry_never_resizes_below_target():
    # Ratio sits between the millimeter ratio (1.2603) and the pixel ratio (1.2610),
    # so truncating the width would leave it one pixel short.
    resized, crop = fill_crop_geometry(Dimensions(12605, 10000), HORIZONTAL.image_size, 300)
    assert resized == Dimensions(1087, 862)
    assert crop.offset == Dimensions(0, 0)


def test_frame_geometry_defaults_top_to_side_margin():
    placement = frame_geometry(Dimensions(1091, 866), HORIZONTAL, 300)
    assert placement.size == Dimensions(1205, 1205)
    # 57px side margin is 4.826mm, minus the 0.2mm border gives 54.6px
    assert placement.offset == Dimensions(57, 55)


def test_frame_geometry_explicit_top_offset_still_subtracts_border():
    template = dataclasses.replace(HORIZONTAL, frame_top_offset=Length(10.0))
    placement = frame_geometry(Dimensions(1091, 866), template, 300)
    assert placement.offset == Dimensions(57, 116)


def test_page_geometry_centers_frame():
    placement = page_geometry(Dimensions(1205, 1205), HORIZONTAL, 300)
    assert placement == Placement(Dimensions(1754, 1205), Dimensions(275, 0))

    placement = page_geometry(Dimensions(1039, 1264), SQUARE, 300)
    assert placement == Placement(Dimensions(1205, 1754), Dimensions(602 - 519, 877 - 632))


@pytest.mark.parametrize("size", [(3000, 600), (600, 3000), (1000, 990)])
@pytest.mark.parametrize("template", [SQUARE, HORIZONTAL, VERTICAL])
def test_resize_always_hits_target_size(make_image, size, template):
    polaroid = Polaroid(template, dpi=150)
    polaroid.load(make_image(*size))
    crop = polaroid.resize()

    assert polaroid.raster.size == template.image_size.to_pixels(150).as_tuple()
    assert crop.size == template.image_size.to_pixels(150)


def test_add_border_grows_by_twice_the_thickness(make_image):
    polaroid = Polaroid.horizontal(dpi=300)
    polaroid.load(make_image(3000, 2000, RED))
    polaroid.resize()
    placement = polaroid.add_border()

    assert placement == Placement(Dimensions(1091, 866), Dimensions(2, 2))
    image = polaroid.raster.image
    assert_color(image, (0, 0), SNOW4)
    assert_color(image, (1, 500), SNOW4)
    assert_color(image, (2, 2), RED)


def test_add_frame_centers_content(make_image):
    backend = RecordingBackend()
    polaroid = Polaroid.horizontal(dpi=300, backend=backend)
    polaroid.load(make_image(3000, 2000, RED))
    polaroid.resize()
    polaroid.add_border()
    placement = polaroid.add_frame()

    assert polaroid.raster.size == (1205, 1205)
    assert ("extend", 1205, 1205, -57, -55) in backend.calls
    image = polaroid.raster.image
    assert_color(image, placement.offset.as_tuple(), SNOW4)
    assert_color(image, (56, 55), WHITE)
    assert_color(image, (57, 54), WHITE)
    assert_color(image, (57 + 1091, 55), WHITE)


def test_add_output_filler_replaces_raster_with_page(make_image):
    polaroid = Polaroid.horizontal(dpi=300)
    polaroid.load(make_image(3000, 2000, RED))
    polaroid.resize()
    polaroid.add_border()
    polaroid.add_frame()
    framed = polaroid.raster
    placement = polaroid.add_output_filler()

    assert polaroid.raster is not framed
    assert polaroid.raster.size == (1754, 1205)
    assert placement.offset == Dimensions(275, 0)

    image = polaroid.raster.image
    assert_color(image, (0, 0), BLUE)
    assert_color(image, (274, 600), BLUE)
    assert_color(image, (275, 600), WHITE)
    assert_color(image, (275 + 57, 55), SNOW4)
    assert_color(image, (275 + 57 + 500, 55 + 400), RED)
    assert_color(image, (280, 1100), WHITE)


def test_end_to_end_horizontal_print(make_image, tmp_path):
    source = make_image(3000, 2000, RED)
    polaroid = Polaroid.from_file(source, dpi=300)
    assert polaroid.template is HORIZONTAL

    stages = polaroid.process()
    assert [name for name, _ in stages] == ["resize", "crop", "border", "frame", "page"]

    output = tmp_path / "out.tif"
    polaroid.write(output)
    assert polaroid.raster.properties["density"] == "300x300"
    assert polaroid.raster.mode == "CMYK"

    with Image.open(output) as written:
        assert written.size == (1754, 1205)
        assert written.mode == "CMYK"
        assert tuple(round(float(v)) for v in written.info["dpi"]) == (300, 300)


def test_jpeg_output_keeps_cmyk(make_image, tmp_path):
    polaroid = Polaroid.from_file(make_image(800, 800), dpi=100)
    polaroid.process()
    polaroid.write(tmp_path / "out.jpg")

    with Image.open(tmp_path / "out.jpg") as written:
        assert written.mode == "CMYK"
        assert written.size == SQUARE.output_size.to_pixels(100).as_tuple()


def test_pipeline_is_deterministic(make_image):
    source = make_image(2400, 1700, RED)
    runs = []
    for _ in range(2):
        backend = RecordingBackend()
        polaroid = Polaroid.from_file(source, dpi=200, backend=backend)
        stages = polaroid.process()
        runs.append((stages, backend.calls, polaroid.raster.image.tobytes()))

    assert runs[0] == runs[1]


def test_from_file_applies_exif_orientation(tmp_path):
    path = tmp_path / "rotated.jpg"
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 degrees clockwise
    Image.new("RGB", (200, 100), RED).save(path, exif=exif)

    polaroid = Polaroid.from_file(path, dpi=100)
    assert polaroid.raster.size == (100, 200)
    assert polaroid.template is VERTICAL


def test_load_keeps_orientation_and_replaces_raster(tmp_path, make_image):
    path = tmp_path / "rotated.jpg"
    exif = Image.Exif()
    exif[0x0112] = 6
    Image.new("RGB", (200, 100), RED).save(path, exif=exif)

    polaroid = Polaroid.square(dpi=100)
    polaroid.load(make_image(50, 50))
    first = polaroid.raster
    polaroid.load(path)

    assert polaroid.raster is not first
    assert polaroid.raster.size == (200, 100)
    assert polaroid.stages == []


def test_from_file_reads_first_pdf_page(tmp_path):
    path = tmp_path / "scan.pdf"
    Image.new("RGB", (600, 400), RED).save(path, "PDF", resolution=100.0)

    polaroid = Polaroid.from_file(path, dpi=100)
    width, height = polaroid.raster.size
    assert width / height == pytest.approx(1.5, abs=0.01)
    assert polaroid.template is HORIZONTAL


@pytest.mark.parametrize("step", ["resize", "add_border", "add_frame", "add_output_filler"])
def test_steps_need_a_loaded_image(step):
    polaroid = Polaroid.square()
    assert not polaroid.is_loaded
    with pytest.raises(NotLoadedError):
        getattr(polaroid, step)()


def test_write_needs_a_loaded_image(tmp_path):
    with pytest.raises(NotLoadedError):
        Polaroid.vertical().write(tmp_path / "out.tif")
    assert not (tmp_path / "out.tif").exists()


def test_process_needs_a_loaded_image():
    with pytest.raises(NotLoadedError):
        Polaroid.for_kind(TemplateKind.HORIZONTAL).process()


@pytest.mark.parametrize("dpi", [0, -300, 300.0, True])
def test_set_dpi_rejects_invalid_values(dpi):
    with pytest.raises(ValueError):
        Polaroid.square().set_dpi(dpi)


def test_default_dpi_comes_from_config():
    from polaroid_config import DEFAULT_DPI
    assert Polaroid.square().dpi == DEFAULT_DPI


def test_decode_failures(tmp_path):
    broken = tmp_path / "broken.jpg"
    broken.write_bytes(b"definitely not a jpeg")

    with pytest.raises(DecodeError):
        Polaroid.from_file(broken)
    with pytest.raises(DecodeError):
        Polaroid.from_file(tmp_path / "missing.jpg")


@pytest.mark.parametrize("name", ["out.xyz", "out.png"])
def test_encode_failure_leaves_no_file(make_image, tmp_path, name):
    polaroid = Polaroid.from_file(make_image(300, 300), dpi=50)
    polaroid.process()

    with pytest.raises(EncodeError):
        polaroid.write(tmp_path / name)
    assert not (tmp_path / name).exists()
