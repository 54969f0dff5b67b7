import logging

import pytest
from PIL import Image


@pytest.fixture(autouse=True)
def reset_polaroid_logger():
    yield
    # The CLI attaches a stdout handler; drop it so later tests don't write to a stale stream
    logger = logging.getLogger("polaroid")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_image(tmp_path):
    """Write a solid-color image to disk and return its path"""
    def _make(width, height, color=(200, 30, 30), name=None, mode="RGB", **save_kwargs):
        path = tmp_path / (name or f"photo_{width}x{height}.png")
        Image.new(mode, (width, height), color).save(path, **save_kwargs)
        return path
    return _make
