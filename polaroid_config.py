import os

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv())


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


# Resolution used when none is given on the command line or in the UI
DEFAULT_DPI = _env_int("POLAROID_DPI", 300)

DEFAULT_OUTPUT_DIR = os.getenv("POLAROID_OUTPUT_DIR", "./polaroid-output/")

# Lossless TIFF keeps the CMYK data intact
DEFAULT_OUTPUT_FORMAT = os.getenv("POLAROID_OUTPUT_FORMAT", "tif")

LOG_LEVEL = os.getenv("POLAROID_LOG_LEVEL", "INFO").upper()

# DPI choices offered by the streamlit page
DPI_OPTIONS = [150, 300, 600, 1200]
