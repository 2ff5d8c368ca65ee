import io

import numpy as np
import pytest
from PIL import Image
from sqlalchemy import create_engine

from database import init_db

GREEN = (30, 180, 40)
BROWN = (150, 60, 40)
YELLOW = (220, 190, 40)
GREY = (128, 128, 128)


def make_png(*runs):
    """PNG bytes for a 1-pixel-high strip built from (color, count) runs."""
    pixels = []
    for color, count in runs:
        pixels.extend([color] * count)
    arr = np.array([pixels], dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'detections.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def brown_spot_png():
    # 200 green + 100 brown -> brown ratio 1/3
    return make_png((GREEN, 200), (BROWN, 100))
