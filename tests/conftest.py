"""Pytest configuration and shared fixtures for the plan progress tests."""
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

WIDTH, HEIGHT = 1000, 750
PLAN_RECT = (200, 150, 800, 600)  # x0, y0, x1, y1

BLACK = (0, 0, 0)
RED = (0, 0, 255)


def encode_png(image: np.ndarray) -> bytes:
    ok, buf = cv2.imencode('.png', image)
    assert ok
    return buf.tobytes()


def white_frame(width: int = WIDTH, height: int = HEIGHT) -> np.ndarray:
    return np.full((height, width, 3), 255, dtype=np.uint8)


def painted_plan(color=BLACK) -> np.ndarray:
    """White sheet with one solid rectangle covering the whole plan."""
    frame = white_frame()
    x0, y0, x1, y1 = PLAN_RECT
    cv2.rectangle(frame, (x0, y0), (x1, y1), color, -1)
    return frame


def rect_mask(shape, x0, y0, x1, y1) -> np.ndarray:
    mask = np.zeros(shape[:2], dtype=np.uint8)
    mask[y0:y1, x0:x1] = 255
    return mask


QR_SIZE = 180
QR_INSET = 40


def qr_marker(text: str, size: int = QR_SIZE) -> np.ndarray:
    """BGR QR code encoding text, scaled to size x size."""
    code = cv2.QRCodeEncoder.create().encode(text)
    code = cv2.resize(code, (size, size), interpolation=cv2.INTER_NEAREST)
    return cv2.cvtColor(code, cv2.COLOR_GRAY2BGR)


def qr_sheet(tags=('TL', 'TR', 'BR', 'BL'), width: int = 1200, height: int = 900) -> np.ndarray:
    """White sheet with a corner-tag QR marker inset in each requested corner."""
    sheet = white_frame(width, height)
    far_x = width - QR_INSET - QR_SIZE
    far_y = height - QR_INSET - QR_SIZE
    origins = {'TL': (QR_INSET, QR_INSET), 'TR': (far_x, QR_INSET),
               'BR': (far_x, far_y), 'BL': (QR_INSET, far_y)}
    for tag in tags:
        x, y = origins[tag]
        sheet[y:y + QR_SIZE, x:x + QR_SIZE] = qr_marker(tag)
    return sheet


@pytest.fixture
def blank_frame():
    return white_frame()


@pytest.fixture
def black_plan():
    return painted_plan(BLACK)


@pytest.fixture
def split_plan():
    """Left half of the plan black, right half red."""
    frame = white_frame()
    x0, y0, x1, y1 = PLAN_RECT
    mid = (x0 + x1) // 2
    cv2.rectangle(frame, (x0, y0), (mid, y1), BLACK, -1)
    cv2.rectangle(frame, (mid + 1, y0), (x1, y1), RED, -1)
    return frame


@pytest.fixture
def grid_frame():
    """White frame with 2px black lines every 40px."""
    frame = white_frame(400, 400)
    for p in range(20, 400, 40):
        frame[:, p:p + 2] = 0
        frame[p:p + 2, :] = 0
    return frame
