"""Face-mesh landmark geometry.

Landmarks are normalised ``(x, y[, z])`` points indexed as in the
468-point face mesh.  Every function here is pure and works on a single
frame.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Sequence

Point = Sequence[float]


class EyeIndices(NamedTuple):
    upper: tuple[int, ...]
    lower: tuple[int, ...]
    outer: int
    inner: int


LEFT_EYE = EyeIndices(
    upper=(159, 158, 157, 173),
    lower=(144, 145, 153, 154),
    outer=33,
    inner=133,
)
RIGHT_EYE = EyeIndices(
    upper=(386, 385, 384, 398),
    lower=(362, 382, 381, 380),
    outer=362,
    inner=263,
)

UPPER_LIP, LOWER_LIP = 13, 14
MOUTH_LEFT, MOUTH_RIGHT = 61, 291
LEFT_INNER_BROW, LEFT_OUTER_BROW = 55, 46
RIGHT_INNER_BROW, RIGHT_OUTER_BROW = 285, 276

# Smallest mesh that carries every index used above.
REQUIRED_LANDMARKS = 387

# Eye-centre displacement (normalised units) treated as fully unstable gaze.
GAZE_DISPLACEMENT_SCALE = 0.05


def has_required_landmarks(landmarks: Sequence[Point] | None) -> bool:
    return landmarks is not None and len(landmarks) >= REQUIRED_LANDMARKS


def distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def eye_aspect_ratio(landmarks: Sequence[Point], eye: EyeIndices) -> float:
    """Mean upper/lower lid distance over eye width."""
    pairs = list(zip(eye.upper, eye.lower))
    vertical = sum(distance(landmarks[u], landmarks[l]) for u, l in pairs) / len(pairs)
    width = distance(landmarks[eye.outer], landmarks[eye.inner])
    if width == 0:
        return 0.0
    return vertical / width


def average_eye_aspect_ratio(landmarks: Sequence[Point]) -> float:
    return (eye_aspect_ratio(landmarks, LEFT_EYE) + eye_aspect_ratio(landmarks, RIGHT_EYE)) / 2


def jaw_openness(landmarks: Sequence[Point]) -> float:
    """Lip gap relative to 30% of mouth width, clamped to 1."""
    gap = distance(landmarks[UPPER_LIP], landmarks[LOWER_LIP])
    width = distance(landmarks[MOUTH_LEFT], landmarks[MOUTH_RIGHT])
    if width == 0:
        return 0.0
    return min(1.0, gap / (width * 0.3))


def brow_furrow(landmarks: Sequence[Point]) -> float:
    """Inner-minus-outer brow height, scaled by 10 and clamped to [0, 1]."""
    left = landmarks[LEFT_INNER_BROW][1] - landmarks[LEFT_OUTER_BROW][1]
    right = landmarks[RIGHT_INNER_BROW][1] - landmarks[RIGHT_OUTER_BROW][1]
    return max(0.0, min(1.0, (left + right) / 2 * 10))


def eye_centre(landmarks: Sequence[Point]) -> tuple[float, float]:
    """Centroid of both eyes' contour points."""
    indices: list[int] = []
    for eye in (LEFT_EYE, RIGHT_EYE):
        indices.extend(eye.upper)
        indices.extend(eye.lower)
        indices.extend((eye.outer, eye.inner))
    xs = [landmarks[i][0] for i in indices]
    ys = [landmarks[i][1] for i in indices]
    return sum(xs) / len(xs), sum(ys) / len(ys)


def gaze_stability(previous: tuple[float, float] | None, current: tuple[float, float]) -> float:
    """1.0 for a still gaze, falling to 0.0 as eye-centre jumps grow."""
    if previous is None:
        return 1.0
    return max(0.0, 1.0 - distance(previous, current) / GAZE_DISPLACEMENT_SCALE)
