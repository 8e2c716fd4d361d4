"""Pixel comparison between a fresh capture and its baseline.

A pixel counts as different when its YIQ colour distance to the baseline,
normalised to ``[0, 1]``, exceeds ``threshold``. The comparison passes when
the number of such pixels is at most ``max_diff_pixels``. Images whose
dimensions differ always fail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import numpy as np
from PIL import Image

from storyshot.models.config import ToleranceConfig

logger = logging.getLogger(__name__)

# Largest possible YIQ delta between two RGB colours
MAX_YIQ_DELTA = 35215.0

DIFF_COLOR = (255, 0, 0)


@dataclass
class ComparisonResult:
    passed: bool
    diff_pixels: int
    total_pixels: int
    threshold: float
    max_diff_pixels: int
    diff_path: Optional[str] = None
    size_mismatch: bool = False
    message: str = ""


class Comparator(Protocol):
    def compare(
        self, actual: Path, baseline: Path, diff_path: Path, tolerance: ToleranceConfig
    ) -> ComparisonResult: ...


def _load_rgb(path: Path) -> np.ndarray:
    """Load an image as float RGB, alpha-blended onto white."""
    with Image.open(path) as img:
        rgba = np.asarray(img.convert("RGBA"), dtype=np.float64)
    alpha = rgba[..., 3:4] / 255.0
    return 255.0 + (rgba[..., :3] - 255.0) * alpha


def _yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def color_distance(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Per-pixel perceptual distance in ``[0, 1]`` for two equally sized RGB arrays."""
    ya, ia, qa = _yiq(a)
    yb, ib, qb = _yiq(b)
    delta = 0.5053 * (ya - yb) ** 2 + 0.299 * (ia - ib) ** 2 + 0.1957 * (qa - qb) ** 2
    return np.sqrt(np.clip(delta / MAX_YIQ_DELTA, 0.0, 1.0))


def _write_diff_image(baseline: np.ndarray, mask: np.ndarray, output: Path) -> Path:
    """Faded greyscale baseline with differing pixels painted red."""
    y, _, _ = _yiq(baseline)
    faded = 255.0 + (y - 255.0) * 0.1
    canvas = np.repeat(faded[..., None], 3, axis=2)
    canvas[mask] = DIFF_COLOR
    output.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.clip(canvas, 0, 255).astype(np.uint8)).save(output)
    return output


class PixelComparator:
    """Tolerance-bounded pixel comparator backed by Pillow and numpy."""

    def compare(
        self, actual: Path, baseline: Path, diff_path: Path, tolerance: ToleranceConfig
    ) -> ComparisonResult:
        actual_rgb = _load_rgb(Path(actual))
        baseline_rgb = _load_rgb(Path(baseline))

        if actual_rgb.shape != baseline_rgb.shape:
            return self._size_mismatch(actual_rgb, baseline_rgb, Path(diff_path), tolerance)

        distance = color_distance(actual_rgb, baseline_rgb)
        mask = distance > tolerance.threshold
        diff_pixels = int(mask.sum())
        total = int(mask.size)
        passed = diff_pixels <= tolerance.max_diff_pixels
        message = (
            f"{diff_pixels} of {total} pixels differ beyond threshold {tolerance.threshold} "
            f"(max allowed {tolerance.max_diff_pixels})"
        )

        written: Optional[str] = None
        if not passed:
            written = str(_write_diff_image(baseline_rgb, mask, Path(diff_path)))
            logger.debug("Diff image written to %s", written)

        return ComparisonResult(
            passed=passed,
            diff_pixels=diff_pixels,
            total_pixels=total,
            threshold=tolerance.threshold,
            max_diff_pixels=tolerance.max_diff_pixels,
            diff_path=written,
            message=message,
        )

    def _size_mismatch(
        self, actual: np.ndarray, baseline: np.ndarray, diff_path: Path, tolerance: ToleranceConfig
    ) -> ComparisonResult:
        height = max(actual.shape[0], baseline.shape[0])
        width = max(actual.shape[1], baseline.shape[1])
        overlap_h = min(actual.shape[0], baseline.shape[0])
        overlap_w = min(actual.shape[1], baseline.shape[1])

        mask = np.ones((height, width), dtype=bool)
        overlap = color_distance(actual[:overlap_h, :overlap_w], baseline[:overlap_h, :overlap_w])
        mask[:overlap_h, :overlap_w] = overlap > tolerance.threshold

        padded = np.full((height, width, 3), 255.0)
        padded[:baseline.shape[0], :baseline.shape[1]] = baseline
        written = str(_write_diff_image(padded, mask, diff_path))

        return ComparisonResult(
            passed=False,
            diff_pixels=int(mask.sum()),
            total_pixels=int(mask.size),
            threshold=tolerance.threshold,
            max_diff_pixels=tolerance.max_diff_pixels,
            diff_path=written,
            size_mismatch=True,
            message=(
                f"Image size {actual.shape[1]}x{actual.shape[0]} does not match "
                f"baseline {baseline.shape[1]}x{baseline.shape[0]}"
            ),
        )
