from __future__ import annotations

import numpy as np

from core.state import FilterState, FilterType

# Luminance weights used by the CSS filter-effects color matrices
_LR, _LG, _LB = 0.2126, 0.7152, 0.0722


def _sepia_matrix(amount: float) -> np.ndarray:
    a = 1.0 - max(0.0, min(1.0, amount))
    return np.array([
        [0.393 + 0.607 * a, 0.769 - 0.769 * a, 0.189 - 0.189 * a],
        [0.349 - 0.349 * a, 0.686 + 0.314 * a, 0.168 - 0.168 * a],
        [0.272 - 0.272 * a, 0.534 - 0.534 * a, 0.131 + 0.869 * a],
    ], dtype=np.float32)


def _grayscale_matrix(amount: float) -> np.ndarray:
    a = 1.0 - max(0.0, min(1.0, amount))
    return np.array([
        [_LR + 0.7874 * a, _LG - _LG * a, _LB - _LB * a],
        [_LR - _LR * a, _LG + 0.2848 * a, _LB - _LB * a],
        [_LR - _LR * a, _LG - _LG * a, _LB + 0.9278 * a],
    ], dtype=np.float32)


def _saturate_matrix(s: float) -> np.ndarray:
    s = max(0.0, s)
    return np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ], dtype=np.float32)


def _matrix(rgb: np.ndarray, m: np.ndarray) -> np.ndarray:
    return np.clip(rgb @ m.T, 0.0, 255.0)


def _contrast(rgb: np.ndarray, c: float) -> np.ndarray:
    return np.clip(rgb * c + 127.5 * (1.0 - c), 0.0, 255.0)


def _brightness(rgb: np.ndarray, b: float) -> np.ndarray:
    return np.clip(rgb * b, 0.0, 255.0)


def sepia(rgb: np.ndarray, amount: float) -> np.ndarray:
    return _matrix(rgb, _sepia_matrix(amount))


def grayscale(rgb: np.ndarray, amount: float) -> np.ndarray:
    return _matrix(rgb, _grayscale_matrix(amount))


def saturate(rgb: np.ndarray, s: float) -> np.ndarray:
    return _matrix(rgb, _saturate_matrix(s))


def vintage(rgb: np.ndarray, amount: float) -> np.ndarray:
    # Intensity only drives the sepia part
    rgb = sepia(rgb, amount * 0.6)
    rgb = _contrast(rgb, 1.1)
    rgb = _brightness(rgb, 0.95)
    return saturate(rgb, 1.2)


def apply_filter_rgba(rgba: np.ndarray, filt: FilterState) -> np.ndarray:
    if rgba.dtype != np.uint8 or rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError("rgba must be HxWx4 uint8")

    ftype = FilterType(filt.type)
    if ftype is FilterType.NONE:
        return rgba.copy()

    amount = max(0, min(100, int(filt.intensity))) / 100.0
    rgb = rgba[..., :3].astype(np.float32)
    if ftype is FilterType.SEPIA:
        rgb = sepia(rgb, amount)
    elif ftype is FilterType.GRAYSCALE:
        rgb = grayscale(rgb, amount)
    elif ftype is FilterType.VINTAGE:
        rgb = vintage(rgb, amount)

    out = rgba.copy()
    out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    return out


def apply_download_enhance_rgba(rgba: np.ndarray) -> np.ndarray:
    """Light touch-up used for upscaled downloads: contrast 105%, saturate 105%, brightness 102%."""
    if rgba.dtype != np.uint8 or rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError("rgba must be HxWx4 uint8")
    rgb = rgba[..., :3].astype(np.float32)
    rgb = _contrast(rgb, 1.05)
    rgb = saturate(rgb, 1.05)
    rgb = _brightness(rgb, 1.02)
    out = rgba.copy()
    out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    return out
