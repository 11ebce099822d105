"""Per-frame image conditioning applied before display and tracking."""

from typing import Callable, Dict, List

import cv2
import numpy as np

ImageTransform = Callable[[np.ndarray], np.ndarray]


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def invert(image: np.ndarray) -> np.ndarray:
    return cv2.bitwise_not(image)


def invert_mean(image: np.ndarray) -> np.ndarray:
    """Channel mean, inverted (dark dots become bright)."""
    if image.ndim == 2:
        mean = image.astype(np.float32)
    else:
        mean = image.astype(np.float32).mean(axis=2)
    return (255 - np.clip(np.rint(mean), 0, 255)).astype(np.uint8)


def clahe(image: np.ndarray) -> np.ndarray:
    gray = to_gray(image)
    return cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8)).apply(gray)


TRANSFORMS: Dict[str, ImageTransform] = {
    "gray": to_gray,
    "invert": invert,
    "invert_gray": invert_mean,
    "clahe": clahe,
}


def get_transform(name: str) -> ImageTransform:
    try:
        return TRANSFORMS[name]
    except KeyError:
        raise ValueError(f"Unknown image transform {name!r} (choose from {sorted(TRANSFORMS)})") from None


def compose(*transforms: ImageTransform) -> ImageTransform:
    chain: List[ImageTransform] = list(transforms)

    def apply(image: np.ndarray) -> np.ndarray:
        for transform in chain:
            image = transform(image)
        return image

    return apply
