from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Tuple


class FilterType(str, Enum):
    NONE = "none"
    SEPIA = "sepia"
    GRAYSCALE = "grayscale"
    VINTAGE = "vintage"


class ActionKind(Enum):
    """
    What produced a history entry.
    Continuous actions coalesce into the previous entry when repeated;
    discrete ones always append.
    """
    INITIAL = ("initialState", False)
    ROTATE = ("actionRotate", False)
    FLIP = ("actionFlip", False)
    CROP = ("actionCrop", False)
    RESET = ("actionReset", False)
    FILTER_NONE = ("filterNone", False)
    FILTER_SEPIA = ("filterSepia", False)
    FILTER_GRAYSCALE = ("filterGrayscale", False)
    FILTER_VINTAGE = ("filterVintage", False)
    ZOOM = ("actionZoom", True)
    STRAIGHTEN = ("actionStraighten", True)
    PAN = ("actionPan", True)
    FILTER = ("actionFilter", True)

    def __init__(self, key: str, continuous: bool):
        self.key = key
        self.continuous = continuous

    @property
    def label(self) -> str:
        return _ACTION_LABELS.get(self.key, self.key)

    @classmethod
    def for_filter(cls, filter_type: FilterType) -> "ActionKind":
        return {
            FilterType.NONE: cls.FILTER_NONE,
            FilterType.SEPIA: cls.FILTER_SEPIA,
            FilterType.GRAYSCALE: cls.FILTER_GRAYSCALE,
            FilterType.VINTAGE: cls.FILTER_VINTAGE,
        }[FilterType(filter_type)]


_ACTION_LABELS = {
    "initialState": "Original",
    "actionRotate": "Rotate",
    "actionFlip": "Flip",
    "actionCrop": "Crop",
    "actionReset": "Reset",
    "filterNone": "Filter: None",
    "filterSepia": "Filter: Sepia",
    "filterGrayscale": "Filter: Grayscale",
    "filterVintage": "Filter: Vintage",
    "actionZoom": "Zoom",
    "actionStraighten": "Straighten",
    "actionPan": "Pan",
    "actionFilter": "Filter Intensity",
}


class EditorMode(Enum):
    VIEWING = "viewing"
    EDITING = "editing"
    MASKING = "masking"


@dataclass(frozen=True)
class Pan:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class CropBox:
    # Container-local screen coordinates of the two drag corners
    start_x: float
    start_y: float
    end_x: float
    end_y: float

    def rect(self) -> Tuple[float, float, float, float]:
        left = min(self.start_x, self.end_x)
        top = min(self.start_y, self.end_y)
        return (left, top, abs(self.end_x - self.start_x), abs(self.end_y - self.start_y))

    def with_end(self, x: float, y: float) -> "CropBox":
        return replace(self, end_x=float(x), end_y=float(y))


@dataclass(frozen=True)
class FilterState:
    type: FilterType = FilterType.NONE
    intensity: int = 100  # 0-100


@dataclass(frozen=True)
class EditState:
    action: ActionKind = ActionKind.INITIAL
    rotation: int = 0
    scale_x: int = 1
    straighten_angle: float = 0.0
    edit_zoom: float = 1.0
    edit_pan: Pan = field(default_factory=Pan)
    crop_box: CropBox | None = None
    filter: FilterState = field(default_factory=FilterState)

    @property
    def action_key(self) -> str:
        return self.action.key

    def merged(self, action: ActionKind, **changes) -> "EditState":
        return replace(self, action=action, **changes)


def identity_state() -> EditState:
    return EditState()


@dataclass
class EditorSettings:
    # Mask brush (screen pixels; divided by zoom when painting)
    brush_size: float = 40.0

    # Chroma key tolerance, compared directly against RGB euclidean distance (0..~441)
    chroma_tolerance: int = 20

    straighten_limit: float = 15.0
    zoom_min: float = 0.1
    zoom_max: float = 10.0
    zoom_step: float = 1.1
    wheel_zoom_rate: float = 0.01
    fit_margin: float = 0.95

    # Export
    export_format: str = "png"
    jpeg_quality: int = 92

    quota_cooldown_seconds: int = 60

    def clamp_zoom(self, zoom: float) -> float:
        return max(self.zoom_min, min(self.zoom_max, float(zoom)))

    def clamp_straighten(self, angle: float) -> float:
        lim = abs(float(self.straighten_limit))
        return max(-lim, min(lim, float(angle)))
