"""
Shared enums and constants used across the application.
"""

from enum import Enum


class RunStatus(str, Enum):
    """Persisted status of a vendor sync run"""
    PENDING = "Pending"
    SUCCESS = "Success"
    FAILED = "Failed"

    @property
    def label(self) -> str:
        """External label used by the API (running / success / error)."""
        return RUN_STATUS_LABELS[self]

    @classmethod
    def from_label(cls, label: str):
        """Map an external label back to a status, None when unknown."""
        if not isinstance(label, str):
            return None
        return _LABEL_TO_STATUS.get(label.strip().lower())


RUN_STATUS_LABELS = {
    RunStatus.PENDING: "running",
    RunStatus.SUCCESS: "success",
    RunStatus.FAILED: "error",
}

_LABEL_TO_STATUS = {label: status for status, label in RUN_STATUS_LABELS.items()}


class NormalizedCategory(str, Enum):
    """Catalog category of a normalized product"""
    FRAMES = "Frames"
    LENSES = "Lenses"
    CONTACTS = "Contacts"
    ACCESSORIES = "Accessories"


class InventoryCategory(str, Enum):
    """Category stored on inventory products"""
    FRAMES = "Frames"
    SUNGLASSES = "Sunglasses"
    LENSES = "Lenses"
    ACCESSORIES = "Accessories"


class VariantType(str, Enum):
    FRAME = "frame"
    LENS = "lens"
    CONTACT = "contact"
    ACCESSORY = "accessory"


CATEGORY_VARIANT_TYPES = {
    NormalizedCategory.FRAMES: VariantType.FRAME,
    NormalizedCategory.LENSES: VariantType.LENS,
    NormalizedCategory.CONTACTS: VariantType.CONTACT,
    NormalizedCategory.ACCESSORIES: VariantType.ACCESSORY,
}


class Usage(str, Enum):
    OPTICAL = "optical"
    SUN = "sun"
    BOTH = "both"


class FrameFit(str, Enum):
    NARROW = "narrow"
    AVERAGE = "average"
    WIDE = "wide"
    EXTRA_WIDE = "extra-wide"


class PhotoAngle(str, Enum):
    """Photo angles, declared in display precedence order"""
    FRONT = "front"
    QUARTER = "quarter"
    SIDE = "side"
    TEMPLE = "temple"
    MODEL = "model"
    DETAIL = "detail"
    PACK = "pack"
    CLIP = "clip"
    UNKNOWN = "unknown"


PHOTO_ANGLE_PRECEDENCE = {angle.value: index for index, angle in enumerate(PhotoAngle)}


class DiffStatus(str, Enum):
    NEW = "new"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


class SyncMode(str, Enum):
    PREVIEW = "preview"
    APPLY = "apply"


class IntegrationType(str, Enum):
    SCRAPER = "SCRAPER"
    API = "API"


class SyncScope(str, Enum):
    READ = "catalog:sync:read"
    WRITE = "catalog:sync:write"
    ADMIN = "catalog:sync:admin"
