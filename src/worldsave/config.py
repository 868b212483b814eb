from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class SaveSettings(BaseModel):
    """Tunable settings for saving and restoring the world.

    The fallback radius and plant id precision were picked empirically for a
    scene scale of roughly one unit per metre; adjust them to your own scale.
    """

    max_slots: int = Field(3, description="Number of saves kept before the oldest is evicted")
    fallback_radius: float = Field(5.0, description="Max distance for proximity matching of scene objects")
    plant_id_precision: int = Field(2, description="Decimal places used when rounding plant positions")
    plot_claim_radius: float = Field(1.0, description="Plants this close to a farming plot are owned by the plot")
    settle_ticks: int = Field(2, description="Ticks to wait after a scene load before restoring")
    extra_restore_passes: int = Field(0, description="Additional scene object passes after a restore")
    menu_scene_markers: List[str] = Field(
        default_factory=lambda: ["Menu"], description="Scenes whose name contains one of these are never restored"
    )
    auto_save_on_unload: bool = Field(True, description="Save automatically when a scene is about to unload")
    save_prefix: str = Field("GameSave_", description="Key prefix for stored saves")
    index_key: str = Field("SaveTimes", description="Key of the comma-separated save index")
    timestamp_format: str = Field("%Y-%m-%d %H:%M:%S", description="strftime format of save identifiers")
    app_name: str = Field("WorldSave", description="Application name used for the default data directory")

    @field_validator("max_slots")
    @classmethod
    def at_least_one_slot(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_slots must be at least 1")
        return v

    @field_validator("fallback_radius", "plot_claim_radius")
    @classmethod
    def non_negative_radius(cls, v: float) -> float:
        if v < 0:
            raise ValueError("radius cannot be negative")
        return v

    @field_validator("plant_id_precision", "settle_ticks", "extra_restore_passes")
    @classmethod
    def non_negative_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value cannot be negative")
        return v

    def is_menu_scene(self, scene_id: str) -> bool:
        return any(marker and marker in scene_id for marker in self.menu_scene_markers)


def load_settings(path: Optional[Union[str, Path]] = None) -> SaveSettings:
    """Load settings from a YAML file.

    Missing file or empty document yields the defaults. Unknown keys are ignored.
    """
    if path is None:
        return SaveSettings()
    path = Path(path)
    if not path.exists():
        logger.info("Settings file %s not found; using defaults", path)
        return SaveSettings()
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    known = {k: v for k, v in raw.items() if k in SaveSettings.model_fields}
    ignored = sorted(set(raw) - set(known))
    if ignored:
        logger.warning("Ignoring unknown settings keys: %s", ignored)
    settings = SaveSettings(**known)
    logger.debug("Loaded save settings from %s: %s", path, settings)
    return settings
