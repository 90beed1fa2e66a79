"""Pydantic schemas for the probe pipeline."""

from schemas.strict_base import FrozenModel, StrictBaseModel

__all__ = ["FrozenModel", "StrictBaseModel"]
