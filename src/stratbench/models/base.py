# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for stratbench."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class BenchBaseModel(BaseModel):
    """Base model with shared config for stratbench schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class FrozenModel(BaseModel):
    """Immutable value object; fields cannot be reassigned after creation."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
    )
