"""Shared schema building blocks: the strict base model and JSON-friendly datetimes."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

import pydantic

__all__ = [
    'JsonDatetime',
    'StrictModel',
]

# Lax only for datetimes, so rows and JSON files may carry ISO strings
JsonDatetime = Annotated[datetime, pydantic.Field(strict=False)]


class StrictModel(pydantic.BaseModel):
    """Frozen model that rejects unknown fields and implicit coercion.

    Every schema in the index (config files, snapshot rows, progress
    records) derives from this.
    """

    model_config = pydantic.ConfigDict(
        extra='forbid',
        strict=True,
        frozen=True,
    )
