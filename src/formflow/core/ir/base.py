"""
Shared pydantic configuration for formflow configuration models.

Configuration documents are authored in camelCase JSON (``dependentIds``,
``visibilityExpression``); the Python side uses snake_case. Both spellings
are accepted on input.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ConfigModel(BaseModel):
    """Frozen model accepting snake_case or camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )
