"""
Base schemas for payloads exchanged with the directory API.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Accepts the API's camelCase keys, exposes snake_case attributes, ignores extras."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class FrozenApiModel(ApiModel):
    """Immutable variant for values that are shared by reference."""

    model_config = ConfigDict(frozen=True)
