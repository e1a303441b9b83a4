"""Base models for Miyomi."""

from pydantic import BaseModel as PydanticBaseModel, ConfigDict


class BaseModel(PydanticBaseModel):
    """Base model with common configuration."""
    
    model_config = ConfigDict(
        # Enable validation on assignment
        validate_assignment=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        extra="forbid",
        validate_default=True,
    )


class FrozenModel(BaseModel):
    """Immutable model; instances are never mutated once built."""
    
    model_config = ConfigDict(frozen=True)
