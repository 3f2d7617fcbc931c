"""Base model for all kbflash Pydantic models."""

from pydantic import BaseModel, ConfigDict


class KbflashBaseModel(BaseModel):
    """Base model class for all kbflash Pydantic models.

    Unknown fields are rejected and assignments are re-validated, so a typo
    in a config section surfaces as a validation error.
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        use_enum_values=False,
        validate_assignment=True,
    )
