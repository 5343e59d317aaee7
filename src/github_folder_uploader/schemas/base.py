"""Base schema class shared by request and report models."""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict


class SchemaBase(BaseModel):
    """Base class for Pydantic schemas built from plain objects or dicts."""

    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
    )

    @classmethod
    def from_obj(cls, obj: Any) -> Self:
        """
        Factory method to create a schema instance from an object or mapping.

        Args:
            obj: Attribute-bearing object or dict

        Returns:
            Pydantic schema instance
        """
        return cls.model_validate(obj)
