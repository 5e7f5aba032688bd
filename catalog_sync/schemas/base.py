"""
Base schemas with common functionality.
"""
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar('T', bound='BaseSchema')


class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True
    )

    @classmethod
    def from_orm_model(cls: Type[T], orm_model: Any) -> T:
        """Create a schema instance from an ORM model"""
        return cls.model_validate(orm_model)


class CamelSchema(BaseSchema):
    """Schema exchanged with API clients using camelCase keys"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_api(self, **kwargs) -> Dict[str, Any]:
        """JSON-ready dict using the camelCase aliases."""
        return self.model_dump(by_alias=True, mode="json", **kwargs)
