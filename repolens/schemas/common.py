"""Common schemas and utilities."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema with common configuration.

    Fields serialize to camelCase (``by_alias=True``) to stay compatible with
    cached payloads written by earlier deployments, and accept either name on
    input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_cache(self) -> str:
        """Serialize to the JSON form stored in the cache."""
        return self.model_dump_json(by_alias=True)
