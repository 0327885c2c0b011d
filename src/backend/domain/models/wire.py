from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with the web client.

    JSON keys are camelCase (``audioMimeType``, ``emotionalIntelligence``);
    snake_case field names are accepted on input as well.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
