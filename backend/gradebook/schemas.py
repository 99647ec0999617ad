from __future__ import annotations
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic.alias_generators import to_camel

T = TypeVar("T")

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Email = Annotated[
	str,
	StringConstraints(strip_whitespace=True, to_lower=True, max_length=256, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"),
]


class CamelModel(BaseModel):
	"""Request model accepting camelCase keys from the web client."""
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(BaseModel, Generic[T]):
	"""The client wraps every payload as ``{"data": ...}``."""
	data: T


def envelope(payload) -> dict:
	return {"data": payload}
