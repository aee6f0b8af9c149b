"""
Model Codecs

A codec turns a typed domain value into the JSON payload stored in the
index and back. The DAO is parameterized by a codec, so any domain type can
be stored as long as a codec for it exists.

Two implementations are provided:
- PydanticModelCodec for pydantic models (or any type a pydantic TypeAdapter accepts)
- JsonDictCodec for plain JSON objects

Typical usage from external projects:

    from pydantic import BaseModel
    from data_management_operations import PydanticModelCodec

    class Thing(BaseModel):
        name: str
        amount: int = 0

    codec = PydanticModelCodec(Thing)
    payload = codec.encode(Thing(name="x"))     # b'{"name":"x","amount":0}'
    thing = codec.decode({"name": "x"})         # Thing(name='x', amount=0)
"""

import json
import logging
from typing import Any, Dict, Generic, Mapping, Protocol, Type, TypeVar, Union, runtime_checkable

from pydantic import TypeAdapter, ValidationError

from data_management_operations.data_ops_exceptions import DocumentSerializationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Payload = Union[bytes, str, Mapping[str, Any]]


@runtime_checkable
class ModelCodec(Protocol[T]):
    """
    Serialization capability used by the DAO.

    ``decode`` must accept the forms the client hands back: raw bytes or
    text, and the already-parsed ``_source`` mapping of a response.
    """

    def encode(self, value: T) -> bytes:
        ...

    def decode(self, payload: Payload) -> T:
        ...


class PydanticModelCodec(Generic[T]):
    """
    Codec backed by a pydantic TypeAdapter.

    Args:
        model_type: The domain type, usually a pydantic BaseModel subclass
        exclude_none: Drop fields whose value is None when encoding
    """

    def __init__(self, model_type: Type[T], exclude_none: bool = False):
        self.model_type = model_type
        self.exclude_none = exclude_none
        self._adapter = TypeAdapter(model_type)

    def encode(self, value: T) -> bytes:
        try:
            return self._adapter.dump_json(value, exclude_none=self.exclude_none)
        except Exception as e:
            raise DocumentSerializationError(
                f"Cannot encode {type(value).__name__} as {self.model_type!r}: {e}"
            ) from e

    def decode(self, payload: Payload) -> T:
        try:
            if isinstance(payload, (bytes, bytearray, str)):
                return self._adapter.validate_json(payload)
            return self._adapter.validate_python(dict(payload))
        except ValidationError as e:
            raise DocumentSerializationError(f"Stored document is not a valid {self.model_type!r}: {e}") from e

    def __repr__(self) -> str:
        return f"PydanticModelCodec({self.model_type!r})"


class JsonDictCodec:
    """Codec for plain JSON objects represented as dicts."""

    def encode(self, value: Mapping[str, Any]) -> bytes:
        try:
            return json.dumps(value, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise DocumentSerializationError(f"Cannot encode value as JSON: {e}") from e

    def decode(self, payload: Payload) -> Dict[str, Any]:
        if isinstance(payload, (bytes, bytearray, str)):
            try:
                decoded = json.loads(payload)
            except ValueError as e:
                raise DocumentSerializationError(f"Stored document is not valid JSON: {e}") from e
        else:
            decoded = payload
        if not isinstance(decoded, Mapping):
            raise DocumentSerializationError(
                f"Stored document must be a JSON object, got {type(decoded).__name__}"
            )
        return dict(decoded)
