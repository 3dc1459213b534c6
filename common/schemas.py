"""Pydantic schemas for replica construction parameters."""

from typing import Any, Dict, FrozenSet, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from common.constants import ALL_SUBSCRIBERS
from common.exceptions import MalformedReplicaParamsError


class ReplicaParams(BaseModel):
    """Parameters accepted by ReplicaServer.create."""
    class_tag: str = Field(min_length=1)
    data: Dict[str, Any]
    tags: Dict[str, Any] = Field(default_factory=dict)
    replication: Union[str, FrozenSet[str]] = ALL_SUBSCRIBERS

    @field_validator("replication")
    @classmethod
    def check_replication(cls, value):
        if isinstance(value, str) and value != ALL_SUBSCRIBERS:
            raise ValueError(f"replication must be '{ALL_SUBSCRIBERS}' or a set of subscriber ids")
        return value

    @classmethod
    def parse(cls, **params: Any) -> "ReplicaParams":
        """
        Validate construction parameters.

        Raises:
            MalformedReplicaParamsError: If a required field is missing or invalid
        """
        if params.get("replication") is None:
            params.pop("replication", None)

        try:
            return cls(**params)
        except ValidationError as e:
            raise MalformedReplicaParamsError(f"Invalid replica parameters: {e}") from e
