from pydantic import BaseModel, ConfigDict


class FrozenModel(BaseModel):
    """Base model for immutable engine values (inputs, signals, decisions)."""

    model_config = ConfigDict(frozen=True)
