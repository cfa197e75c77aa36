# taskgraph/schemas/commands.py
from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class PatchIn(BaseModel):
    model_config = {"extra": "forbid"}

    set: Dict[str, Any] = {}
    add_to_set: Dict[str, List[Any]] = {}
    push: Dict[str, List[Any]] = {}
    pull: Dict[str, List[Any]] = {}


class CreatedOut(BaseModel):
    id: int


class CascadeOut(BaseModel):
    root: Dict[str, Any]
    deleted: Dict[str, List[int]]
    pruned: int
    cleared: int


class DeleteOut(BaseModel):
    deleted: bool
    cascade: Optional[CascadeOut] = None


class UpdateOut(BaseModel):
    id: int
    cascade: Optional[CascadeOut] = None
