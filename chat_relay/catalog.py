from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str = ""
    available: bool = True
    supports_vision: bool = False


class ModelCatalog:
    """Read-only list of the models a session may select."""

    def __init__(self, models: Iterable[ModelInfo]) -> None:
        self._models: List[ModelInfo] = list(models)

    def list(self) -> List[ModelInfo]:
        return list(self._models)

    def find(self, model_id: Optional[str]) -> Optional[ModelInfo]:
        for m in self._models:
            if m.id == model_id:
                return m
        return None

    def is_valid(self, model_id: Optional[str]) -> bool:
        return self.find(model_id) is not None

    def supports_vision(self, model_id: Optional[str]) -> bool:
        model = self.find(model_id)
        return model is not None and model.supports_vision

    def vision_models(self) -> List[ModelInfo]:
        return [m for m in self._models if m.supports_vision]
