from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, model_validator


class VariableType(str, Enum):
    numeric = "numeric"
    count = "count"
    binary = "binary"
    categorical = "categorical"


NUMERIC_TYPES = (VariableType.numeric, VariableType.count)


class VariableConfig(BaseModel):
    name: str
    type: VariableType
    description: str = ""
    units: str = ""

    # Binary: exactly two levels, the second one is coded as 1.
    # Categorical: two or more levels, coded 0..n-1 in this order.
    levels: Optional[List[str]] = None

    @model_validator(mode="after")
    def _validate(self) -> "VariableConfig":
        if self.type == VariableType.binary:
            if self.levels is None or len(self.levels) != 2:
                raise ValueError(f"Binary variable '{self.name}' requires exactly 2 levels.")
        if self.type == VariableType.categorical:
            if self.levels is None or len(self.levels) < 2:
                raise ValueError(f"Categorical variable '{self.name}' requires >=2 levels.")
        if self.type in NUMERIC_TYPES and self.levels:
            raise ValueError(f"Variable '{self.name}' ({self.type.value}) does not take levels.")
        return self

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES


class SimulatedVariable(BaseModel):
    """Generating parameters for one variable within one segment.

    numeric: ``mean`` and ``sd`` of a normal draw.
    count: ``mean`` is the Poisson rate.
    binary: ``mean`` is the probability of the second level.
    """

    mean: float
    sd: Optional[float] = None


class SimulatedSegment(BaseModel):
    name: str
    size: int = Field(gt=0)
    variables: Dict[str, SimulatedVariable]


class SimulationConfig(BaseModel):
    segments: List[SimulatedSegment] = Field(default_factory=list)


class SegmentationConfig(BaseModel):
    """Describes the dataset and the defaults used by every technique."""

    project_name: str = "segmentation"

    variables: List[VariableConfig]

    # Known membership; never used as a clustering input.
    segment_column: str = "Segment"

    seed: int = 98250
    train_fraction: float = Field(default=0.65, gt=0.0, lt=1.0)

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)

    @model_validator(mode="after")
    def _validate(self) -> "SegmentationConfig":
        names = [v.name for v in self.variables]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate variable names: {dupes}")
        if self.segment_column in names:
            raise ValueError(
                f"segment_column '{self.segment_column}' must not also be listed as a variable."
            )

        for seg in self.simulation.segments:
            missing = [n for n in names if n not in seg.variables]
            if missing:
                raise ValueError(
                    f"Simulated segment '{seg.name}' is missing parameters for: {missing}"
                )
            for var in self.variables:
                params = seg.variables[var.name]
                if var.type == VariableType.numeric and (params.sd is None or params.sd <= 0):
                    raise ValueError(
                        f"Simulated segment '{seg.name}': numeric variable '{var.name}' needs sd > 0."
                    )
                if var.type == VariableType.count and params.mean < 0:
                    raise ValueError(
                        f"Simulated segment '{seg.name}': count rate for '{var.name}' must be >= 0."
                    )
                if var.type == VariableType.binary and not 0.0 <= params.mean <= 1.0:
                    raise ValueError(
                        f"Simulated segment '{seg.name}': '{var.name}' probability must be in [0, 1]."
                    )
                if var.type == VariableType.categorical:
                    raise ValueError(
                        f"Simulation does not support categorical variable '{var.name}'."
                    )
        return self

    @classmethod
    def from_yaml(cls, path: str | Path) -> "SegmentationConfig":
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data)

    @classmethod
    def default(cls) -> "SegmentationConfig":
        return cls.model_validate(DEFAULT_CONFIG)

    def variable_names(self) -> List[str]:
        return [v.name for v in self.variables]

    def segment_names(self) -> List[str]:
        return [s.name for s in self.simulation.segments]

    def get_variable(self, name: str) -> VariableConfig:
        for v in self.variables:
            if v.name == name:
                return v
        raise KeyError(f"Unknown variable '{name}'.")


def _seg(name: str, size: int, params: Dict[str, Any]) -> Dict[str, Any]:
    return {"name": name, "size": size, "variables": params}


DEFAULT_CONFIG: Dict[str, Any] = {
    "project_name": "consumer_segments",
    "segment_column": "Segment",
    "seed": 98250,
    "train_fraction": 0.65,
    "variables": [
        {"name": "age", "type": "numeric", "units": "years"},
        {"name": "gender", "type": "binary", "levels": ["Female", "Male"]},
        {"name": "income", "type": "numeric", "units": "USD/year"},
        {"name": "kids", "type": "count"},
        {"name": "ownHome", "type": "binary", "levels": ["ownNo", "ownYes"]},
        {"name": "subscribe", "type": "binary", "levels": ["subNo", "subYes"]},
    ],
    "simulation": {
        "segments": [
            _seg("Suburb mix", 100, {
                "age": {"mean": 40, "sd": 5}, "gender": {"mean": 0.5},
                "income": {"mean": 55000, "sd": 12000}, "kids": {"mean": 2},
                "ownHome": {"mean": 0.5}, "subscribe": {"mean": 0.1},
            }),
            _seg("Urban hip", 50, {
                "age": {"mean": 24, "sd": 2}, "gender": {"mean": 0.7},
                "income": {"mean": 21000, "sd": 5000}, "kids": {"mean": 1},
                "ownHome": {"mean": 0.2}, "subscribe": {"mean": 0.2},
            }),
            _seg("Travelers", 80, {
                "age": {"mean": 58, "sd": 8}, "gender": {"mean": 0.5},
                "income": {"mean": 64000, "sd": 21000}, "kids": {"mean": 0},
                "ownHome": {"mean": 0.7}, "subscribe": {"mean": 0.05},
            }),
            _seg("Moving up", 70, {
                "age": {"mean": 36, "sd": 4}, "gender": {"mean": 0.3},
                "income": {"mean": 52000, "sd": 10000}, "kids": {"mean": 2},
                "ownHome": {"mean": 0.3}, "subscribe": {"mean": 0.2},
            }),
        ]
    },
}
