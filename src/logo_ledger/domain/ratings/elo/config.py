"""Parse the ``[elo]`` section of a ledger config file."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from logo_ledger.domain.ratings.common import DEFAULT_RATING, K_FACTOR
from logo_ledger.domain.ratings.elo.calculator import EloParameters


def parse_elo_parameters(raw: dict[str, Any], file_path: Path) -> EloParameters:
    elo_raw = raw.get("elo", {})
    parameters = EloParameters(
        initial_rating=float(elo_raw.get("initial_rating", DEFAULT_RATING)),
        k_factor=float(elo_raw.get("k_factor", K_FACTOR)),
        scale_factor=float(elo_raw.get("scale_factor", 400.0)),
    )
    _validate_parameters(file_path=file_path, parameters=parameters)
    return parameters


def elo_parameters_as_json(parameters: EloParameters) -> dict[str, Any]:
    return {
        "initial_rating": parameters.initial_rating,
        "k_factor": parameters.k_factor,
        "scale_factor": parameters.scale_factor,
    }


def _validate_parameters(*, file_path: Path, parameters: EloParameters) -> None:
    if parameters.initial_rating <= 0.0:
        raise ValueError(f"{file_path}: [elo].initial_rating must be > 0")
    if parameters.k_factor <= 0.0:
        raise ValueError(f"{file_path}: [elo].k_factor must be > 0")
    if parameters.scale_factor <= 0.0:
        raise ValueError(f"{file_path}: [elo].scale_factor must be > 0")
