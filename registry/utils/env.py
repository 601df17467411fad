"""Typed environment variable declarations.

A variable is declared once as an ``EnvVarSpec`` and read with ``parse``.
``validate`` checks a list of specs up front so a misconfigured process fails
at startup instead of on first use.
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from pydantic import ValidationError, create_model

from . import log

logger = log.get_logger(__name__)


@dataclass(frozen=True)
class EnvVarSpec:
    id: str
    default: Optional[str] = None
    parse: Optional[Callable[[str], Any]] = None
    type: Tuple[Any, Any] = (str, ...)
    is_optional: bool = False
    is_secret: bool = False


def _raw(spec: EnvVarSpec) -> Optional[str]:
    value = os.environ.get(spec.id)
    if value is None or value == "":
        return spec.default
    return value


def parse(spec: EnvVarSpec) -> Any:
    raw = _raw(spec)
    if raw is None:
        if spec.is_optional:
            return None
        raise ValueError(f"Environment variable {spec.id} is not set")

    value = spec.parse(raw) if spec.parse else raw
    model = create_model(spec.id, value=spec.type)
    return model(value=value).value


def validate(specs: List[EnvVarSpec]) -> bool:
    ok = True
    for spec in specs:
        try:
            value = parse(spec)
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid environment variable {spec.id}: {e}")
            ok = False
            continue
        shown = "***" if spec.is_secret and value else value
        logger.debug(f"{spec.id}={shown}")
    return ok
