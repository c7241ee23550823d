from typing import Annotated, Any

from pydantic import BeforeValidator


def normalize_run_id(value: Any) -> str:
    """Accept a workflow run id as string or number and return it trimmed."""
    if isinstance(value, bool):
        raise ValueError("run_id must be a string or number")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, (str, int, float)):
        raise ValueError("run_id must be a string or number")
    normalized = str(value).strip()
    if not normalized:
        raise ValueError("run_id must not be empty")
    return normalized


def _strip_required(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
    return value


RunId = Annotated[str, BeforeValidator(normalize_run_id)]

NonEmptyStr = Annotated[str, BeforeValidator(_strip_required)]
