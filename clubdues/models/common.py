"""
Shared model helpers.

Patch models carry only the fields a caller wants to change.
apply_patch merges them onto a stored record and re-validates the
result, so a patch can never produce a record the full model rejects.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from clubdues.dates import ensure_utc


Money = Annotated[Decimal, Field(ge=0, decimal_places=2)]

ModelT = TypeVar("ModelT", bound=BaseModel)


def apply_patch(
    record: ModelT,
    patch: BaseModel,
    exclude: Optional[set[str]] = None,
    **overrides: Any,
) -> ModelT:
    """
    Return a validated copy of record with the patch's explicitly set fields.

    Staged attachments and fields named in exclude are skipped.
    Overrides win over the patch.
    """
    exclude = (exclude or set()) | {"staged_attachment"}
    changes = patch.model_dump(exclude_unset=True, exclude=exclude)
    data = record.model_dump()
    data.update(changes)
    data.update(overrides)
    return type(record).model_validate(data)


def coerce_utc(value: Any) -> Any:
    """before-validator body for ledger instants."""
    if isinstance(value, (date, datetime)):
        return ensure_utc(value)
    return value


def blank_to_none(value: Optional[Union[str, Any]]) -> Any:
    """before-validator body: empty strings mean "not set"."""
    if isinstance(value, str) and not value.strip():
        return None
    return value
