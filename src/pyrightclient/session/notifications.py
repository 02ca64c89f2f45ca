"""Validated shapes of the progress notifications a server sends.

``$/progress`` carries a token and a value tagged by ``kind``. Anything that
does not fit is turned into a ProtocolAnomaly here, at the boundary.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pyrightclient.errors import ProtocolAnomaly

ProgressToken = Union[int, str]


class ProgressModel(BaseModel):
    """Base model: tolerate extra fields the server may add."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class WorkDoneProgressBegin(ProgressModel):
    kind: Literal["begin"]
    title: str
    cancellable: bool | None = None
    message: str | None = None
    percentage: int | None = Field(default=None, ge=0, le=100)


class WorkDoneProgressReport(ProgressModel):
    kind: Literal["report"]
    cancellable: bool | None = None
    message: str | None = None
    percentage: int | None = Field(default=None, ge=0, le=100)


class WorkDoneProgressEnd(ProgressModel):
    kind: Literal["end"]
    message: str | None = None


ProgressValue = Annotated[
    Union[WorkDoneProgressBegin, WorkDoneProgressReport, WorkDoneProgressEnd],
    Field(discriminator="kind"),
]


class ProgressParams(ProgressModel):
    """Params of a ``$/progress`` notification."""

    token: ProgressToken
    value: ProgressValue


def parse_progress(params: Any) -> ProgressParams:
    """Validate raw ``$/progress`` params.

    Raises:
        ProtocolAnomaly: Unknown ``kind``, missing fields, or wrong types.
    """
    try:
        return ProgressParams.model_validate(params)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise ProtocolAnomaly(f"Malformed $/progress notification: {problems}") from e


def parse_legacy_message(params: Any) -> str | None:
    """Message argument of ``pyright/reportProgress`` (a bare string)."""
    if params is None:
        return None
    if isinstance(params, str):
        return params
    if isinstance(params, list) and len(params) == 1 and isinstance(params[0], str):
        return params[0]
    raise ProtocolAnomaly(f"Malformed legacy progress message: {params!r}")
