from __future__ import annotations

import datetime
import json
from typing import Any, TypedDict, Unpack

from pydantic_core import to_jsonable_python

from duedate.util.datetime_helpers import to_utc


def json_encoder(obj: Any) -> Any:
    # Instants are always written in UTC, whatever timezone they were built in.
    if isinstance(obj, datetime.datetime) and obj.tzinfo is not None:
        obj = to_utc(obj)
    # Everything else (dates, enums, models, dataclasses) goes to the Pydantic encoder.
    return to_jsonable_python(obj)


class _JsonDumpsKwargs(TypedDict, total=False):
    ensure_ascii: bool
    indent: None | int | str
    separators: tuple[str, str] | None
    sort_keys: bool


def json_serializer(obj: Any, **kwargs: Unpack[_JsonDumpsKwargs]) -> str:
    return json.dumps(obj, default=json_encoder, **kwargs)
