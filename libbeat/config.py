from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError

from libbeat.errors import ConfigurationError


class OptionsModel(BaseModel):
    """Collector options where every field is ``T | None = None``.

    ``None`` after resolution only remains for options without a documented
    default. Absent options take ``defaults``; present options are kept
    verbatim, zero values included.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    defaults: ClassVar[dict[str, Any]] = {}

    _explicit: frozenset[str] = PrivateAttr(default_factory=frozenset)

    def is_explicit(self, name: str) -> bool:
        return name in self._explicit

    @property
    def explicit_options(self) -> frozenset[str]:
        return self._explicit


OptionsT = TypeVar("OptionsT", bound=OptionsModel)


def resolve_options(
    model_cls: type[OptionsT],
    raw: Mapping[str, Any] | None,
    *,
    section: str = "options",
) -> OptionsT:
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"[{section}] must be a table, got {type(raw).__name__}")

    unknown_defaults = set(model_cls.defaults) - set(model_cls.model_fields)
    if unknown_defaults:
        raise ConfigurationError(f"[{section}] defaults name unknown options: {sorted(unknown_defaults)}")

    try:
        parsed = model_cls.model_validate(dict(raw))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid [{section}] configuration: {exc}") from exc

    explicit = frozenset(parsed.model_fields_set)
    missing = {
        name: copy.deepcopy(default)
        for name, default in model_cls.defaults.items()
        if name not in explicit
    }
    resolved = parsed.model_copy(update=missing)
    resolved._explicit = explicit
    return resolved
