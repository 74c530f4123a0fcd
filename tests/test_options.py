from __future__ import annotations

from typing import Any, ClassVar

import pytest
from pydantic import Field, ValidationError

from collectbeat.collectors import ProcessOptions, SystemOptions
from libbeat.config import OptionsModel, resolve_options
from libbeat.errors import ConfigurationError


class SampleOptions(OptionsModel):
    defaults: ClassVar[dict[str, Any]] = {"period": 10.0, "retries": 3, "enabled": True, "paths": ["/var/log"]}

    period: float | None = Field(default=None, ge=0)
    retries: int | None = None
    enabled: bool | None = None
    paths: list[str] | None = None
    label: str | None = None


def test_absent_options_take_documented_defaults() -> None:
    options = resolve_options(SampleOptions, {})
    assert options.period == 10.0
    assert options.retries == 3
    assert options.enabled is True
    assert options.paths == ["/var/log"]
    assert options.label is None
    assert options.explicit_options == frozenset()


def test_explicit_zero_values_are_honored() -> None:
    options = resolve_options(SampleOptions, {"period": 0, "retries": 0, "enabled": False, "paths": [], "label": ""})
    assert options.period == 0
    assert options.retries == 0
    assert options.enabled is False
    assert options.paths == []
    assert options.label == ""
    assert options.is_explicit("period")
    assert options.is_explicit("paths")


def test_mixed_absent_and_present() -> None:
    options = resolve_options(SampleOptions, {"retries": 0})
    assert options.retries == 0
    assert options.period == 10.0
    assert options.is_explicit("retries")
    assert not options.is_explicit("period")


def test_none_section_resolves_to_defaults() -> None:
    options = resolve_options(SampleOptions, None)
    assert options.retries == 3


def test_defaults_are_not_shared_between_resolutions() -> None:
    first = resolve_options(SampleOptions, {})
    assert first.paths is not None
    first.paths.append("/tmp")
    second = resolve_options(SampleOptions, {})
    assert second.paths == ["/var/log"]


def test_resolved_options_are_frozen() -> None:
    options = resolve_options(SampleOptions, {})
    with pytest.raises(ValidationError):
        options.period = 5.0  # type: ignore[misc]


def test_unknown_option_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="sample"):
        resolve_options(SampleOptions, {"unexpected": 1}, section="sample")


def test_invalid_type_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        resolve_options(SampleOptions, {"retries": "many"})
    with pytest.raises(ConfigurationError):
        resolve_options(SampleOptions, {"period": -1})


def test_non_table_section_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        resolve_options(SampleOptions, [1, 2])  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("model", "raw", "option", "expected"),
    [
        (SystemOptions, {}, "period", 10.0),
        (SystemOptions, {"period": 0}, "period", 0),
        (SystemOptions, {}, "include_swap", True),
        (SystemOptions, {"include_swap": False}, "include_swap", False),
        (ProcessOptions, {}, "max_processes", 20),
        (ProcessOptions, {"max_processes": 0}, "max_processes", 0),
        (ProcessOptions, {}, "names", []),
    ],
)
def test_collector_options_never_conflate_absent_and_zero(
    model: type[OptionsModel], raw: dict[str, Any], option: str, expected: Any
) -> None:
    options = resolve_options(model, raw)
    assert getattr(options, option) == expected
    assert options.is_explicit(option) == (option in raw)
