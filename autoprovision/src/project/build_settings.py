"""Build settings snapshot and single-reference variable expansion.

Xcode build settings and entitlement values may reference other settings with
``$(NAME)``, ``${NAME}`` or ``$(NAME:modifier)``. Only one reference per value
is supported; the modifier is ignored.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from autoprovision.src.core.errors import (
    SettingNotFoundError,
    SettingTypeError,
    VariableExpansionError,
)

_CLOSING = {"(": ")", "{": "}"}


class BuildSettings(dict):
    """Resolved key-value build settings of one target and configuration"""

    def string(self, key: str) -> str:
        """Return the value of ``key`` as a string, raise if it is missing"""
        if key not in self:
            raise SettingNotFoundError(key)
        value = self[key]
        if not isinstance(value, str):
            raise SettingTypeError(key, value)
        return value

    def optional_string(self, key: str) -> str:
        try:
            return self.string(key)
        except SettingNotFoundError:
            return ""


@dataclass(frozen=True)
class VariableReference:
    prefix: str
    name: str
    modifier: Optional[str]
    suffix: str


def parse_variable_reference(value: str) -> VariableReference:
    """Split ``value`` into prefix, referenced name, modifier and suffix.

    The first ``$(`` or ``${`` opens the reference and the first matching
    closing bracket ends it.
    """
    start = _find_reference_start(value)
    if start < 0:
        raise VariableExpansionError(f"no variable reference found in: {value}")

    closing = _CLOSING[value[start + 1]]
    end = value.find(closing, start + 2)
    if end < 0:
        raise VariableExpansionError(f"unterminated variable reference in: {value}")

    body = value[start + 2 : end]
    name, _, modifier = body.partition(":")
    if not name:
        raise VariableExpansionError(f"empty variable name in: {value}")

    return VariableReference(
        prefix=value[:start],
        name=name,
        modifier=modifier or None,
        suffix=value[end + 1 :],
    )


def _find_reference_start(value: str) -> int:
    index = value.find("$")
    while index >= 0:
        if index + 1 < len(value) and value[index + 1] in _CLOSING:
            return index
        index = value.find("$", index + 1)
    return -1


def expand_target_setting(value: str, build_settings: Optional[Mapping[str, Any]]) -> str:
    """Substitute the single variable reference in ``value`` from ``build_settings``"""
    reference = parse_variable_reference(value)

    settings = build_settings or {}
    if reference.name not in settings:
        raise VariableExpansionError(
            f"failed to find environment variable value for key {reference.name}"
        )
    resolved = settings[reference.name]
    if not isinstance(resolved, str):
        raise VariableExpansionError(
            f"value of {reference.name} is not a string: {resolved!r}"
        )

    return reference.prefix + resolved + reference.suffix


def parse_show_build_settings(output: str) -> Dict[str, BuildSettings]:
    """Parse ``xcodebuild -showBuildSettings`` text output, keyed by target"""
    settings_by_target: Dict[str, BuildSettings] = {}
    current: Optional[BuildSettings] = None

    for line in output.splitlines():
        if line.startswith("Build settings for action"):
            target = line.rstrip(":").split(" and target ", 1)[-1].strip()
            current = settings_by_target.setdefault(target, BuildSettings())
            continue
        if current is None or " = " not in line:
            continue
        key, _, value = line.strip().partition(" = ")
        if key and " " not in key:
            current[key] = value.strip()

    return settings_by_target
