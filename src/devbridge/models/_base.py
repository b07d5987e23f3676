"""Base model for device wire payloads.

Every inbound payload model inherits from :class:`BridgeBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase keys (``requestId``) map to
  snake_case fields, while ``populate_by_name`` keeps accepting the
  snake_case keys some firmware sends (``ip_address``).
* A ``model_validator(mode="before")`` that strips sentinel values
  (``""``, ``"--"``, ``None``) so the field default is used.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Placeholder strings firmware sends for "no value".
_SENTINELS = frozenset({"", "--"})

_FEATURE_SUFFIXES = ("_enabled", "Enabled")


def is_empty(value: Any) -> bool:
    """Return ``True`` for empty collections."""
    return hasattr(value, "__len__") and len(value) == 0


def is_non_positive(value: int | float) -> bool:
    return value <= 0


def extract_features(values: dict[str, Any]) -> dict[str, bool]:
    """Collect ``<feature>_enabled`` boolean flags into ``{feature: bool}``.

    ``voice_enabled`` and ``voiceEnabled`` both become ``{"voice": ...}``.
    """
    features: dict[str, bool] = {}
    for key, value in values.items():
        if not isinstance(value, bool):
            continue
        for suffix in _FEATURE_SUFFIXES:
            if key.endswith(suffix) and len(key) > len(suffix):
                features[key[: -len(suffix)].lower()] = value
                break
    return features


def _is_missing(value: Any) -> bool:
    """``None`` and placeholder strings mean the device did not report the key."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip() in _SENTINELS


def rename_keys(values: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    """Return a copy of *values* with wire keys renamed per *aliases*.

    A canonical key that is already present wins over its alias, so a
    payload carrying both ``ip`` and ``address`` keeps ``address``.
    """
    renamed = dict(values)
    for wire_key, canonical in aliases.items():
        if wire_key in renamed and canonical not in renamed:
            renamed[canonical] = renamed.pop(wire_key)
    return renamed


class BridgeBaseModel(BaseModel):
    """Base for inbound device payload models.

    Handles:
    * camelCase and snake_case keys (``requestId`` / ``request_id``)
    * firmware-specific key spellings via ``_KEY_ALIASES``
    * placeholder values (``""``, ``"--"``, ``None``) dropped so the
      field default applies, i.e. "no update"
    * numbers sent where text is expected (a numeric ``name``) kept as text
    * the untouched payload stashed in ``raw``
    * per-field sentinel normalisation via ``_SENTINEL_RULES``
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {}
    """``{wire_key: canonical_key}`` renames applied before validation."""

    _SENTINEL_RULES: ClassVar[dict[str, Callable[..., bool]]] = {}
    """Per-field sentinel predicates.

    Subclasses declare ``{"field_name": predicate}`` pairs. Once the
    model is built, a field whose value satisfies its predicate is reset
    to ``None`` (e.g. an empty capability list means "unchanged").
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        coerce_numbers_to_str=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict)
    """Payload exactly as the device sent it."""

    @model_validator(mode="before")
    @classmethod
    def _prepare_payload(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        prepared = {
            key: value for key, value in rename_keys(values, cls._KEY_ALIASES).items() if not _is_missing(value)
        }
        # An explicit raw= (model construction from kwargs) is kept as given.
        prepared.setdefault("raw", dict(values))
        return prepared

    @model_validator(mode="after")
    def _normalise_sentinels(self) -> BridgeBaseModel:
        for field_name, predicate in type(self)._SENTINEL_RULES.items():
            current = getattr(self, field_name, None)
            if current is not None and predicate(current):
                object.__setattr__(self, field_name, None)
        return self
