"""Settings registry loaded from ``definitions.yaml``.

The registry is the source of truth for which settings exist, their
types, defaults and validation rules. Stored rows only override values.
"""

import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, EmailStr, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from backoffice.core.i18n import has_translation, translate


DEFINITIONS_PATH = Path(__file__).parent / "definitions.yaml"

SettingType = Literal[
    "text",
    "textarea",
    "number",
    "boolean",
    "select",
    "email",
    "color",
    "json",
    "password",
]

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
MASKED_VALUE = "********"

_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)


class SettingRules(BaseModel):
    required: bool = False
    min: int | None = None
    max: int | None = None
    max_length: int | None = None
    options: list[Any] | None = None
    pattern: str | None = None


class SettingDefinition(BaseModel):
    key: str
    category: str
    type: SettingType
    default: Any = None
    description: str = ""
    rules: SettingRules = Field(default_factory=SettingRules)
    depends_on: dict[str, Any] = Field(default_factory=dict)
    order: int = 0

    @property
    def is_secret(self) -> bool:
        return self.type == "password"


class CategoryDefinition(BaseModel):
    key: str
    name: str
    icon: str
    description: str
    order: int

    def label(self) -> str:
        """Category name in the request locale, if the catalog has one."""
        catalog_key = f"settings.categories.{self.key}"
        return translate(catalog_key) if has_translation(catalog_key) else self.name


class SettingsRegistry:
    """In-memory view of the settings definitions."""

    def __init__(
        self,
        categories: dict[str, CategoryDefinition],
        definitions: dict[str, SettingDefinition],
    ) -> None:
        self.categories = categories
        self.definitions = definitions

    def get(self, key: str) -> SettingDefinition | None:
        return self.definitions.get(key)

    def keys(self, category: str | None = None) -> list[str]:
        """Setting keys ordered by category order, then setting order."""
        items = [
            d
            for d in self.definitions.values()
            if category is None or d.category == category
        ]
        items.sort(
            key=lambda d: (
                self.categories[d.category].order if d.category in self.categories else 99,
                d.order,
                d.key,
            )
        )
        return [d.key for d in items]

    def ordered_categories(self) -> list[CategoryDefinition]:
        return sorted(self.categories.values(), key=lambda c: c.order)


@lru_cache
def get_registry() -> SettingsRegistry:
    """Load the packaged definitions once."""
    with DEFINITIONS_PATH.open(encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    categories = {
        key: CategoryDefinition(key=key, **value)
        for key, value in (raw.get("categories") or {}).items()
    }
    definitions = {
        key: SettingDefinition(key=key, **value)
        for key, value in (raw.get("settings") or {}).items()
    }
    return SettingsRegistry(categories, definitions)


def dependencies_satisfied(
    definition: SettingDefinition,
    values: dict[str, Any],
) -> bool:
    """Whether every ``depends_on`` flag currently holds its required value."""
    return all(values.get(key) == expected for key, expected in definition.depends_on.items())


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def validate_value(
    definition: SettingDefinition,
    value: Any,
    values: dict[str, Any],
) -> list[str]:
    """Validate a candidate value against its definition.

    Args:
        definition: The setting's definition
        value: Proposed value
        values: Current effective values of all settings, used to resolve
            ``depends_on`` (pass the proposed batch merged in for batches)

    Returns:
        Error messages; empty when the value is valid
    """
    rules = definition.rules

    if _is_empty(value):
        if rules.required and dependencies_satisfied(definition, values):
            return ["This setting is required"]
        return []

    errors: list[str] = []
    kind = definition.type

    if kind == "number":
        if isinstance(value, bool) or not isinstance(value, int):
            return ["Must be an integer"]
        if rules.min is not None and value < rules.min:
            errors.append(f"Must be at least {rules.min}")
        if rules.max is not None and value > rules.max:
            errors.append(f"Must be at most {rules.max}")
        return errors

    if kind == "boolean":
        return [] if isinstance(value, bool) else ["Must be true or false"]

    if kind == "json":
        return [] if isinstance(value, dict | list) else ["Must be a JSON object or array"]

    if not isinstance(value, str):
        return ["Must be a string"]

    if rules.max_length is not None and len(value) > rules.max_length:
        errors.append(f"Must be at most {rules.max_length} characters")
    if rules.options is not None and value not in rules.options:
        errors.append(f"Must be one of: {', '.join(str(o) for o in rules.options)}")
    if rules.pattern and not re.fullmatch(rules.pattern, value):
        errors.append("Has an invalid format")
    if kind == "color" and not COLOR_PATTERN.match(value):
        errors.append("Must be a hex colour like #1A2B3C")
    if kind == "email":
        try:
            _email_adapter.validate_python(value)
        except PydanticValidationError:
            errors.append("Must be a valid email address")

    return errors
