"""
Loading of extension type registrations from YAML config files.

A config lists the types to register; classes and standalone handlers are given
as ``"package.module:attribute"`` import paths, method handlers as bare names:

    types:
      - tag: 1
        class: "myapp.geometry:Point"
      - tag: 2
        class: "myapp.money:Amount"
        packer: "myapp.codecs:pack_amount"
        unpacker: parse            # Amount.parse(data)
      - tag: 3
        class: "myapp.audit:Event"
        packer: null               # decode-only
"""

import importlib
import logging
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..ext.utils import (
    DEFAULT_PACKER_METHOD,
    DEFAULT_UNPACKER_METHOD,
    EXT_TAG_MAX,
    EXT_TAG_MIN,
    Selector,
)
from .api import Factory, Registration

logger = logging.getLogger(__name__)


class RegistryConfigError(Exception):
    """Raised when a registration YAML config is invalid or cannot be applied."""


# --- Pydantic schema for YAML validation ---


class TypeSpec(BaseModel):
    """Schema for a single registered type in YAML config."""

    tag: int = Field(..., ge=EXT_TAG_MIN, le=EXT_TAG_MAX)
    ext_class: str = Field(..., min_length=1, alias="class")
    packer: Optional[str] = Field(DEFAULT_PACKER_METHOD, min_length=1)
    unpacker: Optional[str] = Field(DEFAULT_UNPACKER_METHOD, min_length=1)

    model_config = {"populate_by_name": True, "extra": "forbid"}


class RegistryConfigSpec(BaseModel):
    """Schema for the whole config file."""

    types: List[TypeSpec] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


def _import_object(path: str) -> Any:
    """Resolve 'package.module:attr' (attr may be dotted) to the object it names."""
    module_name, sep, attr_path = path.partition(":")
    if not sep or not module_name or not attr_path:
        raise RegistryConfigError(
            f"Invalid import path: {path!r}. Expected 'package.module:attribute'."
        )
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise RegistryConfigError(f"Cannot import module {module_name!r}: {e}.") from e
    for attr in attr_path.split("."):
        try:
            obj = getattr(obj, attr)
        except AttributeError as e:
            raise RegistryConfigError(
                f"Module {module_name!r} has no attribute {attr_path!r}."
            ) from e
    return obj


def _resolve_selector(value: Optional[str]) -> Selector:
    """Import paths become callables; bare names stay method names for the factory."""
    if value is None or ":" not in value:
        return value
    handler = _import_object(value)
    if not callable(handler):
        raise RegistryConfigError(f"{value!r} does not name a callable.")
    return handler


def _parse_type(spec: TypeSpec) -> Registration:
    """Turn a validated TypeSpec into a Registration."""
    ext_class = _import_object(spec.ext_class)
    if not isinstance(ext_class, type):
        raise RegistryConfigError(
            f"{spec.ext_class!r} is a {type(ext_class).__name__}, not a class."
        )
    return Registration.explicit(
        spec.tag,
        ext_class,
        packer=_resolve_selector(spec.packer),
        unpacker=_resolve_selector(spec.unpacker),
    )


def load_registrations(path: Union[str, Path]) -> List[Registration]:
    """Load registrations from a YAML config file.

    Args:
        path: Config file path.

    Returns:
        Registrations in file order.

    Raises:
        RegistryConfigError: If the file is missing, not valid YAML, fails
            schema validation, or names something that cannot be imported.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.error("Config file not found: %s", config_path)
        raise RegistryConfigError(f"Config not found at {config_path}.")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.error("Invalid YAML in config %s: %s", config_path, e)
        raise RegistryConfigError(f"Invalid YAML in config {config_path}: {e}.") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        logger.error("Config %s root must be a dict, got %s", config_path, type(raw))
        raise RegistryConfigError(
            f"Config {config_path} root must be a mapping, got {type(raw).__name__}."
        )

    try:
        spec = RegistryConfigSpec.model_validate(raw)
    except ValidationError as e:
        logger.error("Config %s failed validation: %s", config_path, e)
        raise RegistryConfigError(f"Invalid config {config_path}: {e}") from e

    registrations: List[Registration] = []
    for index, type_spec in enumerate(spec.types):
        try:
            registrations.append(_parse_type(type_spec))
        except RegistryConfigError as e:
            raise RegistryConfigError(f"types[{index}]: {e}") from e
    return registrations


def load_factory(
    path: Union[str, Path],
    factory: Optional[Factory] = None,
) -> Factory:
    """Register every type from a YAML config on a factory.

    Args:
        path: Config file path.
        factory: Factory to register on. If None, a new one is created.

    Returns:
        The factory the types were registered on.

    Raises:
        RegistryConfigError: If loading fails or a registration is rejected
            (e.g. an unpacker method the class does not define).
    """
    registrations = load_registrations(path)
    if factory is None:
        factory = Factory()
    for registration in registrations:
        try:
            factory.register(registration)
        except (TypeError, ValueError, LookupError) as e:
            logger.exception(
                "Failed to register %s from %s", registration.ext_class.__name__, path
            )
            raise RegistryConfigError(
                f"Failed to register {registration.ext_class.__name__!r} "
                f"(ext type {registration.tag}): {e}"
            ) from e
    logger.info("Registered %d ext type(s) from %s", len(registrations), path)
    return factory
