"""Factory package: the Factory itself and YAML-driven registration."""

from .api import Factory, Registration
from .registry import RegistryConfigError, load_factory, load_registrations

__all__ = [
    "Factory",
    "Registration",
    "RegistryConfigError",
    "load_factory",
    "load_registrations",
]
