"""Deployment artifact rendering."""

from .env_template import ENV_SECTIONS, EnvSection, build_env_example
from .generator import ArtifactGenerator, TemplateSelection

__all__ = [
    "ArtifactGenerator",
    "ENV_SECTIONS",
    "EnvSection",
    "TemplateSelection",
    "build_env_example",
]
