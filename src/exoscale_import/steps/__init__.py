"""Concrete import steps, in execution order."""

from .delete_image import DeleteImageStep
from .register_template import RegisterTemplateStep, build_template_spec
from .upload_image import UploadImageStep, generate_object_key

__all__ = [
    'DeleteImageStep',
    'RegisterTemplateStep',
    'UploadImageStep',
    'build_template_spec',
    'generate_object_key',
]
