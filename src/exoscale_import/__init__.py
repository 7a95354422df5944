"""Import locally built disk images as Exoscale compute templates."""

from ._version import __version__
from .artifacts import BuildArtifact, Template, TemplateArtifact, UploadedObjectRef
from .errors import (
    ImportCancelledError,
    ImportFailedError,
    ImportHaltedError,
    InternalConsistencyError,
    SettingsValidationError,
    TemplateImportError,
    UnsupportedArtifactError,
)
from .post_processor import TemplateImportPostProcessor, import_template
from .settings import ImportSettings

__all__ = [
    "BuildArtifact",
    "ImportCancelledError",
    "ImportFailedError",
    "ImportHaltedError",
    "ImportSettings",
    "InternalConsistencyError",
    "SettingsValidationError",
    "Template",
    "TemplateArtifact",
    "TemplateImportError",
    "TemplateImportPostProcessor",
    "UnsupportedArtifactError",
    "UploadedObjectRef",
    "__version__",
    "import_template",
]
