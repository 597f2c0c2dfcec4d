"""Image and PDF conversion with local codec and remote service fallback."""

from .config import AppConfig, load_config
from .core import ConversionService
from .errors import ConversionError
from .models import BatchResult, ConversionOutcome, ConversionRequest, InputFile
from .packaging import PackagedOutput, package_outputs

__all__ = [
    "AppConfig",
    "load_config",
    "BatchResult",
    "ConversionError",
    "ConversionOutcome",
    "ConversionRequest",
    "ConversionService",
    "InputFile",
    "PackagedOutput",
    "package_outputs",
]

__version__ = "0.1.0"
