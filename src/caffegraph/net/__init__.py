from .api import canonicalize_input, load_parameters, load_validate_yaml
from .errors import (
    ConversionError,
    NetValidationError,
    ShapeMismatchError,
    StructuralError,
)
from .models import LayerKind, LayerRecord, NetDescription


__all__ = [
    "canonicalize_input",
    "load_parameters",
    "load_validate_yaml",
    "ConversionError",
    "NetValidationError",
    "ShapeMismatchError",
    "StructuralError",
    "LayerKind",
    "LayerRecord",
    "NetDescription",
]
