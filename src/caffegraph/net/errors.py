from __future__ import annotations

from typing import Optional, Sequence


class ConversionError(Exception):
    pass


class StructuralError(ConversionError):
    def __init__(self, message: str, *, layer: Optional[str] = None) -> None:
        super().__init__(message)
        self.layer = layer


class NetValidationError(StructuralError):
    pass


class ShapeMismatchError(ConversionError):
    def __init__(
        self,
        message: str,
        *,
        node: Optional[str] = None,
        kind: Optional[str] = None,
        slot: Optional[int] = None,
        expected: Optional[Sequence[int]] = None,
        actual: Optional[Sequence[int]] = None,
    ) -> None:
        prefix = f"{kind} '{node}': " if node is not None else ""
        super().__init__(prefix + message)
        self.node = node
        self.kind = kind
        self.slot = slot
        self.expected = list(expected) if expected is not None else None
        self.actual = list(actual) if actual is not None else None


# Diagnostic categories. The pipeline records these, it never raises them.


class UnresolvedInputWarning(UserWarning):
    pass


class UnsupportedKindDiagnostic(UserWarning):
    pass


class UnsupportedOptionWarning(UserWarning):
    pass


class RedundantInputWarning(UserWarning):
    pass
