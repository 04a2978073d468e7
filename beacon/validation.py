"""Parameter validation shared by every public Beacon operation.

Checks collect *all* violated constraints in one pass and raise a single
:class:`ValidationError` whose ``messages`` list names each of them.
"""

from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """Raised when a public operation receives malformed parameters."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))


class Checks:
    """Accumulates violation messages; call :meth:`raise_if_any` at the end."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def non_empty_str(self, name: str, value: Any) -> None:
        if value is None:
            self.messages.append(f"{name}: Missing value")
        elif not isinstance(value, str):
            self.messages.append(f"{name}: Must be a string")
        elif not value.strip():
            self.messages.append(f"{name}: Must not be empty")

    def positive_number(self, name: str, value: Any, integer: bool = False) -> None:
        # bool is an int subclass; reject it explicitly
        kinds = (int,) if integer else (int, float)
        if value is None:
            self.messages.append(f"{name}: Missing value")
        elif isinstance(value, bool) or not isinstance(value, kinds):
            self.messages.append(f"{name}: Must be {'an integer' if integer else 'a number'}")
        elif value <= 0:
            self.messages.append(f"{name}: Must be greater than 0")

    def is_list(self, name: str, value: Any) -> None:
        if value is None:
            self.messages.append(f"{name}: Missing value")
        elif not isinstance(value, list):
            self.messages.append(f"{name}: Must be a list")

    def is_mapping(self, name: str, value: Any) -> None:
        if value is None:
            self.messages.append(f"{name}: Missing value")
        elif not isinstance(value, dict):
            self.messages.append(f"{name}: Must be an object")

    def require(self, condition: bool, message: str) -> None:
        if not condition:
            self.messages.append(message)

    def raise_if_any(self) -> None:
        if self.messages:
            raise ValidationError(self.messages)
