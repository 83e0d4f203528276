"""
Error Types.

Two error classes flow through provisioning:
- Validation errors: deterministic, tagged with the violated rule and entity.
- Remote-operation errors: raised by object store clients, classified as
  transient (retried) or logical (not retried).
Pipeline-fatal conditions surface as ProvisioningError.
"""

from typing import Optional


class SpecValidationError(Exception):
    """
    A candidate repository specification violated a rule.

    Attributes:
        rule (str): Identifier of the violated rule
        entity (Optional[str]): Offending entity (path, author, issue title)
        message (str): Human readable description
    """

    def __init__(self, rule: str, message: str, entity: Optional[str] = None):
        super().__init__(message)
        self.rule = rule
        self.entity = entity
        self.message = message

    def __str__(self) -> str:
        return f"[{self.rule}] {self.message}"


class ObjectStoreError(Exception):
    """
    A remote object store call failed.

    Attributes:
        operation (str): Name of the failed operation
        status (Optional[int]): HTTP status when available
        transient (bool): Whether the failure may succeed on retry
    """

    def __init__(
        self,
        operation: str,
        message: str,
        status: Optional[int] = None,
        transient: bool = False,
    ):
        super().__init__(message)
        self.operation = operation
        self.status = status
        self.transient = transient

    def __str__(self) -> str:
        status = f" ({self.status})" if self.status is not None else ""
        return f"{self.operation} failed{status}: {self.args[0]}"


class ProvisioningError(Exception):
    """A provisioning run could not produce a usable repository."""
