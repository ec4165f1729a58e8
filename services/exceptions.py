# -*- coding: utf-8 -*-
"""Custom exceptions for the import pipeline."""


class ValidationException(Exception):
    """Exception raised for invalid operator input (missing reason, bad outcome...)."""

    def __init__(self, message: str, field: str = None,
                 errors: list = None, context: str = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.errors = errors or []
        self.context = context


class NotFoundException(Exception):
    """Exception raised when a package, conflict or entity does not exist."""

    def __init__(self, message: str, entity_type: str = None,
                 entity_id: str = None, context: str = None):
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.context = context

    def __str__(self):
        if self.entity_type and self.entity_id:
            return f"[{self.entity_type} {self.entity_id}] {self.message}"
        return self.message


class StateConflictException(Exception):
    """Exception raised when an operation is attempted in the wrong state."""

    def __init__(self, message: str, entity_type: str = None,
                 entity_id: str = None, current_status: str = None,
                 expected: list = None, context: str = None):
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.expected = expected or []
        self.context = context

    def __str__(self):
        if self.current_status:
            return f"{self.message} (current status: {self.current_status})"
        return self.message


class AuthorizationException(Exception):
    """Exception raised when no acting identity is available."""

    def __init__(self, message: str = "Current user context is required",
                 context: str = None):
        super().__init__(message)
        self.message = message
        self.context = context


class PackageStructureException(Exception):
    """Exception raised for an unparseable import package."""

    def __init__(self, message: str, package_id: str = None,
                 errors: list = None):
        super().__init__(message)
        self.message = message
        self.package_id = package_id
        self.errors = errors or []


class MergeException(Exception):
    """Exception raised when a merge relink cannot be completed."""

    def __init__(self, message: str, master_entity_id: str = None,
                 discarded_entity_id: str = None,
                 original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.master_entity_id = master_entity_id
        self.discarded_entity_id = discarded_entity_id
        self.original_error = original_error
