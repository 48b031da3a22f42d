"""
errors.py — Domain errors raised by the catalog service.

Each error knows the HTTP status it maps to and the JSON body the API
returns for it. The service never raises HTTP types itself.
"""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def payload(self) -> dict[str, Any]:
        return {"error": self.message}


class InvalidRequest(CatalogError):
    status_code = 400


class NotFound(CatalogError):
    status_code = 404


class SchemaNotFound(InvalidRequest):
    def __init__(self, category: Any):
        super().__init__(f"Schema not found for category: {category}")
        self.category = category


class MissingMandatoryField(InvalidRequest):
    def __init__(self, field: str):
        super().__init__(f"Missing or empty mandatory field: {field}")
        self.field = field


class NoMatches(NotFound):
    """Search returned nothing; the body still reports a zero count."""

    def __init__(self, message: str = "No matching products found"):
        super().__init__(message)

    def payload(self) -> dict[str, Any]:
        return {"error": self.message, "count": 0}
