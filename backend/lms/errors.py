"""Typed failures raised by services and rendered by the API layer."""

from __future__ import annotations

from typing import Any


class LmsError(Exception):
    status_code = 500

    def __init__(
        self,
        detail: str,
        *,
        status_code: int | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__(detail)
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.detail}
        if self.message:
            payload["message"] = self.message
        return payload


class Unauthorized(LmsError):
    status_code = 401


class Forbidden(LmsError):
    status_code = 403

    def __init__(
        self,
        detail: str = "Forbidden",
        *,
        message: str | None = None,
        requires_subscription: bool = False,
    ) -> None:
        super().__init__(detail, message=message)
        self.requires_subscription = requires_subscription

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.requires_subscription:
            payload["requiresSubscription"] = True
        return payload


class NotFound(LmsError):
    status_code = 404


class ValidationFailed(LmsError):
    status_code = 400


class RangeNotSatisfiable(LmsError):
    status_code = 416

    def __init__(self, detail: str = "Invalid Range", *, total_length: int | None = None) -> None:
        super().__init__(detail)
        self.total_length = total_length


class Misconfigured(LmsError):
    status_code = 500


__all__ = [
    "Forbidden",
    "LmsError",
    "Misconfigured",
    "NotFound",
    "RangeNotSatisfiable",
    "Unauthorized",
    "ValidationFailed",
]
