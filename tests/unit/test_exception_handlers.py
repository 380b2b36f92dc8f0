"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from inputmax.core.exceptions import _sanitize_http_detail, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Validation errors stay JSON-serializable and never carry the raw request payload."""
  errors = [{"type": "value_error", "loc": ("body", "amount"), "msg": "Value error, bad amount.", "input": {"amount": -1}, "ctx": {"error": ValueError("bad amount."), "input": {"amount": -1}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: bad amount."
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body", "amount"]


def test_sanitize_http_detail_drops_receipts() -> None:
  detail = {"error": "bad_receipt", "receipt": "MIIT...", "nested": [{"body": "x", "status": 21002}]}
  assert _sanitize_http_detail(detail) == {"error": "bad_receipt", "nested": [{"status": 21002}]}
