"""JSON log lines carrying the request id, route and caller of the current request."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from nexus.settings import Settings

# Fields bound by the HTTP middleware for the lifetime of one request.
CONTEXT_FIELDS = ("request_id", "route", "principal_id", "client_ip")

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("nexus_log_context", default={})

# Access codes are shared openly and stay visible; credentials and personal data do not.
_REDACT_MARKERS = ("token", "secret", "password", "authorization", "email", "hash", "link")
_REDACTED = "[redacted]"
_STRING_LIMIT = 256
_ITEM_LIMIT = 10

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Merge ``fields`` into the log context; pass the token to ``reset_context``."""
	unknown = set(fields) - set(CONTEXT_FIELDS)
	if unknown:
		raise ValueError(f"unknown_log_context:{sorted(unknown)[0]}")
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def sanitize_field(key: str, value: Any) -> Any:
	if any(marker in key.lower() for marker in _REDACT_MARKERS):
		return _REDACTED
	if isinstance(value, str) and len(value) > _STRING_LIMIT:
		return value[:_STRING_LIMIT] + "..."
	if isinstance(value, Mapping):
		keys = list(value)[:_ITEM_LIMIT]
		return {str(k): sanitize_field(str(k), value[k]) for k in keys}
	if isinstance(value, (list, tuple, set, frozenset)):
		items = list(value)
		trimmed = [sanitize_field(key, item) for item in items[:_ITEM_LIMIT]]
		return trimmed + ["..."] if len(items) > _ITEM_LIMIT else trimmed
	return value


class JSONLogFormatter(logging.Formatter):
	def __init__(self, settings: Settings) -> None:
		super().__init__()
		self._static = {
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		line: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
		}
		line.update(self._static)
		if record.exc_info:
			line["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key not in _RECORD_ATTRS and key not in line:
				line[key] = sanitize_field(key, value)
		for key, value in _CONTEXT.get().items():
			line.setdefault(key, value)
		return json.dumps(line, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a fraction of INFO records; other levels always pass."""

	def __init__(self, rate: float) -> None:
		super().__init__()
		self._rate = min(1.0, max(0.0, rate))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or self._rate >= 1.0:
			return True
		return random.random() < self._rate


def configure_logging(settings: Settings) -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter(settings))
	handler.addFilter(InfoSamplingFilter(settings.obs_log_sampling_rate_info))
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger("nexus")


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or "nexus")
