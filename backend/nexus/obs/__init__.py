"""Observability package bootstrap."""

from __future__ import annotations

from fastapi import FastAPI

from nexus.obs import logging as obs_logging
from nexus.obs import middleware
from nexus.settings import Settings


def init(app: FastAPI, settings: Settings) -> None:
	if settings.obs_enabled:
		obs_logging.configure_logging(settings)
	middleware.install(app, enabled=settings.obs_enabled)


__all__ = ["init"]
