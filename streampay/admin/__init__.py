"""Owner-only administration."""

from streampay.admin.controller import AdminController

__all__ = ["AdminController"]
