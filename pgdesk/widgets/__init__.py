"""Widget library for the Textual UI."""

from __future__ import annotations

from .dialogs import ConfirmScreen, ConnectionFormScreen, TextPromptScreen
from .navigation_sidebar import NavigationSidebar
from .status_bar import StatusBar

__all__ = ["ConfirmScreen", "ConnectionFormScreen", "NavigationSidebar", "StatusBar", "TextPromptScreen"]
