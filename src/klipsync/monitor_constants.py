#!/usr/bin/env python3
"""Constants for local clipboard monitoring.

Polling intervals are in seconds and are selected by the monitor state:
the more attention the user is paying to this device, the faster the
clipboard is read.
"""

# Page/app not visible.
HIDDEN_INTERVAL: float = 2.0

# Visible but not focused.
VISIBLE_INTERVAL: float = 1.0

# Visible and focused.
FOCUSED_INTERVAL: float = 0.8

# After a copy/cut shortcut or an active selection.
AGGRESSIVE_INTERVAL: float = 0.5

# How long aggressive polling lasts before reverting.
AGGRESSIVE_DURATION: float = 30.0

# A user interaction within this many seconds allows automatic writes.
INTERACTION_WINDOW: float = 5.0

# Consecutive unknown read errors before falling back to paste events.
UNKNOWN_ERROR_LIMIT: int = 5

# Timeout in seconds for clipboard read operations to prevent hangs
# when the clipboard owner is unresponsive.
CLIPBOARD_TIMEOUT: float = 2.0
