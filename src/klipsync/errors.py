#!/usr/bin/env python3
"""Exception types shared across klipsync.

Most conditions are reported as result values rather than exceptions.
These classes cover the cases that do propagate: a missing clipboard
capability used as a precondition violation, transport failures that
drive reconnection, and clipboard permission denials raised by backends
and classified by the monitor.
"""


class CapabilityUnavailable(RuntimeError):
    """The platform lacks the clipboard capability an operation needs.

    Permanent for the lifetime of the process; callers switch to the
    manual capture path instead of retrying.
    """

    pass


class TransportFailure(ConnectionError):
    """Joining, publishing to, or heartbeating a session failed."""

    pass


class ClipboardPermissionError(PermissionError):
    """The clipboard refused a read or write in the current context.

    Expected and transient; the monitor counts it without alarming.
    """

    pass
