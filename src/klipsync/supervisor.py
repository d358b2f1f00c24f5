#!/usr/bin/env python3
"""Connection resilience supervisor.

The supervisor owns a device's session lifecycle. It joins the session
(retrying the initial join with tenacity), builds the DeviceView, sends
low-frequency heartbeats while connected and reacts to failure signals
from the transport, the heartbeat or the view.

At most one reconnection sequence runs at a time, and a failure signal
arriving within the throttle window of the last attempt is dropped
rather than queued. Each sequence tears the old view down, then retries
the join with ReconnectBackoff delays until it succeeds or the attempts
run out. After that the device stays PERMANENTLY_DISCONNECTED until
retry() is called; the last known clips remain available meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from klipsync.backoff import ReconnectBackoff
from klipsync.client_constants import INITIAL_WAIT, MAX_WAIT, WAIT_MULTIPLIER
from klipsync.config import SupervisorConfig, ViewConfig
from klipsync.device_view import DeviceView, Notice
from klipsync.errors import TransportFailure
from klipsync.session_params import session_params_for

if TYPE_CHECKING:
    from klipsync.clip import Clip
    from klipsync.local_store import LocalStore
    from klipsync.monitor import ClipboardMonitor
    from klipsync.session_params import SessionParams, UserInfo
    from klipsync.transport import SessionTransport

logger = logging.getLogger(__name__)

Connector = Callable[["SessionParams", Callable[[str], None]], Awaitable["SessionTransport"]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    PERMANENTLY_DISCONNECTED = "permanently-disconnected"


class ConnectionSupervisor:
    """Keeps one device joined to its session.

    Args:
        connector: Coroutine function (params, on_lost) returning a joined
            session transport, raising TransportFailure on failure.
        monitor: Local clipboard monitor shared by successive views.
        store: Local store for the device id and cached credentials.
        device_name: Human readable name of this device.
        user: Authenticated user; restored from store if None.
        api_key: API key; restored from store if None.
        config: Supervision tunables.
        view_config: Passed to each DeviceView.
        on_notice: Passed to each DeviceView.
        on_state_change: Called with each new ConnectionState.
        clock: Monotonic clock in seconds.
        sleep: Coroutine function used for every wait.
    """

    def __init__(
        self,
        connector: Connector,
        monitor: ClipboardMonitor,
        store: LocalStore,
        device_name: str,
        user: UserInfo | None = None,
        api_key: str | None = None,
        config: SupervisorConfig | None = None,
        view_config: ViewConfig | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        on_state_change: Callable[[ConnectionState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.connector = connector
        self.monitor = monitor
        self.store = store
        self.device_name = device_name
        self.user = user
        self.api_key = api_key
        self.config = config or SupervisorConfig()
        self.view_config = view_config or ViewConfig()
        self.on_notice = on_notice
        self.on_state_change = on_state_change
        self.backoff = ReconnectBackoff(
            base_delay=self.config.reconnect_base_delay,
            max_delay=self.config.reconnect_max_delay,
            max_attempts=self.config.reconnect_max_attempts,
        )
        self.state = ConnectionState.DISCONNECTED
        self.session: SessionTransport | None = None
        self.view: DeviceView | None = None
        self.is_reconnecting = False
        self.last_attempt_at: float | None = None
        self.reconnect_attempts = 0
        self.foreground = True
        self._clock = clock
        self._sleep = sleep
        self._generation = 0
        self._resume_active = False
        self._last_clips: list[Clip] = []
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._stopped = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.debug("Connection state %s -> %s", self.state.value, state.value)
        self.state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    @property
    def last_known_clips(self) -> list[Clip]:
        """Current clips, or the last ones seen before disconnecting."""
        if self.view is not None:
            return list(self.view.clips)
        return list(self._last_clips)

    @property
    def heartbeat_interval(self) -> float:
        if self.foreground:
            return self.config.heartbeat_interval
        return self.config.heartbeat_interval * self.config.background_heartbeat_factor

    # ------------------------------------------------------------------
    # Joining
    # ------------------------------------------------------------------
    def _restore_credentials(self) -> None:
        if self.user is not None and self.api_key is not None:
            return
        cached = self.store.load_credentials()
        if cached is None:
            raise TransportFailure("No credentials available to join a session")
        self.user, self.api_key = cached
        logger.info("Restored cached credentials for %s", self.user.email)

    async def _join(self) -> None:
        """Join once and build a fresh view.

        Raises:
            TransportFailure: If credentials are missing or joining fails.
        """
        self._restore_credentials()
        params = session_params_for(self.user, self.api_key)
        self._generation += 1
        generation = self._generation

        def on_lost(reason: str) -> None:
            if generation == self._generation:
                self.signal_failure(reason)

        session = await self.connector(params, on_lost)
        self.session = session
        self.view = DeviceView(
            session,
            self.monitor,
            device_id=self.store.device_id(),
            device_name=self.device_name,
            user=self.user,
            config=self.view_config,
            on_notice=self.on_notice,
            on_transport_failure=self.signal_failure,
        )
        logger.info("Joined session %s", params.name)

    async def start(self) -> bool:
        """Join the session, retrying the initial join.

        Returns:
            True if connected, False if the device ended up
            PERMANENTLY_DISCONNECTED.
        """
        self._stopped = False
        if self.user is not None and self.api_key is not None:
            self.store.save_credentials(self.user, self.api_key)
        elif self.store.load_credentials() is None:
            logger.error("No credentials available; log in first")
            self._set_state(ConnectionState.PERMANENTLY_DISCONNECTED)
            return False
        self._set_state(ConnectionState.CONNECTING)
        try:
            async for attempt in AsyncRetrying(
                wait=wait_exponential(multiplier=WAIT_MULTIPLIER, min=INITIAL_WAIT, max=MAX_WAIT),
                stop=stop_after_attempt(self.config.join_attempts),
                retry=retry_if_exception_type(TransportFailure),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    await self._join()
        except TransportFailure as e:
            logger.error("Could not join session: %s", e)
            self._set_state(ConnectionState.PERMANENTLY_DISCONNECTED)
            return False
        self._set_state(ConnectionState.CONNECTED)
        self._start_heartbeat()
        return True

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------
    def signal_failure(self, reason: str) -> bool:
        """Report a connection failure.

        Returns:
            True if a reconnection sequence was started.
        """
        if self._stopped or self.state is not ConnectionState.CONNECTED:
            logger.debug("Failure ignored in state %s: %s", self.state.value, reason)
            return False
        if self.is_reconnecting:
            logger.debug("Reconnection already in progress, ignoring: %s", reason)
            return False
        now = self._clock()
        if (
            self.last_attempt_at is not None
            and now - self.last_attempt_at < self.config.reconnect_throttle
        ):
            logger.debug("Failure within throttle window, ignoring: %s", reason)
            return False
        logger.warning("Connection failure: %s", reason)
        self.is_reconnecting = True
        self.last_attempt_at = now
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())
        return True

    async def _teardown(self) -> None:
        self._stop_heartbeat()
        view, self.view = self.view, None
        if view is not None:
            self._resume_active = view.is_active
            self._last_clips = list(view.clips)
            view.close()
        session, self.session = self.session, None
        self._generation += 1
        if session is not None:
            with suppress(TransportFailure, OSError):
                await session.leave()

    async def _reconnect(self) -> None:
        self._set_state(ConnectionState.RECONNECTING)
        try:
            await self._teardown()
            while not self.backoff.exhausted and not self._stopped:
                delay = self.backoff.next_delay(self._clock())
                logger.info(
                    "Reconnection attempt %d/%d in %.1fs",
                    self.backoff.attempt,
                    self.backoff.max_attempts,
                    delay,
                )
                await self._sleep(delay)
                self.last_attempt_at = self._clock()
                self.reconnect_attempts += 1
                try:
                    await self._join()
                except TransportFailure as e:
                    logger.warning("Reconnection attempt %d failed: %s", self.backoff.attempt, e)
                    continue
                self.backoff.reset()
                self._set_state(ConnectionState.CONNECTED)
                if self._resume_active and self.view is not None:
                    self.view.resume_sync()
                self._start_heartbeat()
                logger.info("Reconnected")
                return
            if not self._stopped:
                logger.error(
                    "Giving up after %d reconnection attempts; use retry to reconnect",
                    self.backoff.attempt,
                )
                self._set_state(ConnectionState.PERMANENTLY_DISCONNECTED)
        finally:
            self.is_reconnecting = False
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    async def retry(self) -> bool:
        """Manually reconnect from PERMANENTLY_DISCONNECTED.

        Returns:
            True if the device is connected afterwards.
        """
        if self.state is not ConnectionState.PERMANENTLY_DISCONNECTED or self.is_reconnecting:
            return False
        logger.info("Manual reconnection requested")
        self.backoff.reset()
        self.is_reconnecting = True
        self.last_attempt_at = self._clock()
        await self._reconnect()
        return self.state is ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------
    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat_loop(self) -> None:
        while self.state is ConnectionState.CONNECTED:
            await self._sleep(self.heartbeat_interval)
            await self.check_connection()

    async def check_connection(self) -> bool:
        """Send one heartbeat; a failure is signalled, not raised."""
        session = self.session
        if session is None or self.state is not ConnectionState.CONNECTED:
            return False
        try:
            await session.heartbeat()
        except TransportFailure as e:
            self.signal_failure(f"heartbeat failed: {e}")
            return False
        return True

    async def set_foreground(self, foreground: bool) -> None:
        """Adjust heartbeat and monitor pace to the device's foreground state.

        Regaining the foreground checks the connection immediately.
        """
        regained = foreground and not self.foreground
        self.foreground = foreground
        await self.monitor.set_visibility(foreground)
        if self.state is not ConnectionState.CONNECTED:
            return
        self._start_heartbeat()
        if regained:
            await self.check_connection()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------
    async def stop(self) -> None:
        """Leave the session and stop all timers."""
        self._stopped = True
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self._teardown()
        self.monitor.stop_monitoring()
        self._set_state(ConnectionState.DISCONNECTED)
