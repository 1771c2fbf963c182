# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Connectivity sources and the bridge that pauses uploads while offline.

A ConnectivitySource publishes online/offline transitions to subscribers.
Two sources are provided:

- ManualConnectivitySource: the application pushes transitions (for
  example from an OS network-change hook) with set_online().
- PollingConnectivityMonitor: a background thread that probes a URL with a
  HEAD request every few seconds and publishes changes.

ConnectivityBridge connects a source to an UploadSession:

- offline -> session.pause(), then on_retrying(True)
- online  -> session.resume() if the bridge paused it, then on_retrying(False)

Resume Policy:
    The bridge only resumes a session that it paused itself. If the caller
    paused the upload explicitly, regaining the network leaves it paused;
    the caller decides when to resume.

Example:
    ```python
    from upchunk import UploadSession
    from upchunk.connectivity import ConnectivityBridge, PollingConnectivityMonitor

    session = UploadSession(uri, "video.mp4")
    session.initialize()
    monitor = PollingConnectivityMonitor("https://one.one.one.one")
    ConnectivityBridge(session, monitor)
    monitor.start()
    session.start()
    session.wait()
    session.dispose()   # also drops the bridge subscription
    monitor.stop()
    ```
"""

from __future__ import annotations

from collections.abc import Callable
import threading
from typing import TYPE_CHECKING, Protocol

import requests

from upchunk.io.transport import make_session
from upchunk.logging import get_global_logger

if TYPE_CHECKING:
    from upchunk.config import ConnectivitySettings
    from upchunk.session import UploadSession

ConnectivityCallback = Callable[[bool], None]


class Subscription(Protocol):
    def cancel(self) -> None: ...


class ConnectivitySource(Protocol):
    """Protocol for online/offline signal providers."""

    @property
    def online(self) -> bool | None:
        """Last known state; None until the first observation."""
        ...

    def subscribe(self, callback: ConnectivityCallback) -> Subscription:
        """Register `callback(online)` for every transition.

        Returns:
            A subscription whose cancel() unregisters the callback.
        """
        ...


class _CallbackSubscription:
    def __init__(
        self, source: ManualConnectivitySource, callback: ConnectivityCallback
    ) -> None:
        self._source = source
        self._callback = callback

    def cancel(self) -> None:
        self._source._unsubscribe(self._callback)


class ManualConnectivitySource:
    """Connectivity source driven by explicit set_online() calls.

    Only transitions are published; repeating the current state is a no-op.
    """

    def __init__(self, online: bool | None = True) -> None:
        self._online = online
        self._callbacks: list[ConnectivityCallback] = []
        self._lock = threading.Lock()

    @property
    def online(self) -> bool | None:
        """Last known state; None until the first observation."""
        return self._online

    def subscribe(self, callback: ConnectivityCallback) -> Subscription:
        with self._lock:
            self._callbacks.append(callback)
        return _CallbackSubscription(self, callback)

    def _unsubscribe(self, callback: ConnectivityCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def set_online(self, online: bool) -> bool:
        """Record the current state and notify subscribers if it changed.

        Returns:
            True if this was a transition.
        """
        with self._lock:
            if self._online == online:
                return False
            self._online = online
            callbacks = list(self._callbacks)
        get_global_logger().verbose(
            "NETWORK", "Connection restored" if online else "Connection lost"
        )
        for callback in callbacks:
            callback(online)
        return True


class PollingConnectivityMonitor(ManualConnectivitySource):
    """Probes `check_url` periodically and publishes online/offline changes.

    Any HTTP answer counts as online; a connection error or timeout counts
    as offline. The first probe always publishes its result.
    """

    def __init__(
        self,
        check_url: str,
        *,
        interval: float = 10.0,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(online=None)
        self.check_url = check_url
        self.interval = interval
        self.timeout = timeout
        self._session = session if session is not None else make_session()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, settings: ConnectivitySettings) -> PollingConnectivityMonitor:
        return cls(settings.check_url, interval=settings.interval, timeout=settings.timeout)

    def check(self) -> bool:
        """Run one probe and return whether the network is reachable."""
        try:
            resp = self._session.head(
                self.check_url, timeout=self.timeout, allow_redirects=False
            )
        except requests.RequestException as err:
            get_global_logger().debug("NETWORK", f"Probe failed: {err}")
            return False
        resp.close()
        return True

    def poll_once(self) -> bool:
        """Probe and publish. Returns the observed state."""
        online = self.check()
        self.set_online(online)
        return online

    def start(self) -> None:
        """Start polling on a daemon thread. Does nothing if already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll, name="upchunk-connectivity", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop polling and release the HTTP session."""
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None
        self._session.close()

    def _poll(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            if self._stop.wait(self.interval):
                break


class ConnectivityBridge:
    """Pauses and resumes an UploadSession as connectivity comes and goes.

    The bridge registers itself with the session, so session.dispose()
    cancels the underlying subscription.
    """

    def __init__(self, session: UploadSession, source: ConnectivitySource) -> None:
        self.session = session
        self._lock = threading.Lock()
        self._online: bool | None = None
        self._paused_by_bridge = False
        self._subscription: Subscription | None = source.subscribe(self._on_change)
        session.add_subscription(self)
        # A source that is already offline holds the upload before it starts.
        if source.online is False:
            self._on_change(False)

    @property
    def paused_by_bridge(self) -> bool:
        with self._lock:
            return self._paused_by_bridge

    def cancel(self) -> None:
        with self._lock:
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.cancel()

    def _on_change(self, online: bool) -> None:
        from upchunk.session import TERMINAL_STATES

        with self._lock:
            if self._subscription is None or online == self._online:
                return
            previous, self._online = self._online, online

        if self.session.state in TERMINAL_STATES:
            return
        # A first "online" observation is not a recovery.
        if online and previous is None:
            return

        logger = get_global_logger()
        if not online:
            paused = self.session.pause()
            with self._lock:
                self._paused_by_bridge = self._paused_by_bridge or paused
            logger.verbose("NETWORK", "Waiting for network")
            self.session.observers.retrying(True)
            return

        with self._lock:
            should_resume, self._paused_by_bridge = self._paused_by_bridge, False
        if should_resume:
            self.session.resume()
        logger.verbose("NETWORK", "Network available")
        self.session.observers.retrying(False)
