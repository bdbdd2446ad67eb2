"""BaseWatcher: one kubernetes-asyncio watch stream driven by an asyncio task.

The watcher keeps the last seen resourceVersion so a reconnect resumes where
the previous stream ended. A 410 Gone (version too old) clears it; the next
stream then starts from scratch and the API server replays every existing
object as ADDED. Any other failure backs off exponentially, 1 s doubling up
to 60 s.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog
from kubernetes_asyncio import watch as k8s_watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubenotify.observability.metrics import watch_restarts_total

_log = structlog.get_logger(component="collector.watcher")

_BACKOFF_MIN_S = 1.0
_BACKOFF_MAX_S = 60.0
_WATCH_TIMEOUT_S = 300


class BaseWatcher(ABC):
    """Watch loop shared by every resource watcher.

    Subclasses provide the list function to stream and handle each event.
    """

    def __init__(self, api: Any, name: str, namespace: str = "") -> None:
        self._api = api
        self._name = name
        self._namespace = namespace
        self._resource_version = ""
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._watch: k8s_watch.Watch | None = None
        self._backoff_s = _BACKOFF_MIN_S
        self._consecutive_failures = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @abstractmethod
    def _list_func(self) -> Callable[..., Any]:
        """API list method to stream, e.g. ``AppsV1Api.list_deployment_for_all_namespaces``."""

    @abstractmethod
    async def _handle_event(self, event_type: str, obj: Any, raw: dict[str, Any]) -> None:
        """Handle one ADDED/MODIFIED/DELETED event."""

    def _list_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "timeout_seconds": _WATCH_TIMEOUT_S,
            "allow_watch_bookmarks": True,
        }
        if self._namespace:
            kwargs["namespace"] = self._namespace
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version
        return kwargs

    async def start(self) -> None:
        """Start the watch loop as a background task. Idempotent."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"watcher-{self._name}")
        _log.info("watcher_started", watcher=self._name, namespace=self._namespace or "<all>")

    async def stop(self) -> None:
        """Stop the watch loop and wait for the task to finish."""
        self._running = False
        if self._watch is not None:
            self._watch.stop()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        _log.info("watcher_stopped", watcher=self._name)

    async def _run(self) -> None:
        while self._running:
            try:
                await self._stream_once()
                self._reset_backoff()
            except asyncio.CancelledError:
                raise
            except ApiException as exc:
                await self._handle_api_exception(exc)
            except Exception as exc:  # noqa: BLE001
                self._consecutive_failures += 1
                _log.error(
                    "watch_stream_error",
                    watcher=self._name,
                    error=str(exc),
                    consecutive_failures=self._consecutive_failures,
                )
                await self._backoff("stream_error")

    async def _stream_once(self) -> None:
        """Consume one watch stream until the server closes it."""
        self._watch = k8s_watch.Watch()
        async with self._watch.stream(self._list_func(), **self._list_kwargs()) as stream:
            async for event in stream:
                if not self._running:
                    return
                await self._dispatch_event(event)

    async def _dispatch_event(self, event: dict[str, Any]) -> None:
        event_type = str(event.get("type", ""))
        raw = event.get("raw_object")
        raw = raw if isinstance(raw, dict) else {}

        if event_type == "BOOKMARK":
            rv = _extract_rv_from_bookmark(event)
            if rv:
                self._resource_version = rv
            return
        if event_type == "ERROR":
            code = raw.get("code")
            _log.warning("watch_error_event", watcher=self._name, code=code, message=raw.get("message", ""))
            if code == 410:
                self._resource_version = ""
                watch_restarts_total.labels(watcher=self._name, reason="410").inc()
            return

        obj = event.get("object")
        rv = _extract_rv(obj, raw)
        if rv:
            self._resource_version = rv
        try:
            await self._handle_event(event_type, obj, raw)
        except Exception as exc:  # noqa: BLE001
            _log.error("watch_event_handler_error", watcher=self._name, event_type=event_type, error=str(exc))

    async def _handle_api_exception(self, exc: ApiException) -> None:
        if exc.status == 410:
            _log.info("watch_expired", watcher=self._name)
            self._resource_version = ""
            watch_restarts_total.labels(watcher=self._name, reason="410").inc()
            self._reset_backoff()
            return
        self._consecutive_failures += 1
        _log.warning(
            "watch_api_error",
            watcher=self._name,
            status=exc.status,
            reason=exc.reason,
            consecutive_failures=self._consecutive_failures,
        )
        await self._backoff(f"http_{exc.status}")

    async def _backoff(self, reason: str) -> None:
        watch_restarts_total.labels(watcher=self._name, reason=reason).inc()
        delay = self._backoff_s
        _log.debug("watch_backoff", watcher=self._name, reason=reason, delay_s=delay)
        await asyncio.sleep(delay)
        self._backoff_s = min(self._backoff_s * 2, _BACKOFF_MAX_S)

    def _reset_backoff(self) -> None:
        self._backoff_s = _BACKOFF_MIN_S
        self._consecutive_failures = 0


def _extract_rv(obj: Any, raw: dict[str, Any]) -> str:
    """resourceVersion from the deserialized object, falling back to the raw dict."""
    metadata = getattr(obj, "metadata", None)
    rv = getattr(metadata, "resource_version", None) if metadata is not None else None
    if isinstance(rv, str) and rv:
        return rv
    raw_meta = raw.get("metadata") if isinstance(raw, dict) else None
    if isinstance(raw_meta, dict):
        return str(raw_meta.get("resourceVersion") or "")
    return ""


def _extract_rv_from_bookmark(event: dict[str, Any]) -> str:
    raw = event.get("raw_object")
    if not isinstance(raw, dict):
        return ""
    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        return ""
    return str(metadata.get("resourceVersion") or "")
