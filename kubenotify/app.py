"""Application bootstrap for kubenotify.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → metrics → notifications → K8s client
              → event queue → reconciler → watchers

Shutdown: watchers are stopped first so nothing new is produced, then the
queue is shut down and the reconciler is given a grace period to finish the
notification it may be sending, then the K8s client is closed.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from kubenotify.config import load_config
from kubenotify.exceptions import ConfigError
from kubenotify.models.config import KubeNotifyConfig
from kubenotify.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubenotify.collector.workload_watcher import WorkloadWatcher
    from kubenotify.notifications import NotificationDispatcher
    from kubenotify.reconciler import EventQueue, Reconciler

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeNotifyApp:
    """Application root. Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or is
    already stopped.
    """

    def __init__(self) -> None:
        self.config: KubeNotifyConfig | None = None

        self._api_client: Any | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._queue: EventQueue | None = None
        self._reconciler: Reconciler | None = None
        self._consumer_task: asyncio.Task[None] | None = None
        self._watchers: list[WorkloadWatcher] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        try:
            self.config = load_config()
        except ConfigError as exc:
            raise _ComponentError("config", exc) from exc

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, version=_kubenotify_version())
        self._log = get_logger("app")
        self._log.info("kubenotify starting")

        # --- 3. Metrics -------------------------------------------------
        self._start_metrics()

        # --- 4. Notification dispatcher ----------------------------------
        self._start_notifications()

        # --- 5. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 6. Event queue + reconciler ---------------------------------
        self._start_reconciler()

        # --- 7. Watchers -------------------------------------------------
        await self._start_watchers()

        self._running = True
        self._log.info(
            "kubenotify started",
            kinds=self.config.watch.kinds,
            namespace=self.config.watch.namespace or "<all>",
        )

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        port = self.config.metrics.port
        if not port:
            self._log.info("metrics server disabled")
            return
        try:
            from kubenotify.observability.metrics import start_metrics_server

            start_metrics_server(port)
            self._log.info("metrics server started", port=port)
        except OSError as exc:
            # Metrics are optional; notifications still work without them
            self._log.warning("metrics server failed to start", port=port, error=str(exc))

    def _start_notifications(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting notifications")
        try:
            from kubenotify.notifications import build_notification_dispatcher

            self._dispatcher = build_notification_dispatcher(self.config.notifications)
            self._log.info("notifications started")
        except ValueError as exc:
            raise _ComponentError("notifications", exc) from exc

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            # Import lazily: kubernetes-asyncio probes for cluster config on import in some versions.
            import kubernetes_asyncio.config as k8s_config
            from kubernetes_asyncio import client as k8s_client

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            # Fail fast when the API server is unreachable or rejects the credentials.
            version = await k8s_client.VersionApi(self._api_client).get_code()
            self._log.info("k8s api server reachable", server_version=getattr(version, "git_version", ""))
        except Exception as exc:
            await self._stop_k8s_client()
            raise _ComponentError("k8s_client", exc) from exc

    def _start_reconciler(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._dispatcher is not None
        from kubernetes_asyncio import client as k8s_client

        from kubenotify.collector.pods import KubernetesPodLookup
        from kubenotify.reconciler import EventQueue, Reconciler

        self._queue = EventQueue()
        self._reconciler = Reconciler.from_window(
            dispatcher=self._dispatcher,
            pod_lookup=KubernetesPodLookup(k8s_client.CoreV1Api(self._api_client)),
            dedup_window_seconds=self.config.reconciler.dedup_window_seconds,
            evict_on_delete=self.config.reconciler.evict_on_delete,
        )
        self._consumer_task = asyncio.create_task(self._reconciler.consume(self._queue), name="reconciler")
        self._log.info(
            "reconciler started",
            dedup_window_seconds=self.config.reconciler.dedup_window_seconds,
            evict_on_delete=self.config.reconciler.evict_on_delete,
        )

    async def _start_watchers(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._queue is not None
        try:
            from kubernetes_asyncio import client as k8s_client

            from kubenotify.collector.workload_watcher import build_watchers

            apps_v1 = k8s_client.AppsV1Api(self._api_client)
            self._watchers = build_watchers(
                apps_v1,
                self._queue,
                kinds=self.config.watch.kinds,
                namespace=self.config.watch.namespace,
            )
            for watcher in self._watchers:
                await watcher.start()
        except Exception as exc:
            raise _ComponentError("watchers", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order.

        Each step is wrapped independently; a failure in one does not prevent
        the others from stopping.
        """
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubenotify shutting down")
        self._running = False

        for watcher in self._watchers:
            try:
                await watcher.stop()
            except Exception as exc:
                log.error("watcher stop raised an error", watcher=watcher.name, error=str(exc))
        self._watchers.clear()

        if self._queue is not None:
            self._queue.shut_down()

        if self._consumer_task is not None:
            # An in-flight notification gets the grace period to finish.
            task = self._consumer_task
            done, _ = await asyncio.wait({task}, timeout=_SHUTDOWN_GRACE_SECONDS)
            if not done:
                log.warning("reconciler stop timed out", timeout=_SHUTDOWN_GRACE_SECONDS)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            elif not task.cancelled() and task.exception() is not None:
                log.error("reconciler stopped with an error", error=str(task.exception()))
            self._consumer_task = None

        if self._dispatcher is not None:
            await self._dispatcher.stop()
            self._dispatcher = None

        await self._stop_k8s_client()
        log.info("kubenotify stopped")

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _kubenotify_version() -> str:
    from kubenotify import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeNotifyApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        raise SystemExit(1) from exc
    finally:
        await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
