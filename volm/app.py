"""Application bootstrap for volm.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> stores -> watch
              subscriptions -> query engine / mutation gateway -> REST
              -> metrics

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from volm.config import load_config
from volm.models.config import VolmConfig
from volm.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from volm.cache.store import ResourceStore
    from volm.collector.watcher import WatchSubscription
    from volm.service import VolumeService

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class VolmApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or is
    already stopped.

    Args:
        config: Pre-built configuration (e.g. from CLI overrides).  When
                omitted, ``start()`` loads it from the environment.
    """

    def __init__(self, config: VolmConfig | None = None) -> None:
        self.config: VolmConfig | None = config

        self._api_client: Any = None
        self._core_v1: Any = None
        self._claims: ResourceStore | None = None
        self._workloads: ResourceStore | None = None
        self._claim_authority: Any = None
        self._subscriptions: list[WatchSubscription] = []
        self._service: VolumeService | None = None
        self._rest_server: Any = None
        self._metrics_server: Any = None

        # Background tasks that must be cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._stopped = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start, and
        ValueError if the configuration is invalid.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info(
            "volm starting",
            version=_volm_version(),
            mode=self.config.api.mode,
            namespace=self.config.cluster.namespace,
            selector=str(self.config.cluster.selector),
        )

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Resource stores ------------------------------------------
        self._start_stores()

        # --- 5. Watch subscriptions --------------------------------------
        await self._start_subscriptions()

        # --- 6. Query engine, mutation gateway, service ------------------
        self._start_service()

        # --- 7. REST API -------------------------------------------------
        await self._start_rest()

        # --- 8. Metrics --------------------------------------------------
        await self._start_metrics()

        self._running = True
        self._log.info("volm started", ip=self.config.api.ip, port=self.config.api.port)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                # load_kube_config() is async in kubernetes-asyncio
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._core_v1 = k8s_client.CoreV1Api(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_stores(self) -> None:
        from volm.cache.store import ResourceStore
        from volm.models.resources import ClaimRecord, WorkloadRecord

        self._claims = ResourceStore[ClaimRecord]("PersistentVolumeClaim")
        self._workloads = ResourceStore[WorkloadRecord]("Pod")

    async def _start_subscriptions(self) -> None:
        """Start one watch subscription per store and wait briefly for the first sync.

        An unsynced subscription is not fatal: it keeps retrying in the
        background and queries serve whatever has been cached.
        """
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting watch subscriptions")
        try:
            from volm.collector.authority import KubernetesClaimAuthority, KubernetesWorkloadAuthority
            from volm.collector.watcher import WatchSubscription

            watch_cfg = self.config.watch
            namespace = self.config.cluster.namespace
            self._claim_authority = KubernetesClaimAuthority(
                self._core_v1,
                namespace,
                request_timeout=watch_cfg.request_timeout,
                watch_timeout=watch_cfg.watch_timeout_seconds,
            )
            workload_authority = KubernetesWorkloadAuthority(
                self._core_v1,
                namespace,
                request_timeout=watch_cfg.request_timeout,
                watch_timeout=watch_cfg.watch_timeout_seconds,
            )
            self._subscriptions = [
                WatchSubscription(
                    self._claims,
                    self._claim_authority,
                    resync_interval=watch_cfg.resync_interval,
                    backoff_initial=watch_cfg.backoff_initial,
                    backoff_max=watch_cfg.backoff_max,
                ),
                WatchSubscription(
                    self._workloads,
                    workload_authority,
                    resync_interval=watch_cfg.resync_interval,
                    backoff_initial=watch_cfg.backoff_initial,
                    backoff_max=watch_cfg.backoff_max,
                ),
            ]
            for subscription in self._subscriptions:
                await subscription.start()
        except Exception as exc:
            raise _ComponentError("subscriptions", exc) from exc

        for subscription in self._subscriptions:
            if not await subscription.wait_until_synced(timeout=watch_cfg.request_timeout):
                self._log.warning("initial sync not complete; serving partial cache", kind=subscription.kind)

    def _start_service(self) -> None:
        assert self.config is not None
        assert self._claims is not None
        assert self._workloads is not None
        from volm.mutation.gateway import MutationGateway
        from volm.query.engine import VolumeQueryEngine
        from volm.service import VolumeService

        self._service = VolumeService(
            engine=VolumeQueryEngine(self._claims, self._workloads),
            gateway=MutationGateway(self._claim_authority),
            selector=self.config.cluster.selector,
            namespace=self.config.cluster.namespace,
            subscriptions=list(zip(self._subscriptions, [self._claims, self._workloads], strict=True)),
        )

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from volm.api import build_app

            fastapi_app = build_app(service=self._service, config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host=self.config.api.ip,
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    async def _start_metrics(self) -> None:
        """Serve Prometheus metrics on their own port.  Non-fatal on failure."""
        assert self._log is not None
        assert self.config is not None
        try:
            import uvicorn
            from prometheus_client import make_asgi_app

            from volm.observability.metrics import record_service_info

            record_service_info(_volm_version(), self.config.api.mode)
            uv_config = uvicorn.Config(
                app=make_asgi_app(),
                host=self.config.api.ip,
                port=self.config.api.metrics_port,
                log_config=None,
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="metrics-server")
            self._background_tasks.append(task)
            self._metrics_server = server
            self._log.info("metrics server started", port=self.config.api.metrics_port)
        except Exception as exc:
            self._log.warning("metrics server failed to start; metrics unavailable", error=str(exc))
            self._metrics_server = None

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if self._stopped or (not self._running and self._log is None):
            # Never started, or already stopped
            return

        log = self._log or get_logger("app")
        log.info("volm shutting down")

        self._running = False
        self._stopped = True

        for server in (self._rest_server, self._metrics_server):
            if server is not None:
                server.should_exit = True

        if self._background_tasks:
            _, pending = await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            for task in pending:
                task.cancel()
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        for subscription in reversed(self._subscriptions):
            await self._stop_component(f"subscription.{subscription.kind}", subscription)
        self._subscriptions.clear()

        await self._stop_k8s_client()

        log.info("volm stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

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


def _volm_version() -> str:
    from volm import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: VolmConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown completes.

    A signal only sets the shutdown event; the stop itself is awaited here so
    it runs to the end before the event loop is torn down.
    """
    app = VolmApp(config)
    loop = asyncio.get_running_loop()
    shutdown_requested = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_requested.set)

    try:
        await app.start()
        await shutdown_requested.wait()
    except (_ComponentError, ValueError) as exc:
        log = get_logger("app")
        component = exc.component if isinstance(exc, _ComponentError) else "config"
        cause = exc.cause if isinstance(exc, _ComponentError) else exc
        log.critical("fatal startup error", component=component, error=str(cause))
        raise SystemExit(1) from exc
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await app.stop()
