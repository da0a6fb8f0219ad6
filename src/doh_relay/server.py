import enum
import logging
import socketserver
import threading
from typing import Callable, Optional, Tuple

from .bootstrap import BootstrapResolver
from .cache import CacheJanitor, NameCache
from .config.config_schema import ProxyConfig
from .errors import BootstrapError
from .handler import ForwardingHandler
from .transports.doh import HttpsTransport

FatalErrorHandler = Callable[[BaseException], None]


class ServerState(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles one UDP DNS datagram.
    socketserver instantiates this class per datagram, each on its own thread.
    """

    def handle(self) -> None:
        data, sock = self.request
        wire = self.server.forwarding_handler.handle_wire(data)
        if wire:
            sock.sendto(wire, self.client_address)


class RelayUDPServer(socketserver.ThreadingUDPServer):
    """ThreadingUDPServer carrying the forwarding handler for its request handlers."""

    daemon_threads = True

    def __init__(
        self,
        server_address: Tuple[str, int],
        forwarding_handler: ForwardingHandler,
        log: logging.Logger,
    ) -> None:
        self.forwarding_handler = forwarding_handler
        self.log = log
        super().__init__(server_address, DNSUDPHandler)

    def handle_error(self, request, client_address) -> None:
        self.log.exception("Error while handling datagram from %s", client_address)


class DoHRelayServer:
    """A UDP DNS listener that forwards to a DoH upstream.

    Inputs (constructor):
        config: ProxyConfig (defaults when omitted).
        host / port: override config.listen.
        on_fatal_error: called with the exception if the listener loop dies
            after a successful start.
        resolver: BootstrapResolver replacement (anything with
            resolve_upstream_host()).
        transport: HttpsTransport replacement (anything with forward(bytes)).
        cache: NameCache to use instead of a fresh one per start.
        logger: logging.Logger passed down to the components.

    Example use:
        >>> server = DoHRelayServer(port=5353)
        >>> # server.start()   # bootstraps, binds, serves in the background
        >>> # server.stop()
    """

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
        on_fatal_error: Optional[FatalErrorHandler] = None,
        resolver: Optional[BootstrapResolver] = None,
        transport: Optional[HttpsTransport] = None,
        cache: Optional[NameCache] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config if config is not None else ProxyConfig()
        self.host = host if host is not None else self.config.listen.host
        self.port = int(port if port is not None else self.config.listen.port)
        self.on_fatal_error = on_fatal_error
        self.logger = logger or logging.getLogger("doh_relay.server")
        self._injected_logger = logger

        up = self.config.upstream
        boot = self.config.bootstrap
        self.resolver = resolver or BootstrapResolver(
            up.resolved_hostname(),
            boot.host,
            boot.port,
            attempts=boot.attempts,
            delay=boot.delay_seconds,
            timeout_ms=boot.timeout_ms,
            logger=self._component_logger("bootstrap"),
        )
        self.transport = transport or HttpsTransport(
            up.url,
            method=up.method,
            content_type=up.content_type,
            timeout_ms=up.timeout_ms,
            verify=up.verify,
            ca_file=up.ca_file,
            headers=up.headers,
        )
        self._cache = cache

        self.handler: Optional[ForwardingHandler] = None
        self._server: Optional[RelayUDPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._janitor: Optional[CacheJanitor] = None
        self._state = ServerState.STOPPED
        self._lock = threading.Lock()

    def _component_logger(self, name: str) -> Optional[logging.Logger]:
        if self._injected_logger is None:
            return None
        return self._injected_logger.getChild(name)

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        """Bound (host, port) while running; useful when port 0 was requested."""
        server = self._server
        return server.server_address if server is not None else None

    def start(self) -> None:
        """Bootstrap the upstream address, bind the listener and start serving.

        Inputs:
          - None
        Outputs:
          - None; returns once the socket is bound and the loop thread started.

        Raises BootstrapError (no socket is bound) when the upstream hostname
        cannot be resolved, OSError when binding fails, and RuntimeError when
        the server is not stopped. Whatever fails, the server is left STOPPED
        with nothing bound.
        """
        with self._lock:
            if self._state is not ServerState.STOPPED:
                raise RuntimeError(f"cannot start server in state {self._state.value}")
            self._state = ServerState.STARTING

        try:
            self._start_components()
        except BaseException as e:
            if isinstance(e, BootstrapError):
                self.logger.error("%s", e)
            self._release()
            raise

    def _start_components(self) -> None:
        upstream_host = self.resolver.resolve_upstream_host()

        cache_cfg = self.config.cache
        cache = self._cache
        if cache is None:
            cache = NameCache(ttl=cache_cfg.ttl_seconds, maxsize=cache_cfg.maxsize)
        self.handler = ForwardingHandler(
            upstream_host,
            self.transport,
            cache,
            logger=self._component_logger("handler"),
        )

        try:
            self._server = RelayUDPServer((self.host, self.port), self.handler, self.logger)
        except PermissionError as e:
            self.logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                self.host,
                self.port,
                e,
            )
            raise

        bound_host, bound_port = self._server.server_address[:2]
        self.logger.info(
            "DNS UDP server listening on %s:%d, forwarding to %s",
            bound_host,
            bound_port,
            self.config.upstream.url,
        )
        self._janitor = CacheJanitor(cache, cache_cfg.cleanup_interval_seconds)
        self._janitor.start()
        self._thread = threading.Thread(
            target=self._serve, name="DoHRelayUDP", daemon=True
        )
        with self._lock:
            self._state = ServerState.RUNNING
        self._thread.start()

    def _serve(self) -> None:
        server = self._server
        try:
            server.serve_forever()
        except Exception as e:
            self.logger.error("UDP listener stopped unexpectedly: %s", e)
            with self._lock:
                owned = self._state is ServerState.RUNNING
                if owned:
                    self._state = ServerState.SHUTTING_DOWN
            # A concurrent stop() already owns the teardown.
            if owned:
                self._release()
            if self.on_fatal_error is not None:
                self.on_fatal_error(e)

    def _release(self) -> None:
        """Close the socket, stop the janitor and mark the server STOPPED."""
        server, thread, janitor = self._server, self._thread, self._janitor
        try:
            if server is not None:
                server.server_close()
        finally:
            if janitor is not None:
                janitor.stop()
            if (
                thread is not None
                and thread is not threading.current_thread()
                and thread.is_alive()
            ):
                thread.join(timeout=5.0)
            self._server = None
            self._thread = None
            self._janitor = None
            with self._lock:
                self._state = ServerState.STOPPED

    def stop(self) -> None:
        """Request graceful shutdown and close the underlying UDP socket.

        Inputs:
          - None
        Outputs:
          - None; a no-op when the server is already stopped. Errors raised
            while shutting down propagate after the server is marked stopped.
        """
        with self._lock:
            if self._state is not ServerState.RUNNING:
                return
            self._state = ServerState.SHUTTING_DOWN

        server, thread = self._server, self._thread
        try:
            if server is not None and thread is not None and thread.is_alive():
                server.shutdown()
        finally:
            self._release()
            self.logger.info("DNS UDP server stopped")


def start(
    port: int,
    on_fatal_error: Optional[FatalErrorHandler] = None,
    config: Optional[ProxyConfig] = None,
    **kwargs,
) -> Callable[[], None]:
    """Start the relay and return its stop function.

    Inputs:
      - port: UDP port to listen on.
      - on_fatal_error: callback for listener failures after start.
      - config: optional ProxyConfig; port overrides config.listen.port.
      - **kwargs: forwarded to DoHRelayServer (host, resolver, transport,
        cache, logger).

    Outputs:
      - Callable[[], None]: stops the server; raises if shutdown fails.

    Raises BootstrapError without binding a socket when the upstream hostname
    cannot be resolved.

    Example:
      >>> # stop = start(5353, lambda e: print("fatal", e))
      >>> # ...
      >>> # stop()
    """
    server = DoHRelayServer(config, port=port, on_fatal_error=on_fatal_error, **kwargs)
    server.start()
    return server.stop
