"""
Prometheus metrics for the settlement layer.
"""
import time
import os
import socket
import threading
import logging
from socketserver import ThreadingMixIn
from wsgiref.simple_server import make_server, WSGIServer

import psutil
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app

logger = logging.getLogger(__name__)


# Create a threaded WSGI server for the Prometheus metrics
class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the main application."""
    allow_reuse_address = True
    daemon_threads = True


class Monitor:
    def __init__(self, host: str = "127.0.0.1", port: int = 9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None
        self._process = psutil.Process(os.getpid())

        # Isolated registry so several layers can run in one process
        self.registry = CollectorRegistry()

        self.swaps = Counter('settlement_swaps_total', 'Swaps settled', ['path'], registry=self.registry)
        self.liquidity_adjustments = Counter(
            'settlement_liquidity_adjustments_total', 'Liquidity adjustments settled', registry=self.registry
        )
        self.markets_opened = Counter('settlement_markets_opened_total', 'Markets opened', registry=self.registry)
        self.incentive_minted = Counter(
            'settlement_incentive_minted_total', 'Incentive token units minted', registry=self.registry
        )
        self.fees_burned = Counter(
            'settlement_gasless_fees_burned_total', 'Incentive token units burned as gasless fees',
            registry=self.registry,
        )
        self.failures = Counter(
            'settlement_failures_total', 'Aborted units of work', ['operation', 'error'], registry=self.registry
        )
        self.latency = Histogram(
            'settlement_latency_seconds', 'Time to settle a unit of work', ['operation'], registry=self.registry
        )
        self.cpu_usage = Gauge('process_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_rss = Gauge('process_memory_rss_bytes', 'Resident memory of the process', registry=self.registry)

    def start_server(self, max_retries: int = 5, retry_delay: float = 2):
        """Creates and starts the Prometheus HTTP server with retry logic."""
        app = make_wsgi_app(self.registry)

        for attempt in range(max_retries):
            try:
                self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
                self.server.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                self.port = self.server.server_port

                self.thread = threading.Thread(target=self.server.serve_forever)
                self.thread.daemon = True
                self.thread.start()
                logger.info(f"Prometheus server started on http://{self.host}:{self.port}")
                return
            except OSError as e:
                if e.errno == 98 and attempt < max_retries - 1:  # Address already in use
                    logger.warning(
                        f"Port {self.port} in use, retrying in {retry_delay}s "
                        f"(attempt {attempt+1}/{max_retries})..."
                    )
                    time.sleep(retry_delay)
                else:
                    logger.error(f"Failed to bind metrics server to port {self.port}: {e}")
                    raise

    def stop_server(self):
        """Stops the HTTP server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update_system_metrics(self):
        self.cpu_usage.set(self._process.cpu_percent())
        self.memory_rss.set(self._process.memory_info().rss)

    def record_swap(self, path: str, minted: int = 0):
        self.swaps.labels(path=path).inc()
        if minted:
            self.incentive_minted.inc(minted)

    def record_liquidity_adjustment(self):
        self.liquidity_adjustments.inc()

    def record_market_opened(self):
        self.markets_opened.inc()

    def record_fee_burned(self, amount: int):
        if amount:
            self.fees_burned.inc(amount)

    def record_failure(self, operation: str, error: str):
        self.failures.labels(operation=operation, error=error).inc()

    def observe_latency(self, operation: str, seconds: float):
        self.latency.labels(operation=operation).observe(seconds)
