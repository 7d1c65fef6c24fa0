import logging
import threading
from socketserver import ThreadingMixIn
from wsgiref.simple_server import make_server, WSGIServer

import psutil
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """A WSGI server that runs in a separate thread to not block the verifier."""
    allow_reuse_address = True


class Monitor:
    """
    Metrics for executors and disputers.

    Each monitor owns an isolated registry, so several can coexist in one
    process (and in tests). Nothing is served until ``start_server`` is called.
    """

    def __init__(self, host="127.0.0.1", port=9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        self.registry = CollectorRegistry()
        self.tx_counter = Counter('rollup_transactions_total', 'Transactions replayed, by result', ['result'], registry=self.registry)
        self.batch_counter = Counter('rollup_batches_total', 'Batches processed, by verdict', ['verdict'], registry=self.registry)
        self.tx_latency = Histogram('rollup_tx_latency_seconds', 'Time to process a transaction', registry=self.registry)
        self.batch_latency = Histogram('rollup_batch_latency_seconds', 'Time to process a batch', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

    def start_server(self):
        """Expose the registry over HTTP from a daemon thread."""
        app = make_wsgi_app(self.registry)
        self.server = make_server(self.host, self.port, app, ThreadingWSGIServer)
        self.thread = threading.Thread(target=self.server.serve_forever)
        self.thread.daemon = True
        self.thread.start()
        logger.info(f"Prometheus server started on http://{self.host}:{self.port}")

    def stop_server(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def update(self):
        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)

    def record_tx(self, result: str, latency: float):
        self.tx_counter.labels(result=result).inc()
        self.tx_latency.observe(latency)

    def record_batch(self, verdict: str, latency: float):
        self.batch_counter.labels(verdict=verdict).inc()
        self.batch_latency.observe(latency)
        self.update()
