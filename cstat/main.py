#!/usr/bin/env python3
"""cstat entry point. Samples one node and prints a row per interval."""

import logging
import signal
import sys
import threading

from cstat.config import ConfigurationError, load_config
from cstat.formatter import OutputSink
from cstat.log_events import log_exists
from cstat.sampler import SamplingOrchestrator
from cstat.sources import NodetoolSource, SystemSource

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [CSTAT] %(levelname)s %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    try:
        config = load_config(argv)
    except ConfigurationError as e:
        print(f"cstat: error: {e}", file=sys.stderr)
        return 2

    logging.getLogger().setLevel(config.log_level.upper())

    shutdown_event = threading.Event()

    def _signal_handler(sig, frame):
        logger.info("Shutdown signal received, stopping after this interval...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    if config.log_file and not log_exists(config.log_file):
        logger.warning("Log file %s does not exist yet, events start once it appears", config.log_file)

    source = NodetoolSource(config.keyspace, config.table, config.nodetool, config.host, config.port)
    system = SystemSource(config.disk, config.iface)
    logger.info("Sampling %s%s every %ds", config.keyspace,
                f".{config.table}" if config.table else "", config.interval)

    try:
        with OutputSink(config) as sink:
            SamplingOrchestrator(config, source, system, sink, shutdown_event).run()
    except BrokenPipeError:
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())
