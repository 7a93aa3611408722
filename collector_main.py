"""Entry point for the mock HTTP Event Collector."""

import logging
import os
import sys

from hec_shipper.collector import create_collector_app, run_collector


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    host = os.environ.get("COLLECTOR_HOST", "0.0.0.0")
    port = int(os.environ.get("COLLECTOR_PORT", "8088"))
    token = os.environ.get("COLLECTOR_TOKEN") or None

    app = create_collector_app(token=token)
    logging.getLogger(__name__).info(
        "Mock collector on %s:%d (token %s)", host, port, "required" if token else "not required"
    )
    run_collector(app, host, port)


if __name__ == "__main__":
    main()
