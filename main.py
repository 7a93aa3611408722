"""Entry point for the event collector shipper."""

import argparse
import logging
import random
import sys
import time

from hec_shipper.config import ConfigError, load_config
from hec_shipper.decoder import encode_record
from hec_shipper.output import FlushResult, SplunkOutput

SAMPLE_LEVELS = ["DEBUG", "INFO", "INFO", "INFO", "WARNING", "ERROR"]
SAMPLE_MESSAGES = [
    "User logged in",
    "Request processed successfully",
    "Database query completed",
    "Cache miss for key",
    "Connection timeout to upstream",
    "Disk usage above threshold",
]


def _parse_args(argv):
    parser = argparse.ArgumentParser(
        description="Ship msgpack log chunks to an HTTP Event Collector",
        allow_abbrev=False,
        epilog="Output options: --config, --host, --port, --tls, --no-tls-verify, "
        "--compress, --http-user, --http-passwd, --splunk-token, --event-key, "
        "--send-raw, --timeout, --max-connections",
    )
    parser.add_argument("--input", action="append", default=[], help="chunk file, '-' for stdin")
    parser.add_argument("--demo", type=int, default=0, help="generate N sample records")
    parser.add_argument("--dry-run", action="store_true", help="print the payload, do not send")
    args, _ = parser.parse_known_args(argv)
    return args


def demo_chunk(count: int) -> bytes:
    """Build a chunk of *count* sample records."""
    now = time.time()
    return b"".join(
        encode_record(
            {
                "level": random.choice(SAMPLE_LEVELS),
                "message": random.choice(SAMPLE_MESSAGES),
                "service": "hec-shipper-demo",
                "seq": i,
            },
            timestamp=now + i / 1000,
        )
        for i in range(count)
    )


def _read_chunks(paths: list[str]) -> list[bytes]:
    chunks = []
    for path in paths:
        if path == "-":
            chunks.append(sys.stdin.buffer.read())
        else:
            with open(path, "rb") as f:
                chunks.append(f.read())
    return chunks


def main(argv=None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    argv = sys.argv[1:] if argv is None else argv
    args = _parse_args(argv)
    try:
        config = load_config(argv)
    except ConfigError as exc:
        logger.error("Configuration failed: %s", exc)
        return 2

    try:
        chunks = _read_chunks(args.input)
    except OSError as exc:
        logger.error("Cannot read input: %s", exc)
        return 2
    if args.demo:
        chunks.append(demo_chunk(args.demo))
    if not chunks:
        logger.error("Nothing to ship: pass --input FILE or --demo N")
        return 2

    output = SplunkOutput(config)
    logger.info(
        "Shipping %d chunk(s) to %s (raw=%s, compress=%s, auth=%s)",
        len(chunks),
        config.base_url,
        config.splunk_send_raw,
        config.compress_gzip,
        config.auth_mode,
    )

    failures = 0
    try:
        for i, chunk in enumerate(chunks):
            if args.dry_run:
                sys.stdout.buffer.write(output.format_test(chunk))
                sys.stdout.buffer.flush()
                continue
            result = output.flush(chunk)
            logger.info("Chunk %d (%d bytes): %s", i, len(chunk), result.value)
            if result is not FlushResult.OK:
                failures += 1
    finally:
        output.close()

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
