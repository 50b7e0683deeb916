"""Bulk-load catalog entries from a list of CAS numbers.

The list can be a local file or a published spreadsheet CSV URL; the CAS
number is taken from the first column. Every entry is resolved through the
running API's lookup endpoint and created through its chemicals endpoint,
so the usual duplicate checks apply.

    python -m chem_inventory.importer cas_list.csv --api-url http://localhost:8000
"""

import argparse
import logging
import time
from collections import Counter

import requests

from . import config
from .lookup import CAS_PATTERN

logger = logging.getLogger(__name__)

HEADER_WORDS = {"name", "cas", "cas_number", "cas number", "chemical"}


def get_lines_from_source(source: str) -> list[str]:
    """Read lines from a local file or a web URL."""
    if source.startswith("http"):
        logger.info("Downloading list from %s", source)
        resp = requests.get(source, timeout=30)
        resp.raise_for_status()
        return resp.text.splitlines()
    logger.info("Reading local file %s", source)
    with open(source, "r", encoding="utf-8") as f:
        return f.read().splitlines()


def first_column(line: str) -> str:
    # Spreadsheet exports sometimes wrap cells in quotes
    return line.strip().split(",")[0].replace('"', "").strip()


def import_one(client, api_url: str, cas_number: str) -> str:
    """Import a single CAS number and return the outcome name."""
    resp = client.get(f"{api_url}/api/lookup/cas/{cas_number}")
    if resp.status_code == 404:
        return "not_found"
    if resp.status_code != 200:
        logger.error("Lookup for %s failed: HTTP %s", cas_number, resp.status_code)
        return "failed"

    payload = resp.json()
    created = client.post(f"{api_url}/api/chemicals", json=payload)
    if created.status_code == 201:
        logger.info("Added %s (%s)", payload.get("name"), cas_number)
        return "created"
    if created.status_code == 400 and created.json().get("code") == "chemical.duplicate_cas":
        return "exists"
    logger.error("Could not add %s: %s", cas_number, created.text)
    return "failed"


def run_import(lines, client=None, api_url: str = "", delay: float = 0.0) -> Counter:
    client = client or requests.Session()
    summary = Counter()
    for line in lines:
        item = first_column(line)
        if not item or item.lower() in HEADER_WORDS:
            continue
        if not CAS_PATTERN.match(item):
            logger.warning("Skipping %r: not a CAS number", item)
            summary["invalid"] += 1
            continue
        try:
            outcome = import_one(client, api_url, item)
        except requests.RequestException as exc:
            logger.error("Connection error while importing %s: %s", item, exc)
            outcome = "failed"
        summary[outcome] += 1
        if delay:
            # Be polite to the lookup sources behind the API
            time.sleep(delay)
    return summary


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("source", help="local file or CSV URL with CAS numbers in the first column")
    parser.add_argument("--api-url", default=config.API_URL)
    parser.add_argument("--delay", type=float, default=0.5, help="seconds to wait between entries")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(message)s")
    try:
        lines = get_lines_from_source(args.source)
    except (OSError, requests.RequestException) as exc:
        logger.error("Error reading source: %s", exc)
        return 1
    if not lines:
        logger.error("No data found in %s", args.source)
        return 1

    summary = run_import(lines, api_url=args.api_url.rstrip("/"), delay=args.delay)
    logger.info("Import complete: %s", dict(summary))
    return 0 if not summary["failed"] else 2


if __name__ == "__main__":
    raise SystemExit(main())
