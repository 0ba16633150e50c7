"""
Trigger entry point for one ETA batch.

Invoked by the external scheduler or webhook. Reads credentials from the
environment (see transit_eta.config), runs one batch against the data
store and prints the response body as JSON.

Usage:
    python run_predictions.py                 # managed data store
    python run_predictions.py data/snapshot   # local CSV snapshot
"""

import json
import sys
from typing import Optional

from transit_eta.core.batch_runner import BatchAbortedError, BatchRunner
from transit_eta.logging_config import get_logger
from transit_eta.oracle.route_oracle import OpenRouteServiceClient
from transit_eta.stores.memory import InMemoryTransitStore
from transit_eta.stores.rest import RestTransitStore

logger = get_logger(__name__)


def main(snapshot_dir: Optional[str] = None) -> int:
    if snapshot_dir:
        store = InMemoryTransitStore.from_csv(snapshot_dir)
    else:
        try:
            store = RestTransitStore()
        except ValueError as e:
            logger.error("Data store not configured", extra={"error": str(e)})
            print(json.dumps({"error": str(e)}))
            return 1

    runner = BatchRunner.from_store(store, OpenRouteServiceClient())
    try:
        summary = runner.run()
    except BatchAbortedError as e:
        logger.error("Batch aborted", extra={"error": str(e)})
        print(json.dumps({"error": str(e)}))
        return 1

    if snapshot_dir:
        store.to_csv(snapshot_dir)

    logger.info("Batch summary", extra=summary.to_dict())
    print(json.dumps(summary.to_response()))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else None))
