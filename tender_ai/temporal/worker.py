"""Temporal worker service for document processing.

This worker:
- Connects to the Temporal server configured by TEMPORAL_HOST/TEMPORAL_PORT
- Registers the processing workflows and activities
- Polls the configured task queue
- Runs at most WORKER_MAX_CONCURRENCY activities at once
"""

import asyncio

from temporalio.client import Client
from temporalio.worker import Worker

from tender_ai.core.config import settings
from tender_ai.core.database import close_database, init_database
from tender_ai.temporal.activities import (
    get_document_stats_activity,
    prepare_retrieval_activity,
    process_document_activity,
)
from tender_ai.temporal.workflows import PrepareRetrievalWorkflow, ProcessDocumentWorkflow
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

CONNECT_ATTEMPTS = 10
CONNECT_RETRY_SECONDS = 3


async def connect_client() -> Client:
    """Connect to Temporal, retrying while the server starts up."""
    target_host = f"{settings.temporal_host}:{settings.temporal_port}"
    attempt = 1
    while True:
        try:
            LOGGER.info(f"Connecting to Temporal server at {target_host} (attempt {attempt})")
            return await Client.connect(target_host, namespace=settings.temporal_namespace)
        except RuntimeError as e:
            if attempt == CONNECT_ATTEMPTS:
                raise
            LOGGER.warning(f"Temporal not reachable yet: {e}; retrying in {CONNECT_RETRY_SECONDS}s")
            await asyncio.sleep(CONNECT_RETRY_SECONDS)
        attempt += 1


def build_worker(client: Client) -> Worker:
    return Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=[ProcessDocumentWorkflow, PrepareRetrievalWorkflow],
        activities=[
            process_document_activity,
            prepare_retrieval_activity,
            get_document_stats_activity,
        ],
        max_concurrent_activities=settings.temporal.max_concurrency,
    )


async def main():
    """Start the Temporal worker."""
    await init_database(create_tables=True)
    client = await connect_client()
    worker = build_worker(client)

    LOGGER.info("=" * 60)
    LOGGER.info("Temporal Worker Started Successfully")
    LOGGER.info(f"Task Queue: {settings.temporal_task_queue}")
    LOGGER.info(f"Max Concurrent Activities: {settings.temporal.max_concurrency}")
    LOGGER.info("=" * 60)

    try:
        await worker.run()
    finally:
        await close_database()


def run():
    """Console entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        LOGGER.info("Worker stopped by user")
    except Exception as e:
        LOGGER.error(f"Worker failed: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    run()
