"""Result notification service.

Publishes one message per finished job to a Storage Queue so downstream
flows (e.g. attaching the PDF to a Dataverse row) can pick it up.
"""

import json
import logging

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.queue import QueueClient, TextBase64EncodePolicy

from models import JobResult

logger = logging.getLogger(__name__)


class ResultNotifier:
    """Sends job results to the result queue. Never raises."""

    def __init__(self, connection_string: str | None, queue_name: str) -> None:
        """Initialize Result Notifier.

        Args:
            connection_string: Storage connection string; ``None`` disables sending.
            queue_name: Result queue name.
        """
        self.connection_string = connection_string
        self.queue_name = queue_name
        self._client: QueueClient | None = None
        self._queue_ready = False

    @property
    def configured(self) -> bool:
        """True when a connection string is available."""
        return bool(self.connection_string)

    @property
    def client(self) -> QueueClient:
        """Lazy initialization of QueueClient."""
        if self._client is None:
            # Queue triggers on the consumer side expect base64 message bodies
            self._client = QueueClient.from_connection_string(
                self.connection_string,
                self.queue_name,
                message_encode_policy=TextBase64EncodePolicy(),
            )
        return self._client

    def _ensure_queue(self) -> None:
        if self._queue_ready:
            return
        try:
            self.client.create_queue()
            logger.info(f"Created result queue: {self.queue_name}")
        except ResourceExistsError:
            pass
        self._queue_ready = True

    def send_result(self, result: JobResult) -> bool:
        """Publish a job result.

        Failures are logged and swallowed: a PDF that was stored must not be
        regenerated because its notification failed.

        Args:
            result: Finished job result.

        Returns:
            bool: True if the message was enqueued.
        """
        if not self.configured:
            logger.warning(
                f"Result queue not configured, skipping notification for {result.report_id}"
            )
            return False

        message = json.dumps(result.to_message(), ensure_ascii=False)
        try:
            self._ensure_queue()
            self.client.send_message(message)
        except (AzureError, ValueError) as e:
            logger.error(
                f"Failed to send result for {result.report_id} to {self.queue_name}: {e}"
            )
            return False

        logger.info(
            f"Result sent to {self.queue_name}: reportId={result.report_id}, "
            f"status={result.status.value}"
        )
        return True
