"""Purchase state event publishing to Google Cloud Pub/Sub.

Responsibilities:
- Observe the purchase state store
- Serialize StateChangeEvents to JSON
- Publish to the configured Pub/Sub topic without blocking the event loop
- Manage Pub/Sub client lifecycle
"""

from threading import RLock
from typing import Callable, Optional

from google.cloud import pubsub_v1

from iap_storefront.logging_config import get_logger
from iap_storefront.models.events import StateChangeEvent
from iap_storefront.models.product import PubSubConfig
from iap_storefront.repositories.purchase_state_store import PurchaseStateStore

logger = get_logger(__name__)


class StateEventPublisher:
    """Publishes purchase state changes to Pub/Sub.

    Publishing is fire-and-forget: the publish future is completed by the
    Pub/Sub client's own threads and only its outcome is logged.
    """

    def __init__(self, settings: PubSubConfig):
        """Initialize publisher from settings.

        Args:
            settings: Pub/Sub settings; nothing is created when disabled
        """
        self._settings = settings
        self._lock = RLock()
        self._publisher: Optional[pubsub_v1.PublisherClient] = None
        self._topic_path: Optional[str] = None
        self._enabled = False
        self._detach: Optional[Callable[[], None]] = None
        self.published = 0
        self.failed = 0

        self._initialize()

    def _initialize(self) -> None:
        """Create the Pub/Sub publisher and make sure the topic exists."""
        if not self._settings.enabled:
            logger.info("state_publisher_disabled", message="Pub/Sub state publishing is disabled in config")
            return

        try:
            self._publisher = pubsub_v1.PublisherClient()
            self._topic_path = self._publisher.topic_path(self._settings.project_id, self._settings.topic)
            self._ensure_topic_exists()
            self._enabled = True
            logger.info(
                "state_publisher_initialized",
                project_id=self._settings.project_id,
                topic=self._settings.topic,
                topic_path=self._topic_path,
            )
        except Exception as e:
            logger.error(
                "state_publisher_init_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._publisher = None
            self._enabled = False

    def _ensure_topic_exists(self) -> None:
        """Ensure the Pub/Sub topic exists, create it if it doesn't."""
        if not self._publisher or not self._topic_path:
            return

        try:
            self._publisher.get_topic(request={"topic": self._topic_path})
            logger.info("pubsub_topic_exists", topic_path=self._topic_path)
        except Exception:
            topic = self._publisher.create_topic(request={"name": self._topic_path})
            logger.info("pubsub_topic_created", topic_path=topic.name)

    def is_enabled(self) -> bool:
        """Check if the publisher is enabled and the client initialized."""
        return self._enabled and self._publisher is not None

    def attach(self, store: PurchaseStateStore) -> None:
        """Start publishing every transition applied to the store."""
        if not self.is_enabled():
            return
        with self._lock:
            if self._detach is None:
                self._detach = store.add_listener(self.publish)

    def publish(self, event: StateChangeEvent) -> bool:
        """Publish one state change event.

        Returns:
            True if the message was handed to the Pub/Sub client
        """
        if not self.is_enabled():
            logger.debug("state_publisher_disabled", message="Skipping event publication")
            return False

        with self._lock:
            try:
                future = self._publisher.publish(
                    self._topic_path,
                    event.model_dump_json().encode("utf-8"),
                    product_id=event.product_id,
                    new_state=event.new_state.value,
                    sequence=str(event.sequence),
                )
            except Exception as e:
                self.failed += 1
                logger.error(
                    "state_event_publish_failed",
                    product_id=event.product_id,
                    sequence=event.sequence,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return False

        future.add_done_callback(lambda f: self._on_published(f, event))
        return True

    def _on_published(self, future, event: StateChangeEvent) -> None:
        """Log the outcome of a publish future (runs on a Pub/Sub client thread)."""
        error = future.exception()
        if error is not None:
            with self._lock:
                self.failed += 1
            logger.error(
                "state_event_publish_failed",
                product_id=event.product_id,
                sequence=event.sequence,
                error=str(error),
                error_type=type(error).__name__,
            )
            return

        with self._lock:
            self.published += 1
        logger.debug(
            "state_event_published",
            product_id=event.product_id,
            sequence=event.sequence,
            message_id=future.result(),
        )

    def shutdown(self) -> None:
        """Stop observing the store and release the Pub/Sub client."""
        with self._lock:
            if self._detach is not None:
                self._detach()
                self._detach = None
            if self._publisher:
                logger.info("state_publisher_shutting_down")
                self._publisher = None
                self._topic_path = None
                self._enabled = False
                logger.info("state_publisher_shutdown_complete")
