"""Service container for dependency injection (IoC Container Pattern)."""
import logging
from typing import Callable, Optional

from suchak.application.services.conversation_engine import ConversationEngine, FlushResult
from suchak.application.services.outbox import RetryPolicy
from suchak.config.settings import Config
from suchak.domain.entities.delivery import DeliveryPolicy
from suchak.domain.interfaces.storage import IPersistentStorage
from suchak.domain.interfaces.transport import ITransport
from suchak.infrastructure.dispatcher import OutboxDispatcher
from suchak.infrastructure.factories.provider_factory import ProviderFactory


class ServiceContainer:
    """
    Builds and owns the engine and its collaborators for one application.

    Not a singleton: every Flask app (and every test) gets its own container,
    so engines never share state. Collaborators can be injected, otherwise
    they are created from configuration on first use.
    """

    def __init__(
        self,
        config: type[Config] = Config,
        storage: Optional[IPersistentStorage] = None,
        transport: Optional[ITransport] = None,
    ):
        """
        Initialize service container.

        Args:
            config: Configuration class
            storage: Optional storage override (tests)
            transport: Optional transport override (tests)
        """
        self.config = config
        self._storage = storage
        self._transport = transport
        self._engine: Optional[ConversationEngine] = None
        self._dispatcher: Optional[OutboxDispatcher] = None
        self._logger = logging.getLogger(__name__)

    def get_storage(self) -> IPersistentStorage:
        """Get or create persistent storage instance."""
        if self._storage is None:
            try:
                self._storage = ProviderFactory.create_storage(
                    self.config.STORAGE_TYPE,
                    redis_url=self.config.REDIS_URL,
                    key_prefix=self.config.REDIS_KEY_PREFIX,
                )
                self._logger.info(f"Storage created: {self.config.STORAGE_TYPE}")
            except Exception as e:
                self._logger.error(f"Failed to create storage: {e}")
                raise
        return self._storage

    def get_transport(self) -> ITransport:
        """Get or create transport instance."""
        if self._transport is None:
            try:
                self._transport = ProviderFactory.create_transport(
                    self.config.TRANSPORT_TYPE,
                    url=self.config.TRANSPORT_URL,
                    token=self.config.TRANSPORT_TOKEN,
                    timeout=self.config.TRANSPORT_TIMEOUT,
                )
                self._logger.info(f"Transport created: {self.config.TRANSPORT_TYPE}")
            except Exception as e:
                self._logger.error(f"Failed to create transport: {e}")
                raise
        return self._transport

    def get_engine(self) -> ConversationEngine:
        """Get or create the conversation engine, restoring persisted state."""
        if self._engine is None:
            policy = DeliveryPolicy(self.config.DELIVERY_POLICY.lower())
            engine = ConversationEngine(
                local_user_id=self.config.LOCAL_USER_ID,
                storage=self.get_storage(),
                transport=self.get_transport(),
                node_id=self.config.NODE_ID,
                retry_policy=RetryPolicy(
                    max_attempts=self.config.OUTBOX_MAX_ATTEMPTS,
                    base_delay=self.config.OUTBOX_BASE_DELAY,
                    max_delay=self.config.OUTBOX_MAX_DELAY,
                    jitter=self.config.OUTBOX_JITTER,
                ),
                delivery_policy=policy,
            )
            engine.restore()
            self._engine = engine
            self._logger.info(
                f"ConversationEngine created for {engine.local_user_id} (delivery policy: {policy.value})"
            )
        return self._engine

    def get_dispatcher(self, on_flush: Optional[Callable[[FlushResult], None]] = None) -> Optional[OutboxDispatcher]:
        """Get or create the outbox dispatcher; None when dispatching is disabled."""
        if self._dispatcher is None and self.config.OUTBOX_DISPATCH_INTERVAL > 0:
            self._dispatcher = OutboxDispatcher(
                self.get_engine(),
                interval=self.config.OUTBOX_DISPATCH_INTERVAL,
                on_flush=on_flush,
            )
        return self._dispatcher

    def shutdown(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.stop()
            self._dispatcher = None
