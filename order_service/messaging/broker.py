"""
Request-reply and event messaging over Redis lists.

This module provides the MessageBroker used to talk to the product catalog
and the payment gateway. A request is pushed onto the subject's request list
together with a private reply list name; the caller then blocks on that reply
list until the collaborator answers or the configured timeout elapses. Events
are pushed onto per-subject event lists and consumed with blocking pops.

Wire format:
    request  {"correlation_id", "subject", "data", "reply_to", "request_id"}
    reply    {"correlation_id", "data", "error": {"status", "message"} | null}
"""

import json
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from order_service.core.config import get_settings
from order_service.core.logging import get_logger, get_request_id

logger = get_logger(__name__)


class TransportError(Exception):
    """Base exception for request-reply and event transport failures."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class MessagingConnectionError(TransportError):
    """Raised when the broker cannot be reached or a command fails."""

    pass


class MessagingTimeoutError(TransportError):
    """Raised when no reply arrives before the request timeout."""

    pass


class RemoteServiceError(TransportError):
    """Raised when the collaborator answers with an error reply."""

    def __init__(self, message: str, status: Optional[int] = None, **context: Any):
        super().__init__(message, status=status, **context)
        self.status = status

    @property
    def is_client_error(self) -> bool:
        """True when the collaborator rejected the request itself (4xx)."""
        return self.status is not None and 400 <= self.status < 500


class MessageBroker:
    """
    Async Redis-backed message broker with request-reply support.

    Attributes:
        namespace: Prefix applied to every request, reply and event list
        request_timeout: Default seconds to wait for a reply
    """

    def __init__(
        self,
        url: Optional[str] = None,
        namespace: Optional[str] = None,
        request_timeout: Optional[float] = None,
        max_connections: Optional[int] = None,
        socket_connect_timeout: float = 5.0,
        client: Optional[Redis] = None,
    ):
        """
        Initialize broker configuration.

        Args:
            url: Redis connection URL (defaults to settings.redis_url)
            namespace: List key prefix (defaults to settings.broker_namespace)
            request_timeout: Reply wait in seconds (defaults to settings)
            max_connections: Maximum pool connections (defaults to settings)
            socket_connect_timeout: Socket connection timeout in seconds
            client: Pre-built Redis client, mainly for tests
        """
        settings = get_settings()
        self._url = url or settings.redis_url
        self.namespace = namespace or settings.broker_namespace
        self.request_timeout = request_timeout or settings.rpc_timeout_seconds
        self._max_connections = max_connections or settings.redis_max_connections
        self._socket_connect_timeout = socket_connect_timeout

        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Strip credentials from a Redis URL for logging."""
        if "@" in url:
            protocol, rest = url.split("://", 1)
            _, host_part = rest.split("@", 1)
            return f"{protocol}://***@{host_part}"
        return url

    async def connect(self) -> None:
        """
        Create the connection pool and verify connectivity.

        Raises:
            MessagingConnectionError: If Redis cannot be reached
        """
        if self._client is not None:
            logger.warning("Message broker already connected")
            return

        # No socket read timeout: blocking pops bound their own wait.
        self._pool = ConnectionPool.from_url(
            self._url,
            max_connections=self._max_connections,
            socket_connect_timeout=self._socket_connect_timeout,
            retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
            decode_responses=True,
        )
        self._client = Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Failed to connect message broker",
                url=self._sanitize_url(self._url),
                error=str(e),
            )
            await self.disconnect()
            raise MessagingConnectionError(
                "Message broker connection failed",
                url=self._sanitize_url(self._url),
                error=str(e),
            ) from e

        logger.info(
            "Message broker connected",
            url=self._sanitize_url(self._url),
            namespace=self.namespace,
        )

    async def disconnect(self) -> None:
        """Close the client and its connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
        logger.info("Message broker disconnected")

    async def ping(self) -> bool:
        """
        Check broker connectivity.

        Raises:
            MessagingConnectionError: If not connected or Redis fails
        """
        client = self._ensure_connected()
        try:
            return bool(await client.ping())
        except RedisError as e:
            raise MessagingConnectionError(
                "Broker ping failed", error=str(e)
            ) from e

    def request_key(self, subject: str) -> str:
        return f"{self.namespace}:rpc:{subject}"

    def reply_key(self, correlation_id: str) -> str:
        return f"{self.namespace}:reply:{correlation_id}"

    def event_key(self, subject: str) -> str:
        return f"{self.namespace}:events:{subject}"

    def _ensure_connected(self) -> Redis:
        if self._client is None:
            raise MessagingConnectionError("Message broker is not connected")
        return self._client

    async def request(
        self,
        subject: str,
        data: Any,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Send a request and wait for its reply.

        Args:
            subject: Command name the collaborator listens on
            data: JSON-serializable request payload
            timeout: Seconds to wait, defaults to the broker timeout

        Returns:
            The reply's data payload

        Raises:
            MessagingConnectionError: If Redis fails
            MessagingTimeoutError: If no reply arrives in time
            RemoteServiceError: If the collaborator replies with an error
        """
        client = self._ensure_connected()
        timeout = timeout or self.request_timeout
        correlation_id = str(uuid4())
        reply_to = self.reply_key(correlation_id)

        envelope = {
            "correlation_id": correlation_id,
            "subject": subject,
            "data": data,
            "reply_to": reply_to,
            "request_id": get_request_id() or None,
        }

        logger.debug(
            "Sending broker request",
            subject=subject,
            correlation_id=correlation_id,
        )

        try:
            await client.lpush(self.request_key(subject), json.dumps(envelope))
            popped = await client.blpop([reply_to], timeout=timeout)
        except RedisError as e:
            logger.error(
                "Broker request failed",
                subject=subject,
                correlation_id=correlation_id,
                error=str(e),
            )
            raise MessagingConnectionError(
                "Broker request failed",
                subject=subject,
                correlation_id=correlation_id,
                error=str(e),
            ) from e

        if popped is None:
            logger.warning(
                "Broker request timed out",
                subject=subject,
                correlation_id=correlation_id,
                timeout=timeout,
            )
            raise MessagingTimeoutError(
                f"No reply for '{subject}' within {timeout}s",
                subject=subject,
                correlation_id=correlation_id,
            )

        _, raw_reply = popped
        return self._unwrap_reply(subject, correlation_id, raw_reply)

    @staticmethod
    def _unwrap_reply(subject: str, correlation_id: str, raw_reply: str) -> Any:
        try:
            reply = json.loads(raw_reply)
        except json.JSONDecodeError as e:
            raise TransportError(
                "Malformed broker reply",
                subject=subject,
                correlation_id=correlation_id,
            ) from e

        if not isinstance(reply, dict):
            raise TransportError(
                "Malformed broker reply",
                subject=subject,
                correlation_id=correlation_id,
            )

        error = reply.get("error")
        if error:
            status = error.get("status") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.warning(
                "Broker request rejected by collaborator",
                subject=subject,
                correlation_id=correlation_id,
                status=status,
                message=message,
            )
            raise RemoteServiceError(
                message or f"'{subject}' failed",
                status=status,
                subject=subject,
                correlation_id=correlation_id,
            )

        return reply.get("data")

    async def publish(self, subject: str, data: Any) -> None:
        """
        Publish an event onto the subject's event list.

        Raises:
            MessagingConnectionError: If Redis fails
        """
        client = self._ensure_connected()
        try:
            await client.lpush(self.event_key(subject), json.dumps(data))
        except RedisError as e:
            raise MessagingConnectionError(
                "Broker publish failed", subject=subject, error=str(e)
            ) from e
        logger.debug("Event published", subject=subject)

    async def subscribe(
        self,
        subject: str,
        poll_timeout: float = 5.0,
    ) -> AsyncIterator[Any]:
        """
        Iterate over events published on a subject, oldest first.

        Messages that are not valid JSON are logged and skipped.

        Args:
            subject: Event subject
            poll_timeout: Seconds each blocking pop waits before looping

        Yields:
            Decoded event payloads
        """
        client = self._ensure_connected()
        key = self.event_key(subject)
        logger.info("Subscribed to events", subject=subject)

        while True:
            try:
                popped = await client.brpop([key], timeout=poll_timeout)
            except RedisError as e:
                raise MessagingConnectionError(
                    "Broker subscription failed", subject=subject, error=str(e)
                ) from e

            if popped is None:
                continue

            _, raw = popped
            try:
                event = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Discarding malformed event", subject=subject)
                continue

            yield event


_broker: Optional[MessageBroker] = None


async def get_message_broker() -> MessageBroker:
    """
    Get or create the global connected broker instance.

    Raises:
        MessagingConnectionError: If the connection fails
    """
    global _broker

    if _broker is None:
        broker = MessageBroker()
        await broker.connect()
        _broker = broker

    return _broker


async def close_message_broker() -> None:
    """Disconnect the global broker, if any."""
    global _broker

    if _broker is not None:
        await _broker.disconnect()
        _broker = None
