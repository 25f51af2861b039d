"""Policy-gated message bus for tool confirmations.

The agent loop publishes a ToolConfirmationRequest before running a tool.
The bus asks the PolicyEngine first: allowed calls are confirmed right
away, denied calls are rejected, and only calls that need a human reach
the request subscribers (normally the UI), which answer by publishing a
ToolConfirmationResponse with the same correlation id.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from ..policy.engine import PolicyEngine
from ..policy.models import PolicyDecision
from .types import (
    MESSAGE_CLASSES,
    Message,
    MessageBusType,
    ToolConfirmationRequest,
    ToolConfirmationResponse,
    ToolPolicyRejection,
)

logger = logging.getLogger("toolgate.confirmation_bus")

Handler = Callable[[Message], None]


class MessageBus:
    """Synchronous publish/subscribe bus with a policy check on requests.

    Handlers run in the publisher's thread, in subscription order.
    Exceptions raised by a handler propagate to the publisher.
    """

    def __init__(self, policy_engine: PolicyEngine):
        self.policy_engine = policy_engine
        self._handlers: dict[MessageBusType, list[Handler]] = defaultdict(list)

    def subscribe(self, message_type: MessageBusType, handler: Handler) -> None:
        """Register a handler for one message type."""
        self._handlers[message_type].append(handler)

    def unsubscribe(self, message_type: MessageBusType, handler: Handler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._handlers.get(message_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def publish(self, message: Message) -> None:
        """Publish a message.

        Confirmation requests are checked against the policy engine before
        anyone sees them; every other message is delivered as-is.

        Raises:
            ValueError: If the message is not one of the known message types
        """
        message_type = getattr(message, "type", None)
        expected = MESSAGE_CLASSES.get(message_type)
        if expected is None or not isinstance(message, expected):
            raise ValueError(f"Invalid message: {message!r}")

        if isinstance(message, ToolConfirmationRequest):
            self._handle_confirmation_request(message)
        else:
            self._emit(message)

    def _handle_confirmation_request(self, request: ToolConfirmationRequest) -> None:
        decision = self.policy_engine.check(request.tool_call)

        if decision == PolicyDecision.ALLOW:
            logger.debug(f"Auto-confirming '{request.tool_call.name}' ({request.correlation_id})")
            self._emit(ToolConfirmationResponse(correlation_id=request.correlation_id, confirmed=True))
        elif decision == PolicyDecision.DENY:
            logger.info(f"Policy rejected '{request.tool_call.name}' ({request.correlation_id})")
            self._emit(ToolPolicyRejection(tool_call=request.tool_call))
            self._emit(ToolConfirmationResponse(correlation_id=request.correlation_id, confirmed=False))
        else:
            # ASK_USER: hand the request to whoever can ask a human
            self._emit(request)

    def _emit(self, message: Message) -> None:
        # Copy so handlers may unsubscribe while being called
        for handler in list(self._handlers.get(message.type, ())):
            handler(message)


__all__ = [
    "MessageBus",
]
