"""Confirmation bus connecting the agent loop, the policy engine and the UI."""

from .bus import MessageBus
from .types import (
    Message,
    MessageBusType,
    ToolConfirmationRequest,
    ToolConfirmationResponse,
    ToolExecutionFailure,
    ToolExecutionSuccess,
    ToolPolicyRejection,
)

__all__ = [
    "MessageBus",
    "Message",
    "MessageBusType",
    "ToolConfirmationRequest",
    "ToolConfirmationResponse",
    "ToolPolicyRejection",
    "ToolExecutionSuccess",
    "ToolExecutionFailure",
]
