"""Messages exchanged between the agent loop, the policy layer and the UI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from ..policy.models import ToolCall


class MessageBusType(str, Enum):
    """Kinds of message carried by the confirmation bus."""

    TOOL_CONFIRMATION_REQUEST = "tool-confirmation-request"
    TOOL_CONFIRMATION_RESPONSE = "tool-confirmation-response"
    TOOL_POLICY_REJECTION = "tool-policy-rejection"
    TOOL_EXECUTION_SUCCESS = "tool-execution-success"
    TOOL_EXECUTION_FAILURE = "tool-execution-failure"


@dataclass
class ToolConfirmationRequest:
    """The agent asks whether it may run a tool call."""

    tool_call: ToolCall
    correlation_id: str
    type: MessageBusType = field(default=MessageBusType.TOOL_CONFIRMATION_REQUEST, init=False)


@dataclass
class ToolConfirmationResponse:
    """Answer to a confirmation request, from the policy or a human."""

    correlation_id: str
    confirmed: bool
    type: MessageBusType = field(default=MessageBusType.TOOL_CONFIRMATION_RESPONSE, init=False)


@dataclass
class ToolPolicyRejection:
    """A tool call was refused by policy."""

    tool_call: ToolCall
    type: MessageBusType = field(default=MessageBusType.TOOL_POLICY_REJECTION, init=False)


@dataclass
class ToolExecutionSuccess:
    tool_call: ToolCall
    result: Any
    type: MessageBusType = field(default=MessageBusType.TOOL_EXECUTION_SUCCESS, init=False)


@dataclass
class ToolExecutionFailure:
    tool_call: ToolCall
    error: BaseException
    type: MessageBusType = field(default=MessageBusType.TOOL_EXECUTION_FAILURE, init=False)


Message = Union[
    ToolConfirmationRequest,
    ToolConfirmationResponse,
    ToolPolicyRejection,
    ToolExecutionSuccess,
    ToolExecutionFailure,
]

MESSAGE_CLASSES: dict[MessageBusType, type] = {
    MessageBusType.TOOL_CONFIRMATION_REQUEST: ToolConfirmationRequest,
    MessageBusType.TOOL_CONFIRMATION_RESPONSE: ToolConfirmationResponse,
    MessageBusType.TOOL_POLICY_REJECTION: ToolPolicyRejection,
    MessageBusType.TOOL_EXECUTION_SUCCESS: ToolExecutionSuccess,
    MessageBusType.TOOL_EXECUTION_FAILURE: ToolExecutionFailure,
}

__all__ = [
    "MessageBusType",
    "ToolConfirmationRequest",
    "ToolConfirmationResponse",
    "ToolPolicyRejection",
    "ToolExecutionSuccess",
    "ToolExecutionFailure",
    "Message",
    "MESSAGE_CLASSES",
]
