# models/messages.py - Typed chat messages and the append-only conversation log
import json
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel


class ConversationOrderError(Exception):
    """Raised when a tool round would break the tool-call/tool-result ordering."""


class ToolFunction(BaseModel):
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    id: str
    type: str = "function"
    function: ToolFunction

    @property
    def name(self) -> str:
        return self.function.name

    def parse_arguments(self) -> Dict[str, Any]:
        """Decode the JSON arguments string the model produced."""
        return json.loads(self.function.arguments or "{}")


class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: str

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: str

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: List[ToolCall] = []

    @classmethod
    def from_completion(cls, completion: Dict[str, Any]) -> "AssistantMessage":
        """Build from a chat completion response: choices[0].message."""
        message = completion["choices"][0]["message"]
        return cls(
            content=message.get("content"),
            tool_calls=message.get("tool_calls") or [],
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.model_dump() for call in self.tool_calls]
        return payload


class ToolMessage(BaseModel):
    role: Literal["tool"] = "tool"
    tool_call_id: str
    content: str

    @classmethod
    def acknowledge(cls, tool_call: ToolCall, result: Dict[str, Any]) -> "ToolMessage":
        return cls(tool_call_id=tool_call.id, content=json.dumps(result))

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role, "tool_call_id": self.tool_call_id, "content": self.content}


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage]


class ConversationLog:
    """Append-only message log for one analysis request.

    The log starts with exactly one system and one user message. Afterwards it
    only grows by whole tool rounds: an assistant message carrying tool calls,
    immediately followed by one tool message per call, in the same order.
    """

    def __init__(self, system_prompt: str, user_prompt: str):
        self._messages: List[Message] = [
            SystemMessage(content=system_prompt),
            UserMessage(content=user_prompt),
        ]

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def append_tool_round(self, assistant: AssistantMessage, results: List[ToolMessage]) -> None:
        if not assistant.tool_calls:
            raise ConversationOrderError("Assistant message in a tool round must carry tool calls")

        expected = [call.id for call in assistant.tool_calls]
        received = [result.tool_call_id for result in results]
        if expected != received:
            raise ConversationOrderError(
                f"Tool results {received} do not match tool calls {expected}"
            )

        self._messages.append(assistant)
        self._messages.extend(results)

    def to_payload(self) -> List[Dict[str, Any]]:
        return [message.to_payload() for message in self._messages]
