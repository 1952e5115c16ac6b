# core/gateway.py - Single choke point for remote chat completion calls
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ..models.schemas import ModelConfig, ModuleType, Pathway
from .tool_schemas import tools_for

logger = logging.getLogger(__name__)

T = TypeVar("T")


def message_content(completion: Dict[str, Any]) -> Optional[str]:
    return completion["choices"][0]["message"].get("content")


class CompletionGateway:
    """Primary model first, then exactly one retry against the fallback model.

    ``client`` is anything with a blocking ``create_chat_completion(payload)``;
    it runs in a worker thread so the event loop stays free.
    """

    def __init__(self, client, fallback_model: str = "gpt-4.1"):
        self.client = client
        self.fallback_model = fallback_model

    def build_request(
        self,
        model_config: ModelConfig,
        messages: List[Dict[str, Any]],
        module_type: ModuleType,
        pathway: Pathway,
        tool_choice: Optional[Any] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model_config.model_name,
            "messages": messages,
            "max_tokens": model_config.max_tokens,
            "temperature": model_config.temperature,
        }
        if pathway == Pathway.COMPLEX:
            payload["tools"] = tools_for(module_type)
            payload["tool_choice"] = tool_choice or "auto"
        elif tool_choice:
            payload["tool_choice"] = tool_choice
        return payload

    async def call_with_fallback(
        self,
        payload: Dict[str, Any],
        parse: Optional[Callable[[Dict[str, Any]], T]] = None,
    ) -> Any:
        """Run ``payload`` on its model, then on the fallback model.

        A failing ``parse`` counts as a failed attempt. The fallback error
        propagates unchanged.
        """
        primary_model = payload["model"]
        try:
            return await self._attempt(payload, parse)
        except Exception as primary_error:
            logger.error(f"Primary model {primary_model} failed: {primary_error}")

        fallback_payload = {**payload, "model": self.fallback_model}
        logger.info(f"Attempting fallback with model: {self.fallback_model}")
        try:
            result = await self._attempt(fallback_payload, parse)
        except Exception as fallback_error:
            logger.error(f"Fallback model {self.fallback_model} also failed: {fallback_error}")
            raise
        logger.info(f"Successfully used fallback model: {self.fallback_model}")
        return result

    async def _attempt(self, payload: Dict[str, Any], parse):
        completion = await asyncio.to_thread(self.client.create_chat_completion, payload)
        return parse(completion) if parse else completion

    async def complete(
        self,
        model_config: ModelConfig,
        messages: List[Dict[str, Any]],
        module_type: ModuleType,
        pathway: Pathway,
        tool_choice: Optional[Any] = None,
    ) -> Dict[str, Any]:
        payload = self.build_request(model_config, messages, module_type, pathway, tool_choice)
        logger.info(f"Requesting completion with {model_config.model_name} ({pathway.value}, {len(messages)} messages)")
        return await self.call_with_fallback(payload)
