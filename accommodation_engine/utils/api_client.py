"""
HTTP client for an OpenAI-compatible chat completions endpoint.
Handles authentication and the POST to /chat/completions.
"""

import requests
import logging
from typing import Any, Dict


class CompletionError(Exception):
    """A chat completion request failed or returned an unusable body."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ChatCompletionClient:
    def __init__(self, base_url: str, api_key: str, timeout: float = 120.0):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.logger.debug(f"Initialized ChatCompletionClient with base_url: {self.base_url}")

    def _build_url(self, endpoint: str) -> str:
        """Build the full URL by appending the endpoint to the base URL."""
        if endpoint.startswith('/'):
            endpoint = endpoint[1:]
        return f"{self.base_url}/{endpoint}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def create_chat_completion(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a completion request and return the decoded response body."""
        if not self.api_key:
            raise CompletionError("OPENAI_API_KEY is not set")

        url = self._build_url('chat/completions')
        self.logger.debug(f"POST request to: {url} (model={payload.get('model')})")
        try:
            response = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            status_code = e.response.status_code if e.response is not None else None
            detail = e.response.text if e.response is not None else ''
            self.logger.error(f"Request Error in POST request to {url}: {str(e)}")
            self.logger.error(f"{status_code or 'No response'} Error Details: {detail}")
            raise CompletionError(f"Chat completion request failed: {e}", status_code) from e

        self.logger.debug(f"POST response status: {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            self.logger.warning(f"Response is not JSON: {response.text}")
            raise CompletionError("Chat completion response is not JSON", response.status_code) from e

        if not isinstance(data, dict) or not data.get("choices"):
            raise CompletionError("Chat completion response has no choices", response.status_code)
        return data


def create_client_from_settings(settings) -> ChatCompletionClient:
    """
    Create a ChatCompletionClient from EngineSettings.
    """
    return ChatCompletionClient(
        base_url=settings.openai_base,
        api_key=settings.openai_api_key,
        timeout=settings.request_timeout,
    )
