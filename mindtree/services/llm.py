"""
LLM client for Ipê Mind Tree.

Talks to an Ollama-compatible /api/generate endpoint. Every call, successful
or not, is logged to the llm_calls table when a database is attached.
"""

import logging
import time
from typing import Optional

import duckdb
import httpx

from ..config import config
from ..database import DatabaseManager
from ..exceptions import LLMError


class LLMClient:
    """
    Synchronous client for text generation.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        model: Optional[str] = None,
        db: Optional[DatabaseManager] = None,
        client: Optional[httpx.Client] = None
    ):
        """
        Initialize the LLM client.

        Args:
            host: The Ollama server URL (defaults to config value)
            model: The model name to use for inference (defaults to config value)
            db: Optional database manager used to log calls
            client: Optional preconfigured httpx client
        """
        self.host = host or config.ollama_host
        self.model = model or config.model_name
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=config.ollama_timeout)
        self.db = db

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            self.client.close()

    def generate(self, prompt: str, system_prompt: str = "", purpose: str = "rag") -> str:
        """
        Generate a completion.

        Args:
            prompt: The user prompt
            system_prompt: Optional system prompt
            purpose: Label stored with the call log

        Returns:
            The model's response text

        Raises:
            LLMError: If the endpoint is unreachable or answers with an error
        """
        start_time = time.time()
        success = False
        error_message = None
        raw_response = ""

        try:
            payload = {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": config.get("ai.temperature", 0.7)}
            }

            if system_prompt:
                payload["system"] = system_prompt

            response = self.client.post(
                f"{self.host}/api/generate",
                json=payload
            )
            response.raise_for_status()

            result = response.json()
            raw_response = result.get("response", "")
            success = True

            return raw_response

        except httpx.HTTPStatusError as e:
            error_message = f"LLM request failed: {e}"
            raise LLMError(error_message, status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            error_message = f"Failed to connect to LLM: {e}"
            raise LLMError(error_message) from e
        except ValueError as e:
            error_message = f"Invalid response from LLM: {e}"
            raise LLMError(error_message) from e
        finally:
            execution_time_ms = int((time.time() - start_time) * 1000)

            if self.db:
                try:
                    self.db.log_llm_call(
                        purpose=purpose,
                        system_prompt=system_prompt,
                        user_prompt=prompt,
                        model_name=self.model,
                        raw_response=raw_response,
                        success=success,
                        error_message=error_message,
                        execution_time_ms=execution_time_ms
                    )
                except duckdb.Error as log_error:
                    logging.warning(f"Failed to log LLM call: {log_error}")
