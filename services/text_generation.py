"""
Text Generation Client

Time-bounded access to the language model for summaries and structured
JSON judgments.
"""

from typing import Any, Dict, List, Optional, Sequence, Union
import asyncio
import json
import logging

from langchain_core.language_models import BaseLanguageModel
from langchain_core.messages import BaseMessage, HumanMessage

from config.settings import settings
from retention.errors import CollaboratorError, CollaboratorTimeoutError, MalformedResponseError

JSON_FORMAT = "json"


def build_llm() -> BaseLanguageModel:
    """Construct the production chat model"""
    from langchain_google_genai import ChatGoogleGenerativeAI

    return ChatGoogleGenerativeAI(
        model=settings.LLM_MODEL,
        temperature=settings.LLM_TEMPERATURE,
        google_api_key=settings.GOOGLE_API_KEY
    )


class TextGenerationClient:
    """Wraps a LangChain chat model with a timeout and error mapping"""

    def __init__(self, llm: BaseLanguageModel, timeout_seconds: Optional[float] = None):
        self.llm = llm
        self.timeout_seconds = timeout_seconds or settings.LLM_TIMEOUT_SECONDS
        self.logger = logging.getLogger("TextGenerationClient")

    async def generate(
        self,
        prompt: Union[str, Sequence[BaseMessage]],
        response_format: Optional[str] = None
    ) -> Union[str, Dict[str, Any]]:
        """
        Generate a completion.

        Args:
            prompt: Prompt text or pre-built chat messages
            response_format: None for text, "json" for a parsed JSON object

        Returns:
            Completion text, or a dict when response_format is "json"

        Raises:
            CollaboratorTimeoutError: the model did not answer in time
            CollaboratorError: the model call failed
            MalformedResponseError: JSON was requested but could not be parsed
        """
        messages = self._to_messages(prompt)

        try:
            response = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            self.logger.warning(f"LLM call timed out after {self.timeout_seconds}s")
            raise CollaboratorTimeoutError(f"LLM call timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            self.logger.error(f"LLM invocation failed: {e}", exc_info=True)
            raise CollaboratorError(f"LLM invocation failed: {e}") from e

        content = self._extract_text(response)

        if response_format == JSON_FORMAT:
            return self._parse_json(content)
        return content

    @staticmethod
    def _to_messages(prompt: Union[str, Sequence[BaseMessage]]) -> List[BaseMessage]:
        if isinstance(prompt, str):
            return [HumanMessage(content=prompt)]
        return list(prompt)

    @staticmethod
    def _extract_text(response: Any) -> str:
        if hasattr(response, "content"):
            content = response.content
        else:
            content = response
        if isinstance(content, list):
            # Multi-part content blocks
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        return str(content).strip()

    def _parse_json(self, content: str) -> Dict[str, Any]:
        """Extract JSON from LLM response, handling markdown code blocks."""
        content = content.strip()
        if content.startswith("```json"):
            content = content[7:]
        elif content.startswith("```"):
            content = content[3:]
        if content.endswith("```"):
            content = content[:-3]
        content = content.strip()

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            self.logger.warning(f"LLM returned invalid JSON: {content[:100]}")
            raise MalformedResponseError(f"Invalid JSON from LLM: {e}") from e

        if not isinstance(parsed, dict):
            raise MalformedResponseError("Expected a JSON object from LLM")
        return parsed
