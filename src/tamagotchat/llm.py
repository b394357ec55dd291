"""
LLM client and prompt templates.

This module provides:
- An OpenAI-compatible async client (Ollama by default) with timeout handling
- The system prompt carrying the structured answer contract
- A LangChain chat model factory for chain-based callers
- LLM response generation for the main technical answer

Every failure is raised as LLMError; callers decide whether that means
fail-open, fail-closed or a degraded reply.
"""

from typing import Dict, Any, Optional, List
from openai import AsyncOpenAI
from langchain_openai import ChatOpenAI
from loguru import logger

from .utils import get_config, Timer


class LLMError(Exception):
    """Raised when LLM operations fail."""
    pass


DEGRADED_REPLY = "Sorry, I encountered an error while processing your request."

SYSTEM_PROMPT = """You are a technical assistant specialized in computer science. You must follow these rules:

1. ONLY answer technical questions related to computer science.
2. Always format your responses in a standardized way with a confidence level.
3. Be concise in your answers to complex questions and redirect to documentation.
4. If the query is too simple, suggest searching on the internet.
5. Do not respond to simple polite phrases like "hello" or "thank you".
6. For simple bash commands, return the man page.
7. Never use polite formulas in your responses.

Your response must always follow this format:
{
 "content": "Your concise answer here",
 "confidence": percentage from 0 to 100,
 "redirections": [
   {
     "type": "google/documentation/letmegooglethat/manpage/history",
     "url": "Relevant URL",
     "message": "Explanatory message about the redirection"
   }
 ]
}"""


class LLMClient:
    """Client for an OpenAI-compatible chat completion endpoint."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or get_config()
        self.client = AsyncOpenAI(
            base_url=self.config["LLM_BASE_URL"],
            api_key=self.config["LLM_API_KEY"],
            timeout=self.config.get("REQUEST_TIMEOUT_SECONDS", 60)
        )

        self.generation_model = self.config["GENERATION_MODEL"]

        logger.info("LLM client initialized",
                    base_url=self.config["LLM_BASE_URL"],
                    generation_model=self.generation_model)

    def get_langchain_llm(self, model: Optional[str] = None, temperature: float = 0.7) -> ChatOpenAI:
        """
        Get a configured LangChain ChatOpenAI instance for chain-based callers.

        Args:
            model: Model to use (defaults to generation model)
            temperature: Sampling temperature

        Returns:
            ChatOpenAI: Configured LangChain LLM instance
        """
        if model is None:
            model = self.generation_model

        return ChatOpenAI(
            base_url=self.config["LLM_BASE_URL"],
            api_key=self.config["LLM_API_KEY"],
            model=model,
            temperature=temperature,
            timeout=self.config.get("REQUEST_TIMEOUT_SECONDS", 60)
        )

    async def generate_response(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        **kwargs
    ) -> str:
        """
        Generate a chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to generation model)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            **kwargs: Additional parameters for the API

        Returns:
            str: Generated response text

        Raises:
            LLMError: If generation fails
        """
        if model is None:
            model = self.generation_model

        try:
            logger.info("Generating LLM response",
                        model=model,
                        message_count=len(messages),
                        temperature=temperature)

            with Timer("llm_generation"):
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs
                )

                if not response.choices:
                    raise LLMError("No response choices returned from LLM")

                generated_text = response.choices[0].message.content
                if not generated_text:
                    raise LLMError("Empty response from LLM")

                logger.info("LLM response generated successfully",
                            model=model,
                            response_length=len(generated_text),
                            tokens_used=getattr(response.usage, 'total_tokens', None))

                return generated_text.strip()

        except LLMError:
            raise
        except Exception as e:
            logger.error("LLM generation failed",
                         error=str(e),
                         model=model,
                         message_count=len(messages))
            raise LLMError(f"LLM generation failed: {str(e)}")

    async def invoke(self, prompt: str, model: Optional[str] = None, temperature: float = 0.7) -> str:
        """Text in, text out. Sends ``prompt`` as a single user message."""
        return await self.generate_response(
            messages=[{"role": "user", "content": prompt}],
            model=model,
            temperature=temperature
        )

    async def generate_structured_answer(
        self,
        user_query: str,
        conversation_history: Optional[List[Dict[str, str]]] = None
    ) -> str:
        """
        Ask the generation model for a JSON answer following SYSTEM_PROMPT.

        The raw text is returned untouched; repairing it is the sanitizer's job.

        Args:
            user_query: Current user message
            conversation_history: Previous messages, oldest first

        Returns:
            str: Raw model output

        Raises:
            LLMError: If generation fails
        """
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]

        # Last 4 messages are enough context for a support answer
        for msg in (conversation_history or [])[-4:]:
            content = msg.get("content", "")
            if content and msg.get("role") in ("user", "assistant"):
                truncated = content[:500] + "..." if len(content) > 500 else content
                messages.append({"role": msg["role"], "content": truncated})

        messages.append({"role": "user", "content": user_query})

        return await self.generate_response(messages=messages, temperature=0.7)

    async def check_health(self) -> bool:
        """Return True when the endpoint answers a model listing."""
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.warning("LLM health check failed", error=str(e))
            return False


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """
    Get the global LLM client instance, initializing if needed.

    Returns:
        LLMClient: Initialized LLM client
    """
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
