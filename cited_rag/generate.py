"""
Answer Generation Module

Builds citation-demanding prompts and sends them to a text-generation
provider (Ollama, OpenAI or Anthropic).
"""

import logging
from typing import List, Optional, Callable, Union
from dataclasses import dataclass

import requests

from .errors import ProviderError
from .retrieve import ScoredChunk

logger = logging.getLogger(__name__)


NO_INFORMATION_ANSWER = "The documents do not contain relevant information to answer this question."

REFUSAL_INSTRUCTION = "There is no information on this in the documents."

ANSWER_RULES = f"""RULES (FOLLOW EXACTLY):
1. Use ONLY information from the documents above. Do not add your own knowledge.
2. EVERY sentence with a fact, figure or name MUST carry its source number right after the fact: [1], [2], [3], etc.
   Correct: "The price is 100 USD [1]". Wrong: "According to the documents the price is 100 USD".
3. If a fact comes from source [1], write [1]; if it comes from [2], write [2].
4. Do not invent, assume or add context that is not in the documents.
5. If the documents do not answer the question, write ONLY: "{REFUSAL_INSTRUCTION}"
6. Do not add phrases such as "according to" or "the document says"; state the facts with their [n].
7. Be brief and clear."""


@dataclass
class GenerationConfig:
    """Configuration for answer generation."""
    provider: str = "ollama"  # ollama, openai, anthropic
    model: str = "llama3.2"
    base_url: str = "http://localhost:11434"
    temperature: float = 0.1
    top_p: float = 0.9
    max_new_tokens: int = 512
    timeout: Optional[float] = None


def format_context(chunks: List[ScoredChunk]) -> str:
    """Numbered context blocks, one per chunk."""
    return "\n\n".join(
        f"[{i}] (Source: {chunk.source})\n{chunk.text}"
        for i, chunk in enumerate(chunks, 1)
    )


def build_prompt(
    question: str,
    chunks: List[ScoredChunk],
    conversation_context: Optional[str] = None
) -> str:
    """Prompt that answers from the numbered chunks only, with citations."""
    history = f"{conversation_context.strip()}\n\n" if conversation_context else ""
    return f"""You are a document help desk assistant. You answer ONLY with information from the documents.

{history}DOCUMENTS (CONTEXT):
{format_context(chunks)}

QUESTION: {question}

{ANSWER_RULES}

ANSWER:"""


def build_baseline_prompt(question: str) -> str:
    """Prompt for answering from the model's own knowledge."""
    return f"""You are a helpful assistant. Answer the question clearly and precisely.

Question: {question}

Answer:"""


class Generator:
    """Text generation through a remote provider."""

    def __init__(self, config: Optional[GenerationConfig] = None):
        self.config = config or GenerationConfig()

    def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None
    ) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Full prompt text
            temperature: Overrides the configured temperature
            top_p: Overrides the configured nucleus-sampling cutoff

        Returns:
            Generated text

        Raises:
            ProviderError: provider unreachable or response without text
        """
        temperature = self.config.temperature if temperature is None else temperature
        top_p = self.config.top_p if top_p is None else top_p

        if self.config.provider == "ollama":
            return self._generate_ollama(prompt, temperature, top_p)
        elif self.config.provider == "openai":
            return self._generate_openai(prompt, temperature, top_p)
        elif self.config.provider == "anthropic":
            return self._generate_anthropic(prompt, temperature, top_p)
        else:
            raise ValueError(f"Unknown provider: {self.config.provider}")

    def _generate_ollama(self, prompt: str, temperature: float, top_p: float) -> str:
        url = f"{self.config.base_url.rstrip('/')}/api/generate"
        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "top_p": top_p,
                "num_predict": self.config.max_new_tokens,
            },
        }
        try:
            response = requests.post(url, json=payload, timeout=self.config.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Generation request to %s failed: %s", url, exc)
            raise ProviderError(f"Generation request failed: {exc}", provider="ollama") from exc

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str) or not text:
            raise ProviderError("Malformed generation response: no 'response' text", provider="ollama")
        return text

    def _generate_openai(self, prompt: str, temperature: float, top_p: float) -> str:
        try:
            import openai
        except ImportError:
            raise ImportError("openai package required for OpenAI generation")

        try:
            client = openai.OpenAI(timeout=self.config.timeout)
            response = client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.config.max_new_tokens,
                temperature=temperature,
                top_p=top_p
            )
        except openai.OpenAIError as exc:
            raise ProviderError(f"Generation request failed: {exc}", provider="openai") from exc

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise ProviderError("Malformed generation response: empty message", provider="openai")
        return text

    def _generate_anthropic(self, prompt: str, temperature: float, top_p: float) -> str:
        try:
            import anthropic
        except ImportError:
            raise ImportError("anthropic package required for Anthropic generation")

        try:
            client = anthropic.Anthropic(timeout=self.config.timeout)
            response = client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_new_tokens,
                temperature=temperature,
                top_p=top_p,
                messages=[{"role": "user", "content": prompt}]
            )
        except anthropic.AnthropicError as exc:
            raise ProviderError(f"Generation request failed: {exc}", provider="anthropic") from exc

        text = "".join(block.text for block in response.content if getattr(block, "text", None))
        if not text:
            raise ProviderError("Malformed generation response: no text blocks", provider="anthropic")
        return text


class MockGenerator:
    """Scripted generator for demos and tests; remembers every prompt."""

    def __init__(self, answer: Union[str, Callable[[str], str]] = NO_INFORMATION_ANSWER):
        self.answer = answer
        self.prompts: List[str] = []

    def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None
    ) -> str:
        self.prompts.append(prompt)
        if callable(self.answer):
            return self.answer(prompt)
        return self.answer
