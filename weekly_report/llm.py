from __future__ import annotations

import os
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger

from .config import AppConfig, LLMConfig
from .errors import DegenerateOutputError, ProviderError
from .models import CompletionRequest, CompletionResult, ConversationState


class CompletionProvider(Protocol):
    def complete(self, request: CompletionRequest) -> CompletionResult: ...


class OpenAIProvider:
    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: AppConfig) -> "OpenAIProvider":
        api_key = os.getenv(config.llm.api_key_env)
        if not api_key:
            raise ProviderError(f"missing {config.llm.api_key_env}")
        from openai import OpenAI

        return cls(OpenAI(api_key=api_key, organization=config.llm.organization))

    def complete(self, request: CompletionRequest) -> CompletionResult:
        try:
            response = self._client.responses.create(
                model=request.model,
                input=_build_messages(request),
                max_output_tokens=request.max_output_tokens,
                temperature=request.temperature,
            )
        except Exception as exc:
            raise ProviderError(f"completion request failed: {exc}", cause=exc) from exc

        text = _reply_text(response)
        if not text:
            raise ProviderError("completion response carried no text")
        usage = getattr(response, "usage", None)
        return CompletionResult(
            text=text,
            input_tokens=getattr(usage, "input_tokens", None),
            output_tokens=getattr(usage, "output_tokens", None),
        )


def create_provider(config: AppConfig) -> CompletionProvider:
    provider = config.llm.provider.lower()
    if provider == "openai":
        return OpenAIProvider.from_config(config)
    raise ProviderError(f"unsupported llm provider: {config.llm.provider}")


def _reply_text(response: Any) -> str:
    # refusal parts carry `refusal` instead of `text`
    for item in getattr(response, "output", None) or []:
        for part in getattr(item, "content", None) or []:
            text = getattr(part, "text", None)
            if isinstance(text, str) and text.strip():
                return text.strip()
    return ""


def _build_messages(request: CompletionRequest) -> List[Dict[str, str]]:
    if request.restart or request.history is None:
        messages = [{"role": "system", "content": request.system_prompt}]
    else:
        messages = request.history.messages()
    messages.append({"role": "user", "content": request.user_prompt})
    return messages


class ChainState(str, Enum):
    PENDING = "pending"
    FIRST_CALL_DONE = "first_call_done"
    COMPLETE = "complete"
    FAILED = "failed"


class ChatChain:
    """Two chained completions sharing one conversation.

    The first call analyses the raw material; the second sees the verbatim
    first exchange and condenses it into the final narrative. A second reply
    shorter than ``min_reply_chars`` fails the chain. Nothing is retried.
    """

    def __init__(self, provider: CompletionProvider, config: LLMConfig) -> None:
        self.provider = provider
        self.config = config
        self.state = ChainState.PENDING
        self.conversation: Optional[ConversationState] = None

    def run(
        self,
        system_prompt: str,
        user_prompt_1: str,
        max_out_1: int,
        user_prompt_2: str,
        max_out_2: int,
        correlation_id: str,
    ) -> str:
        if self.state is not ChainState.PENDING:
            raise RuntimeError(f"chat chain {correlation_id} already ran ({self.state.value})")

        first = self._call(
            CompletionRequest(
                model=self.config.model,
                system_prompt=system_prompt,
                user_prompt=user_prompt_1,
                max_output_tokens=max_out_1,
                temperature=self.config.temperature,
                restart=True,
            ),
            correlation_id,
            step=1,
        )
        self.state = ChainState.FIRST_CALL_DONE
        self.conversation = ConversationState(system_prompt, user_prompt_1, first.text)

        second = self._call(
            CompletionRequest(
                model=self.config.model,
                system_prompt=system_prompt,
                user_prompt=user_prompt_2,
                max_output_tokens=max_out_2,
                temperature=self.config.temperature,
                restart=False,
                history=self.conversation,
            ),
            correlation_id,
            step=2,
        )
        reply = second.text.strip()
        if len(reply) < self.config.min_reply_chars:
            self.state = ChainState.FAILED
            logger.error("generation went sideways", correlation_id=correlation_id, reply=reply)
            raise DegenerateOutputError(reply, correlation_id)

        self.state = ChainState.COMPLETE
        return reply

    def _call(self, request: CompletionRequest, correlation_id: str, step: int) -> CompletionResult:
        try:
            result = self.provider.complete(request)
        except ProviderError as exc:
            self.state = ChainState.FAILED
            logger.error("step {step} generation error: {error}", step=step, error=str(exc), correlation_id=correlation_id)
            raise ProviderError(exc.message, correlation_id, cause=exc.cause or exc) from exc
        logger.debug(
            "chain step completed",
            step=step,
            correlation_id=correlation_id,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return result


def chain_of_chat(
    provider: CompletionProvider,
    config: LLMConfig,
    system_prompt: str,
    user_prompt_1: str,
    max_out_1: int,
    user_prompt_2: str,
    max_out_2: int,
    correlation_id: str,
) -> str:
    chain = ChatChain(provider, config)
    return chain.run(system_prompt, user_prompt_1, max_out_1, user_prompt_2, max_out_2, correlation_id)
