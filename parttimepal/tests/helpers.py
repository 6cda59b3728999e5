"""
Scripted provider for tests.

``scripted_client(**answers)`` returns a MockLLMClient whose answer can be
replaced per call kind. Kinds are the response schema name (JobEntity,
ScamAnalysis, SuitabilityDraft, CVAnalysis) or one of: verify, search,
url, image. An answer is a string, an LLMResponse, or a callable taking
``(parts, options)`` that may be async, may raise, and may return None to
fall back to the canned answer.
"""

import asyncio
import inspect

from parttimepal.core.llm_client import MockLLMClient, GroundingTool, TextPart, InlineBinaryPart
from parttimepal.services.job_search import JOB_SEPARATOR
from parttimepal.services.normalizer import URL_SENTINEL


def prompt_text(parts) -> str:
    return "\n".join(p.text for p in parts if isinstance(p, TextPart))


def call_kind(parts, options) -> str:
    if options.response_schema is not None:
        return options.response_schema.__name__
    if GroundingTool.MAPS_SEARCH in options.tools:
        return "verify"
    prompt = prompt_text(parts)
    if JOB_SEPARATOR in prompt:
        return "search"
    if URL_SENTINEL in prompt:
        return "url"
    if any(isinstance(p, InlineBinaryPart) for p in parts):
        return "image"
    return "other"


def scripted_client(timeout: float = 5.0, **answers) -> MockLLMClient:
    client = MockLLMClient(timeout=timeout)

    async def handler(parts, options, system_prompt):
        answer = answers.get(call_kind(parts, options))
        if callable(answer):
            answer = answer(parts, options)
            if inspect.isawaitable(answer):
                answer = await answer
        if answer is None:
            return client._canned(parts, options)
        return answer

    client.handler = handler
    return client


def fail(exc):
    """Answer that raises ``exc``."""
    def answer(parts, options):
        raise exc
    return answer


def slow(seconds: float):
    """Answer that sleeps, then falls back to the canned answer."""
    async def answer(parts, options):
        await asyncio.sleep(seconds)
    return answer
