import asyncio
import functools
import json
import logging
import re
from typing import Dict, Optional, Protocol

import jsonschema
import tiktoken
from aiolimiter import AsyncLimiter
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from ai_translate.errors import TranslationResponseError

logger = logging.getLogger(__name__)

# The model must answer with a flat JSON object. Values are checked one by one
# when they are merged, so a single bad value does not fail the whole batch.
TRANSLATION_RESPONSE_SCHEMA = {
    "type": "object"
}

_LEADING_FENCE = re.compile(r'^\s*```[a-zA-Z]*\s*')
_TRAILING_FENCE = re.compile(r'\s*```\s*$')
_CHAT_COMPLETIONS_SUFFIX = '/chat/completions'


class Translator(Protocol):
    """Anything that can translate a flat batch of texts."""

    async def translate(self, texts: Dict[str, str], target_language: str) -> Dict[str, str]:
        ...


def normalize_base_url(api_url: str) -> str:
    """
    Accept either an API base URL or a full chat-completions endpoint URL.

    Args:
        api_url: e.g. ``https://api.openai.com/v1`` or ``https://api.openai.com/v1/chat/completions``.

    Returns:
        str: The base URL the OpenAI client expects.
    """
    url = api_url.strip().rstrip('/')
    if url.endswith(_CHAT_COMPLETIONS_SUFFIX):
        url = url[:-len(_CHAT_COMPLETIONS_SUFFIX)]
    return url


@functools.lru_cache(maxsize=None)
def _encoding_for(model_name: str):
    """Resolve the tiktoken encoding for ``model_name`` once per process.

    ``tiktoken.encoding_for_model`` fails for models it does not know (any
    non-OpenAI model served behind a compatible API), in which case ``gpt2`` is
    used. tiktoken downloads encoding files on first use, so this is a blocking
    call; ``None`` means no encoding could be loaded at all.
    """
    try:
        return tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            return tiktoken.get_encoding("gpt2")
        except Exception:
            return None


def count_tokens(text: str, model_name: str = 'gpt-3.5-turbo') -> int:
    """Count the number of tokens in ``text`` for ``model_name``, or its words if no encoding is available."""
    encoding = _encoding_for(model_name)
    if encoding is None:
        return len(text.split())
    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def parse_translation_response(content: Optional[str]) -> Dict[str, str]:
    """
    Parse the model's answer into a key/value mapping.

    Models sometimes wrap JSON in Markdown code fences despite being told not
    to, so a second attempt is made with leading and trailing fences removed.

    Args:
        content: Raw message content returned by the model.

    Returns:
        Dict[str, str]: The parsed mapping.

    Raises:
        TranslationResponseError: If the content is empty, not JSON, or not a JSON object.
    """
    if content is None or not content.strip():
        raise TranslationResponseError("The model returned an empty response.")

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        stripped = _TRAILING_FENCE.sub('', _LEADING_FENCE.sub('', content))
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as json_exc:
            logger.debug("Unparseable model response:\n---\n%s\n---", content)
            raise TranslationResponseError(f"The model did not return valid JSON: {json_exc}") from json_exc

    try:
        jsonschema.validate(instance=parsed, schema=TRANSLATION_RESPONSE_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        raise TranslationResponseError(
            f"The model response did not match the expected shape: {schema_exc.message}"
        ) from schema_exc
    return parsed


def build_system_prompt(target_language: str, keys_count: int) -> str:
    return f"""You are a top-tier multilingual localization expert, proficient in software development, UI/UX design, and cross-cultural communication.
Your ONLY task is to accurately and naturally translate the text values in the following JSON data into the target language: [ {target_language} ].

You MUST strictly adhere to the following translation and output guidelines:
1. **Terminology**: Use modern Web/App and software engineering terminology. Keep the tone professional, natural and friendly.
2. **Placeholder protection**: NEVER translate, modify or drop any placeholder (e.g. {{{{name}}}}, {{name}}, {{0}}, %s), HTML tag (e.g. <b>) or special symbol. Keep each of them in a grammatically correct position.
3. **Context**: Infer where a text is shown from its JSON key (e.g. "btn" for short button labels, "msg" for full sentences).
4. **Length**: Keep translations as concise as possible to avoid overflowing the interface.
5. **Punctuation**: Keep trailing punctuation consistent with the original (e.g. "..." or "?").
6. **Structure**: Return a valid JSON object whose keys EXACTLY match the input keys. Do not add, remove or rename any key; translate only the values. There are {keys_count} fields to translate, and the returned object MUST contain exactly {keys_count} fields.
7. **JSON only**: Do not add Markdown formatting (such as ```json), explanations, prefixes or notes. Return only the JSON object.
"""


class OpenAITranslator:
    """Translation capability backed by an OpenAI-compatible chat completions API."""

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str,
            temperature: float = 0.1,
            max_response_tokens: int = 4096,
            request_timeout: float = 60.0,
            rate_limiter: Optional[AsyncLimiter] = None,
            language_names: Optional[Dict[str, str]] = None
    ):
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.max_response_tokens = max_response_tokens
        self.request_timeout = request_timeout
        self.rate_limiter = rate_limiter or AsyncLimiter(max_rate=60, time_period=60)
        self.language_names = language_names or {}

    def describe_language(self, target_language: str) -> str:
        name = self.language_names.get(target_language)
        return f"{name} ({target_language})" if name else target_language

    async def translate(self, texts: Dict[str, str], target_language: str) -> Dict[str, str]:
        """
        Translate one batch of texts.

        Args:
            texts: Mapping of safe key to source text.
            target_language: Target language code.

        Returns:
            Dict[str, str]: The model's mapping of safe key to translated text.

        Raises:
            openai.OpenAIError: On transport or API errors.
            TranslationResponseError: If the answer cannot be parsed.
        """
        system_prompt = build_system_prompt(self.describe_language(target_language), len(texts))
        user_content = json.dumps(texts, ensure_ascii=False, indent=2)

        # May download encoding files on first use.
        request_tokens = await asyncio.to_thread(count_tokens, system_prompt + user_content, self.model_name)
        if request_tokens > self.max_response_tokens:
            logger.warning(
                "Batch request is about %d tokens, more than the %d tokens allowed for the answer. "
                "The response may be truncated; consider a smaller batch size.",
                request_tokens, self.max_response_tokens
            )

        async with self.rate_limiter:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    ChatCompletionSystemMessageParam(role="system", content=system_prompt),
                    ChatCompletionUserMessageParam(role="user", content=user_content)
                ],
                temperature=self.temperature,
                max_tokens=self.max_response_tokens,
                response_format={"type": "json_object"},
                timeout=self.request_timeout,
            )

        if not response.choices:
            raise TranslationResponseError("The model returned no choices.")
        return parse_translation_response(response.choices[0].message.content)
