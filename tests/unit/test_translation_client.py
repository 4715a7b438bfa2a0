import json
import threading
import unittest
from types import SimpleNamespace
from unittest.mock import patch, MagicMock, AsyncMock

from aiolimiter import AsyncLimiter

from ai_translate.errors import TranslationResponseError
from ai_translate.translation_client import (
    OpenAITranslator,
    _encoding_for,
    build_system_prompt,
    count_tokens,
    normalize_base_url,
    parse_translation_response
)


def _chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class TestParseTranslationResponse(unittest.TestCase):
    def test_plain_json(self):
        self.assertEqual(parse_translation_response('{"idx_0_a": "Hallo"}'), {"idx_0_a": "Hallo"})

    def test_code_fenced_json_is_recovered(self):
        content = '```json\n{"idx_0_a": "Hallo"}\n```'
        self.assertEqual(parse_translation_response(content), {"idx_0_a": "Hallo"})

    def test_bare_fence_is_recovered(self):
        content = '```\n{"idx_0_a": "Hallo"}\n```\n'
        self.assertEqual(parse_translation_response(content), {"idx_0_a": "Hallo"})

    def test_garbage_raises(self):
        with self.assertRaises(TranslationResponseError):
            parse_translation_response("Sure! Here is your translation: Hallo")

    def test_empty_raises(self):
        for content in (None, "", "   "):
            with self.assertRaises(TranslationResponseError):
                parse_translation_response(content)

    def test_non_object_raises(self):
        with self.assertRaises(TranslationResponseError):
            parse_translation_response('["Hallo"]')


class TestHelpers(unittest.TestCase):
    def test_normalize_base_url(self):
        self.assertEqual(normalize_base_url("https://api.openai.com/v1"), "https://api.openai.com/v1")
        self.assertEqual(normalize_base_url("https://api.openai.com/v1/"), "https://api.openai.com/v1")
        self.assertEqual(
            normalize_base_url("http://localhost:5001/v1/chat/completions"),
            "http://localhost:5001/v1"
        )

    def test_system_prompt_states_language_and_key_count(self):
        prompt = build_system_prompt("German (de)", 7)
        self.assertIn("[ German (de) ]", prompt)
        self.assertIn("exactly 7 fields", prompt)
        self.assertIn("{{name}}", prompt)

    def test_count_tokens_fallback(self):
        _encoding_for.cache_clear()
        self.addCleanup(_encoding_for.cache_clear)
        # Force encoding_for_model to raise to trigger fallback
        with patch('ai_translate.translation_client.tiktoken.encoding_for_model', side_effect=Exception()):
            fake_enc = MagicMock()
            fake_enc.encode.side_effect = lambda s: list(s.split())
            with patch('ai_translate.translation_client.tiktoken.get_encoding', return_value=fake_enc):
                count = count_tokens('one two three')
        self.assertEqual(count, 3)

    def test_count_tokens_last_resort(self):
        _encoding_for.cache_clear()
        self.addCleanup(_encoding_for.cache_clear)
        with patch('ai_translate.translation_client.tiktoken.encoding_for_model', side_effect=Exception()):
            with patch('ai_translate.translation_client.tiktoken.get_encoding', side_effect=Exception()):
                self.assertEqual(count_tokens('one two three four'), 4)

    def test_encoding_is_resolved_once_per_model(self):
        _encoding_for.cache_clear()
        self.addCleanup(_encoding_for.cache_clear)
        fake_enc = MagicMock()
        fake_enc.encode.side_effect = lambda s: list(s.split())
        with patch('ai_translate.translation_client.tiktoken.encoding_for_model',
                   return_value=fake_enc) as mock_lookup:
            count_tokens('one two', 'gpt-4o')
            count_tokens('three four five', 'gpt-4o')
        self.assertEqual(mock_lookup.call_count, 1)


class TestOpenAITranslator(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.client = MagicMock()
        self.client.chat.completions.create = AsyncMock()
        self.translator = OpenAITranslator(
            client=self.client,
            model_name="test-model",
            rate_limiter=AsyncLimiter(max_rate=1000, time_period=1),
            language_names={"de": "German"}
        )
        patcher = patch('ai_translate.translation_client.count_tokens', return_value=10)
        patcher.start()
        self.addCleanup(patcher.stop)

    async def test_translate_sends_payload_and_parses_answer(self):
        self.client.chat.completions.create.return_value = _chat_response('{"idx_0_a": "Hallo {{name}}"}')

        result = await self.translator.translate({"idx_0_a": "Hello {{name}}"}, "de")

        self.assertEqual(result, {"idx_0_a": "Hallo {{name}}"})
        kwargs = self.client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs['model'], "test-model")
        self.assertEqual(kwargs['response_format'], {"type": "json_object"})
        self.assertEqual(kwargs['temperature'], 0.1)
        self.assertIn("German (de)", kwargs['messages'][0]['content'])
        self.assertEqual(json.loads(kwargs['messages'][1]['content']), {"idx_0_a": "Hello {{name}}"})

    async def test_unknown_language_is_described_by_code(self):
        self.client.chat.completions.create.return_value = _chat_response('{}')
        await self.translator.translate({"idx_0_a": "Hi"}, "xx")
        system_prompt = self.client.chat.completions.create.call_args.kwargs['messages'][0]['content']
        self.assertIn("[ xx ]", system_prompt)

    async def test_fenced_answer_is_accepted(self):
        self.client.chat.completions.create.return_value = _chat_response('```json\n{"idx_0_a": "Hallo"}\n```')
        self.assertEqual(await self.translator.translate({"idx_0_a": "Hello"}, "de"), {"idx_0_a": "Hallo"})

    async def test_no_choices_raises(self):
        self.client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        with self.assertRaises(TranslationResponseError):
            await self.translator.translate({"idx_0_a": "Hello"}, "de")

    async def test_large_request_logs_warning(self):
        self.client.chat.completions.create.return_value = _chat_response('{"idx_0_a": "Hallo"}')
        with patch('ai_translate.translation_client.count_tokens', return_value=10_000):
            with self.assertLogs('ai_translate.translation_client', level='WARNING') as logs:
                await self.translator.translate({"idx_0_a": "Hello"}, "de")
        self.assertIn("smaller batch size", logs.output[0])

    async def test_tokens_are_counted_off_the_event_loop(self):
        self.client.chat.completions.create.return_value = _chat_response('{"idx_0_a": "Hallo"}')
        counting_threads = []

        def record_thread(text, model_name):
            counting_threads.append(threading.get_ident())
            return 10

        with patch('ai_translate.translation_client.count_tokens', side_effect=record_thread):
            await self.translator.translate({"idx_0_a": "Hello"}, "de")

        self.assertEqual(len(counting_threads), 1)
        self.assertNotEqual(counting_threads[0], threading.get_ident())


if __name__ == '__main__':
    unittest.main()
