import asyncio
from types import SimpleNamespace

from seocheck_agent import recommendations
from seocheck_agent.checks import check_keyphrase_in_title
from seocheck_agent.config import Settings
from seocheck_agent.models import ExtractedDocument
from seocheck_agent.recommendations import GeminiRecommender, build_prompt


class FakeModels:
    def __init__(self, text=None, error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def _client(models):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


def _failed_title_check():
    return check_keyphrase_in_title(ExtractedDocument(url="https://example.com/a"), "running shoes")


def test_prompt_names_the_check_and_keyphrase():
    prompt = build_prompt(_failed_title_check(), "running shoes")
    assert "Keyphrase in Title" in prompt
    assert "No title found on the page." in prompt
    assert "'running shoes'" in prompt


def test_recommendation_text_is_cleaned():
    models = FakeModels(text="```text\n  Add 'running shoes'\n to the   title.  \n```")
    recommender = GeminiRecommender(_client(models), "gemini-test")
    text = asyncio.run(recommender(_failed_title_check(), "running shoes"))
    assert text == "Add 'running shoes' to the title."
    assert models.calls[0]["model"] == "gemini-test"
    assert "running shoes" in models.calls[0]["contents"]


def test_long_recommendation_is_capped():
    models = FakeModels(text="word " * 500)
    text = asyncio.run(GeminiRecommender(_client(models), "m")(_failed_title_check(), "x"))
    assert len(text) <= recommendations.MAX_RECOMMENDATION_CHARS + 3
    assert text.endswith("...")


def test_client_error_returns_none():
    models = FakeModels(error=RuntimeError("quota exceeded"))
    assert asyncio.run(GeminiRecommender(_client(models), "m")(_failed_title_check(), "x")) is None


def test_empty_answer_returns_none():
    models = FakeModels(text="   ")
    assert asyncio.run(GeminiRecommender(_client(models), "m")(_failed_title_check(), "x")) is None


def test_slow_answer_times_out_to_none():
    models = FakeModels(text="late", delay=1.0)
    recommender = GeminiRecommender(_client(models), "m", timeout_s=0.01)
    assert asyncio.run(recommender(_failed_title_check(), "x")) is None


def test_from_settings_is_off_by_default(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    assert GeminiRecommender.from_settings(Settings()) is None


def test_from_settings_needs_an_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    assert GeminiRecommender.from_settings(Settings(ai_recommendations=True)) is None


def test_from_settings_builds_a_client(monkeypatch):
    created = []
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(recommendations.genai, "Client", lambda api_key: created.append(api_key) or "client")
    recommender = GeminiRecommender.from_settings(Settings(ai_recommendations=True, gemini_model="gemini-x"))
    assert created == ["test-key"]
    assert recommender.client == "client"
    assert recommender.model == "gemini-x"
