from __future__ import annotations

from typing import Optional, Sequence, Tuple

from openai import OpenAI

DEFAULT_MODEL = "gpt-4.1-mini"


class OpenAIClassifier:
    """Classifier collaborator backed by the OpenAI Responses API in JSON mode."""

    def __init__(self, model: str = DEFAULT_MODEL, client: Optional[OpenAI] = None):
        self.model = model
        self._client = client

    @property
    def client(self) -> OpenAI:
        # Created lazily so OPENAI_API_KEY is only required when a call is made.
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def complete(self, prompt: str) -> str:
        resp = self.client.responses.create(
            model=self.model,
            input=[
                {
                    "role": "system",
                    "content": "You classify emails. Return ONLY a JSON object.",
                },
                {"role": "user", "content": prompt},
            ],
            text={"format": {"type": "json_object"}},
        )
        return resp.output_text


class OpenAISummarizer:
    """Summarizer collaborator: one or two sentences across several social updates."""

    def __init__(self, model: str = DEFAULT_MODEL, client: Optional[OpenAI] = None):
        self.model = model
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def summarize(self, platform: str, items: Sequence[Tuple[str, str, str]]) -> str:
        lines = "\n".join(
            f"- Subject: {subject} | From: {sender} | Summary: {summary}"
            for subject, sender, summary in items
        )
        resp = self.client.responses.create(
            model=self.model,
            input=[
                {
                    "role": "system",
                    "content": "You write terse inbox digests. Plain text, 1-2 sentences, no lists.",
                },
                {
                    "role": "user",
                    "content": f"Summarize these {platform} notifications in 1-2 sentences:\n{lines}",
                },
            ],
        )
        return resp.output_text
