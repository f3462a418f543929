from __future__ import annotations
import json
import logging
import re

from openai import APIConnectionError, OpenAI

from ai_newsletter.config.settings import Settings
from ai_newsletter.models.errors import NetworkError

_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)

log = logging.getLogger(__name__)


class LLMClient:
    """
    OpenAI Responses API client returning parsed JSON objects.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.model = settings.openai_model
        self._client: OpenAI | None = None

    @property
    def client(self) -> OpenAI:
        # created lazily so a missing key surfaces as ConfigurationError, not at import
        if self._client is None:
            self.settings.require("openai_api_key")
            self._client = OpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.llm_timeout_seconds,
            )
        return self._client

    def _extract_json(self, text: str) -> dict:
        text = (text or "").strip()

        # direct JSON
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        # find first {...}
        m = _JSON_RE.search(text)
        if not m:
            raise ValueError(f"Model did not return JSON.\nRaw output:\n{text[:2000]}")

        block = m.group(0)
        try:
            return json.loads(block)
        except json.JSONDecodeError as e:
            raise ValueError(f"Couldn't parse JSON block:\n{block[:2000]}") from e

    def chat_json(self, system: str, user: str, web_search: bool = False) -> dict:
        """
        Runs one model turn and parses its JSON output.
        With ``web_search`` the hosted search tool is available and the model
        decides how many searches to issue.
        """
        kwargs = {
            "model": self.model,
            "instructions": f"{system}\nReturn ONLY JSON.",
            "input": user,
        }
        if web_search:
            kwargs["tools"] = [{"type": "web_search"}]

        log.debug("LLM call model=%s web_search=%s", self.model, web_search)
        client = self.client
        try:
            resp = client.responses.create(**kwargs)
        except APIConnectionError as e:
            raise NetworkError("openai", str(e)) from e

        return self._extract_json(resp.output_text)
