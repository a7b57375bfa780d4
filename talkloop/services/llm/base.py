"""History bookkeeping and retry flow shared by the chat backends."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx

from talkloop.config import ProviderSettings
from talkloop.core.history import ConversationHistory, ConversationMessage
from talkloop.core.retry import RequestExecutor, executor_from_settings
from talkloop.logging_config import get_logger, truncate_for_log
from talkloop.services.exceptions import ConfigurationError, InputValidationError
from talkloop.services.http import HTTPProvider, parse_json

logger: Any = get_logger(__name__)


class BaseChatService(HTTPProvider):
    """Sends the conversation history to a chat endpoint.

    Subclasses provide ``endpoint``, ``build_request(messages)`` and
    ``parse_reply(payload)``; optionally ``auth_headers``/``auth_params``.
    """

    stage = "llm"
    provider = "llm"
    requires_api_key = True
    default_endpoint = ""

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        executor: RequestExecutor | None = None,
        client: httpx.AsyncClient | None = None,
        rollback_on_failure: bool = False,
    ) -> None:
        super().__init__(client=client)
        self._settings = settings
        self._executor = executor or executor_from_settings(
            settings, stage=self.stage, provider=self.provider
        )
        self.rollback_on_failure = rollback_on_failure

    @property
    def endpoint(self) -> str:
        return self._settings.endpoint or self.default_endpoint

    @property
    def model(self) -> str:
        return self._settings.model or ""

    def _api_key(self) -> str:
        key = self._settings.api_key
        if key is None or not key.get_secret_value():
            raise ConfigurationError(f"{self.provider} API key is not configured", stage=self.stage)
        return key.get_secret_value()

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key()}"}

    def auth_params(self) -> dict[str, str]:
        return {}

    def build_request(self, messages: tuple[ConversationMessage, ...]) -> dict[str, Any]:
        raise NotImplementedError

    def parse_reply(self, payload: Any) -> str:
        raise NotImplementedError

    async def converse(
        self,
        history: ConversationHistory,
        user_text: str,
        *,
        is_current: Callable[[], bool] | None = None,
    ) -> str:
        """Run one chat turn against ``history``.

        On failure the user turn stays in the history unless
        ``rollback_on_failure`` is set. A turn that ``is_current`` reports
        as abandoned leaves nothing behind: its user message is removed
        and the reply is not recorded.
        """
        if not user_text or not user_text.strip():
            raise InputValidationError("User text is empty", stage=self.stage)
        if self.requires_api_key:
            self._api_key()

        user_message = history.add_user(user_text)
        logger.info(f"{self.provider} <- {truncate_for_log(user_text)}")

        start = time.perf_counter()
        try:
            reply = await self._executor.run(lambda: self._complete(history))
        except Exception:
            if self.rollback_on_failure or (is_current is not None and not is_current()):
                history.discard(user_message)
                logger.debug(f"{self.provider} failed, rolled back user turn")
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        if is_current is not None and not is_current():
            history.discard(user_message)
            logger.info(f"{self.provider} reply for an abandoned turn dropped ({elapsed_ms:.0f}ms)")
            return reply

        history.add_assistant(reply)
        logger.info(f"{self.provider} -> ({elapsed_ms:.0f}ms) {truncate_for_log(reply)}")
        return reply

    async def _complete(self, history: ConversationHistory) -> str:
        payload = self.build_request(history.snapshot())
        response = await self._send(
            "POST",
            self.endpoint,
            json_body=payload,
            headers=self.auth_headers(),
            params=self.auth_params(),
        )
        return self.parse_reply(parse_json(response, stage=self.stage))
