from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

import requests

from ..config import REQUEST, RETRY
from ..utils.utilities import with_retries


@dataclass
class HTTPClient:
    """
    Small helper to standardize request + retry + stats counting.

    Provider clients pass in their own `requests.Session` and `stats` dict. Non-2xx responses
    raise inside the retried callable, so they are retried like transport errors.
    """

    session: requests.Session
    stats: dict[str, Any] | None = None

    def _bump(self, key: str) -> None:
        if self.stats is None:
            return
        self.stats[key] = int(self.stats.get(key, 0) or 0) + 1

    def _bump_ms(self, key: str, elapsed_ms: int) -> None:
        if self.stats is None:
            return
        ms_key = f"{key}_ms"
        self.stats[ms_key] = int(self.stats.get(ms_key, 0) or 0) + int(elapsed_ms)

    @staticmethod
    def format_timing(stats: dict[str, Any] | None, *, key: str) -> str:
        """
        Format request counter and cumulative time for a key tracked via `_bump()`.
        """
        if not stats:
            return f"{key}=0"
        count = int(stats.get(key, 0) or 0)
        ms = int(stats.get(f"{key}_ms", 0) or 0)
        return f"{key}={count} ({ms}ms)"

    def get_text(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        parse: Callable[[str], Any] | None = None,
        timeout_s: float = REQUEST.timeout_s,
        attempts: int = RETRY.attempts,
        backoff_step_s: float = RETRY.backoff_step_s,
        counter_key: str = "http_get",
        context: str,
        on_fail_return: Any = None,
    ) -> Any:
        """
        GET a text body. When `parse` is given it runs inside the retry loop, so a body that
        fails to parse is retried like a failed request.
        """

        def _request() -> Any:
            self._bump(counter_key)
            kwargs: dict[str, Any] = {"timeout": timeout_s}
            if params is not None:
                kwargs["params"] = params
            if headers is not None:
                kwargs["headers"] = headers
            t0 = time.perf_counter()
            r = self.session.get(url, **kwargs)
            t1 = time.perf_counter()
            self._bump_ms(counter_key, int(round((t1 - t0) * 1000.0)))
            r.raise_for_status()
            return parse(r.text) if parse is not None else r.text

        return with_retries(
            _request,
            attempts=attempts,
            backoff_step_s=backoff_step_s,
            on_fail_return=on_fail_return,
            context=context,
            retry_stats=self.stats,
        )

    def post_json(
        self,
        url: str,
        *,
        json_body: Any | None = None,
        headers: dict[str, str] | None = None,
        timeout_s: float = REQUEST.timeout_s,
        attempts: int = RETRY.attempts,
        backoff_step_s: float = RETRY.backoff_step_s,
        counter_key: str = "http_post",
        context: str,
        on_fail_return: Any = None,
    ) -> Any:
        def _request() -> Any:
            self._bump(counter_key)
            kwargs: dict[str, Any] = {"timeout": timeout_s}
            if headers is not None:
                kwargs["headers"] = headers
            if json_body is not None:
                kwargs["json"] = json_body
            t0 = time.perf_counter()
            r = self.session.post(url, **kwargs)
            t1 = time.perf_counter()
            self._bump_ms(counter_key, int(round((t1 - t0) * 1000.0)))
            r.raise_for_status()
            return r.json()

        return with_retries(
            _request,
            attempts=attempts,
            backoff_step_s=backoff_step_s,
            on_fail_return=on_fail_return,
            context=context,
            retry_stats=self.stats,
        )


@dataclass
class HTTPRequestDefaults:
    timeout_s: float = REQUEST.timeout_s
    attempts: int = RETRY.attempts
    backoff_step_s: float = RETRY.backoff_step_s
    headers: dict[str, str] | None = None
    counter_key: str = "http_get"
    context_prefix: str | None = None


@dataclass
class ConfiguredHTTPClient:
    """
    Convenience wrapper over HTTPClient that carries default parameters.

    This keeps provider code concise by instantiating a per-endpoint client configured with
    its headers, counter key, retry policy, etc.
    """

    http: HTTPClient
    defaults: HTTPRequestDefaults

    def _ctx(self, context: str) -> str:
        prefix = self.defaults.context_prefix
        if prefix:
            return f"{prefix}{': ' if context else ''}{context}"
        return context

    def get_text(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        parse: Callable[[str], Any] | None = None,
        counter_key: str | None = None,
        context: str = "",
        on_fail_return: Any = None,
    ) -> Any:
        return self.http.get_text(
            url,
            params=params,
            headers=self.defaults.headers,
            parse=parse,
            timeout_s=self.defaults.timeout_s,
            attempts=self.defaults.attempts,
            backoff_step_s=self.defaults.backoff_step_s,
            counter_key=counter_key or self.defaults.counter_key,
            context=self._ctx(context),
            on_fail_return=on_fail_return,
        )

    def post_json(
        self,
        url: str,
        *,
        json_body: Any | None = None,
        counter_key: str | None = None,
        context: str = "",
        on_fail_return: Any = None,
    ) -> Any:
        return self.http.post_json(
            url,
            json_body=json_body,
            headers=self.defaults.headers,
            timeout_s=self.defaults.timeout_s,
            attempts=self.defaults.attempts,
            backoff_step_s=self.defaults.backoff_step_s,
            counter_key=counter_key or self.defaults.counter_key,
            context=self._ctx(context),
            on_fail_return=on_fail_return,
        )
