from __future__ import annotations

import json
import logging
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable, Dict, List, Mapping

from ido_extractor.domain.contracts import ApiConfig, UserCredentials
from ido_extractor.ido.cache import ValueCache
from ido_extractor.observability import observe_ido_cache_hit, observe_ido_request


logger = logging.getLogger("ido_extractor.ido.client")

TEST_CONNECTION_TIMEOUT_SECONDS = 10
_RETRYABLE_STATUS = {408, 429}


class IdoError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code in _RETRYABLE_STATUS


def encode_query(params: Mapping[str, Any]) -> str:
    # The IDO service rejects "+" for spaces, so every component is percent-encoded.
    return "&".join(
        f"{urllib.parse.quote(str(key), safe='')}={urllib.parse.quote(str(value), safe='')}"
        for key, value in params.items()
    )


class IdoClient:
    def __init__(
        self,
        api: ApiConfig,
        user: UserCredentials,
        *,
        cache: ValueCache | None = None,
        verify_ssl: bool = True,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.api = api
        self.user = user
        self.cache = cache or ValueCache()
        self.verify_ssl = bool(verify_ssl)
        self._sleep = sleep or time.sleep
        self._token: str | None = None

    @property
    def base_url(self) -> str:
        return str(self.api.base_url or "").strip().rstrip("/")

    def _service_url(self, *segments: str) -> str:
        path = "/".join(urllib.parse.quote(str(segment), safe="") for segment in segments)
        return f"{self.base_url}/IDORequestService/ido/{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            "X-Infor-MongooseConfig": self.api.config,
            "Authorization": self._token or "",
            "accept": "application/json",
            "Content-Type": "application/json",
        }

    def _send(self, url: str, headers: Mapping[str, str], timeout: float) -> str:
        request = urllib.request.Request(url, headers=dict(headers), method="GET")
        context = None
        if not self.verify_ssl:
            context = ssl._create_unverified_context()
        try:
            with urllib.request.urlopen(request, timeout=timeout, context=context) as response:
                return response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
            raise IdoError(f"IDO HTTP {exc.code}: {error_body[:200]}", status_code=exc.code) from exc
        except urllib.error.URLError as exc:
            raise IdoError(f"IDO connection error: {exc.reason}") from exc
        except OSError as exc:
            raise IdoError(f"IDO connection error: {exc}") from exc

    def _get_json(self, operation: str, url: str, headers: Mapping[str, str], *, timeout: float | None = None) -> Any:
        attempts = max(0, int(self.api.retry_count or 0)) + 1
        delay = max(0.0, float(self.api.retry_delay or 0))
        effective_timeout = timeout if timeout is not None else max(1, int(self.api.timeout or 30))

        for attempt in range(1, attempts + 1):
            started = time.perf_counter()
            try:
                body = self._send(url, headers, effective_timeout)
            except IdoError as exc:
                elapsed_ms = (time.perf_counter() - started) * 1000.0
                observe_ido_request(operation, "error", elapsed_ms)
                if not exc.retryable or attempt >= attempts:
                    raise
                logger.warning(
                    "ido_request_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "status_code": exc.status_code,
                        "error": str(exc),
                    },
                )
                self._sleep(delay * attempt)
                continue

            observe_ido_request(operation, "success", (time.perf_counter() - started) * 1000.0)
            if not body:
                return {}
            try:
                return json.loads(body)
            except json.JSONDecodeError as exc:
                raise IdoError("IDO returned invalid JSON.") from exc
        raise IdoError("IDO request was not attempted.")

    def reset_token(self) -> None:
        self._token = None

    def get_auth_headers(self) -> Dict[str, str]:
        if self._token:
            return self._headers()

        url = self._service_url("token", self.api.config, self.user.username, self.user.password)
        try:
            payload = self._get_json("token", url, {"accept": "application/json"})
        except IdoError as exc:
            raise IdoError(f"Authentication failed: {exc}", status_code=exc.status_code) from exc

        token = payload.get("Token") if isinstance(payload, dict) else None
        if not token:
            raise IdoError("Authentication failed: response did not include a token.")
        self._token = str(token)
        logger.info("ido_token_acquired", extra={"ido_config": self.api.config, "ido_user": self.user.username})
        return self._headers()

    def _authorized_get(self, operation: str, url: str) -> Any:
        headers = self.get_auth_headers()
        try:
            return self._get_json(operation, url, headers)
        except IdoError as exc:
            if exc.status_code != 401:
                raise
            logger.info("ido_token_expired", extra={"operation": operation})
            self.reset_token()
            return self._get_json(operation, url, self.get_auth_headers())

    def load_collection(
        self,
        ido_name: str,
        properties: str,
        record_cap: int = 100,
        additional_params: Mapping[str, Any] | None = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"properties": properties, "recordCap": int(record_cap)}
        for key, value in (additional_params or {}).items():
            params[str(key)] = value
        url = f"{self._service_url('load', ido_name)}?{encode_query(params)}"
        payload = self._authorized_get("load_collection", url)
        if not isinstance(payload, dict):
            raise IdoError("IDO returned an unexpected payload.")
        return payload

    def get_distinct_values(
        self,
        ido_name: str,
        property_name: str,
        record_cap: int = 1000,
        cache_duration: int = 300,
    ) -> List[str]:
        cache_key = f"{ido_name}_{property_name}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            observe_ido_cache_hit()
            return cached

        payload = self.load_collection(
            ido_name,
            property_name,
            record_cap,
            {"distinct": "true"},
        )
        items = payload.get("Items") or []
        values = set()
        for item in items:
            if not isinstance(item, dict):
                continue
            value = str(item.get(property_name) or "").strip()
            if value:
                values.add(value)
        ordered = sorted(values)
        self.cache.set(cache_key, ordered, cache_duration)
        return ordered

    def test_connection(self) -> tuple[bool, str | None]:
        try:
            headers = self.get_auth_headers()
            url = self._service_url("token", self.api.config)
            started = time.perf_counter()
            try:
                self._send(url, headers, TEST_CONNECTION_TIMEOUT_SECONDS)
            except IdoError:
                observe_ido_request("test_connection", "error", (time.perf_counter() - started) * 1000.0)
                raise
            observe_ido_request("test_connection", "success", (time.perf_counter() - started) * 1000.0)
        except IdoError as exc:
            logger.warning("ido_connection_test_failed", extra={"error": str(exc), "status_code": exc.status_code})
            return False, str(exc)
        return True, None

    def clear_cache(self) -> None:
        self.cache.clear()

    def clear_cache_for_ido(self, ido_name: str) -> int:
        return self.cache.clear_prefix(f"{ido_name}_")
