from __future__ import annotations

import base64
import ssl
from typing import Any

import httpx
import structlog
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from circuitbreaker import CircuitBreaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from metrics_usage import __version__
from metrics_usage.config.settings import (
    AuthorizationSettings,
    HTTPClientSettings,
    OAuthSettings,
    TLSSettings,
)
from metrics_usage.core.errors import ConfigurationError

logger = structlog.get_logger()

DEFAULT_USER_AGENT = f"metrics-usage/{__version__}"
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class RetryableHTTPError(Exception):
    """Network failure or a status worth trying again."""


class PermanentHTTPError(Exception):
    """The server rejected the request; retrying will not help."""


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUSES


class BaseHTTPClient:
    """JSON-over-HTTP client shared by the Prometheus and peer clients.

    Retryable failures are retried with exponential backoff. Each client
    owns its circuit breaker: after ``circuit_failure_threshold`` failed
    calls (retries exhausted) the client fails fast with
    ``CircuitBreakerError`` for ``circuit_recovery_timeout`` seconds.

    With ``oauth`` set, an access token is obtained through the client
    credentials grant, kept between requests and fetched again once expired.
    """

    def __init__(
        self,
        base_url: str,
        *,
        username: str | None = None,
        password: str | None = None,
        bearer_token: str | None = None,
        authorization: AuthorizationSettings | None = None,
        oauth: OAuthSettings | None = None,
        tls: TLSSettings | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        circuit_failure_threshold: int = 5,
        circuit_recovery_timeout: int = 60,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._headers = _build_headers(user_agent, username, password, bearer_token, authorization)
        self._verify = _ssl_context(tls)
        self._oauth = oauth
        self._oauth_token: dict[str, Any] | None = None
        breaker = CircuitBreaker(
            failure_threshold=circuit_failure_threshold,
            recovery_timeout=circuit_recovery_timeout,
            expected_exception=RetryableHTTPError,
            name=self._base_url,
        )
        self._send_guarded = breaker(self._send_with_retry)

    @classmethod
    def from_settings(cls, settings: HTTPClientSettings, **kwargs: Any) -> Any:
        if not settings.url:
            raise ValueError("HTTP client settings without URL")
        return cls(
            settings.url,
            username=settings.username,
            password=settings.password,
            bearer_token=settings.bearer_token,
            authorization=settings.authorization,
            oauth=settings.oauth,
            tls=settings.tls_config,
            timeout=settings.timeout,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self._send_guarded("GET", path, params=params)

    async def post(self, path: str, *, json: Any = None) -> Any:
        return await self._send_guarded("POST", path, json=json)

    async def _send_with_retry(self, method: str, path: str, **kwargs: Any) -> Any:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RetryableHTTPError),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=2, min=1, max=30),
            reraise=True,
        )
        return await retrying(self._send, method, path, **kwargs)

    def _open_client(self) -> httpx.AsyncClient:
        if self._oauth is None:
            return httpx.AsyncClient(timeout=self._timeout, verify=self._verify)
        return AsyncOAuth2Client(
            client_id=self._oauth.client_id,
            client_secret=self._oauth.client_secret,
            scope=" ".join(self._oauth.scopes) or None,
            token=self._oauth_token,
            token_endpoint=self._oauth.token_url,
            grant_type="client_credentials",
            timeout=self._timeout,
            verify=self._verify,
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with self._open_client() as client:
                if isinstance(client, AsyncOAuth2Client):
                    if not client.token:
                        await client.fetch_token()
                    response = await client.request(
                        method, url, params=params, json=json, headers=self._headers
                    )
                    # the token may have been renewed during the request
                    self._oauth_token = client.token
                else:
                    response = await client.request(
                        method, url, params=params, json=json, headers=self._headers
                    )
        except (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError) as exc:
            logger.warning("http_network_error", method=method, url=url, error=str(exc))
            raise RetryableHTTPError(str(exc)) from exc
        except httpx.HTTPStatusError as exc:
            # raised by the token request only
            status_code = exc.response.status_code
            logger.warning("oauth_token_error", status=status_code, url=str(exc.request.url))
            if is_retryable_status(status_code):
                raise RetryableHTTPError(f"token endpoint HTTP {status_code}") from exc
            raise PermanentHTTPError(f"token endpoint HTTP {status_code}") from exc
        except AuthlibBaseError as exc:
            logger.error("oauth_token_error", url=url, error=str(exc))
            raise PermanentHTTPError(f"OAuth token request failed: {exc}") from exc

        if is_retryable_status(response.status_code):
            logger.warning("http_retryable_error", status=response.status_code, method=method, url=url)
            raise RetryableHTTPError(f"HTTP {response.status_code}: {response.text}")
        if response.is_error:
            logger.error("http_permanent_error", status=response.status_code, method=method, url=url)
            if response.status_code == 401:
                # an access token revoked before its expiry
                self._oauth_token = None
            raise PermanentHTTPError(f"HTTP {response.status_code}: {response.text}")
        return response.json() if response.content else {}


def _build_headers(
    user_agent: str,
    username: str | None,
    password: str | None,
    bearer_token: str | None,
    authorization: AuthorizationSettings | None,
) -> dict[str, str]:
    headers = {"Content-Type": "application/json", "User-Agent": user_agent}
    if authorization is not None:
        headers["Authorization"] = f"{authorization.type} {authorization.credentials}"
    elif bearer_token:
        headers["Authorization"] = f"Bearer {bearer_token}"
    elif username and password:
        credentials = base64.b64encode(f"{username}:{password}".encode()).decode()
        headers["Authorization"] = f"Basic {credentials}"
    return headers


def _ssl_context(tls: TLSSettings | None) -> ssl.SSLContext | bool:
    if tls is None:
        return True
    try:
        context = ssl.create_default_context(cafile=tls.ca_file)
        if tls.cert_file:
            context.load_cert_chain(tls.cert_file, tls.key_file)
    except OSError as exc:  # ssl.SSLError included
        raise ConfigurationError(
            "invalid TLS configuration",
            {"ca_file": tls.ca_file, "cert_file": tls.cert_file, "error": str(exc)},
        ) from exc
    if tls.insecure_skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context
