"""
Fitness provider OAuth flow (implicit grant).

Handles:
- One-time provider API discovery (initialize)
- Interactive consent through an authorization surface
- Single in-flight handshake, origin and state validation, timeout

There is no client secret and no refresh token: the provider returns a
short-lived bearer token straight to the redirect page.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx

from fitsync.config import settings
from fitsync.shared.constants import FIT_SCOPES
from .surface import AuthorizationSurface
from .tokens import Credential, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class InitError(Exception):
    """Provider API could not be loaded. Retryable."""
    pass


class AuthError(Exception):
    """Authorization handshake did not produce a credential."""
    pass


class UserCancelledError(AuthError):
    """User closed the consent surface without finishing."""

    def __init__(self, message: str = "Authorization cancelled"):
        super().__init__(message)


class AuthTimeoutError(AuthError):
    """Consent was not completed in time."""

    def __init__(self, message: str = "Authorization timed out"):
        super().__init__(message)


class ProviderDeniedError(AuthError):
    """Provider reported an explicit error (e.g. access_denied)."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Authorization denied: {message}")


# =============================================================================
# Provider discovery (process-wide)
# =============================================================================

# Loaded at most once per process, like the provider SDK script in a page
_discovery: Optional[dict] = None
_discovery_lock = asyncio.Lock()


async def load_discovery(
    api_key: str,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict:
    """
    Fetch and validate the provider API discovery document once.

    Raises:
        InitError: If the document cannot be loaded or lacks the
            dataset aggregation method
    """
    global _discovery

    if _discovery is not None:
        return _discovery

    async with _discovery_lock:
        if _discovery is not None:
            return _discovery

        client = http_client or httpx.AsyncClient(
            timeout=settings.fit_request_timeout_seconds
        )
        try:
            response = await client.get(
                settings.fit_discovery_url,
                params={"key": api_key}
            )
        except httpx.HTTPError as e:
            raise InitError(f"Failed to load provider API: {e}") from e
        finally:
            if http_client is None:
                await client.aclose()

        if response.status_code != 200:
            logger.error(f"Provider discovery failed: {response.status_code}")
            raise InitError(f"Failed to load provider API: {response.status_code}")

        try:
            document = response.json()
            methods = (
                document["resources"]["users"]["resources"]["dataset"]["methods"]
            )
        except (ValueError, KeyError, TypeError) as e:
            raise InitError("Provider API discovery document is invalid") from e

        if "aggregate" not in methods:
            raise InitError("Provider API does not support dataset aggregation")

        _discovery = document
        logger.info("Provider API discovery loaded")
        return _discovery


def reset_discovery() -> None:
    """Forget the loaded discovery document (next initialize reloads)."""
    global _discovery
    _discovery = None


# =============================================================================
# Authorization Flow
# =============================================================================

class AuthorizationFlow:
    """
    Drives the implicit grant through an authorization surface.

    Usage:
        flow = AuthorizationFlow(surface=LoopbackSurface())
        await flow.initialize(client_id, api_key)
        credential = await flow.authorize()
    """

    def __init__(
        self,
        surface: AuthorizationSurface,
        authorize_url: Optional[str] = None,
        scopes: Optional[list[str]] = None,
        timeout_seconds: Optional[float] = None,
        default_lifetime_seconds: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.surface = surface
        self.authorize_url = authorize_url or settings.fit_authorize_url
        self.scopes = list(scopes or FIT_SCOPES)
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None
            else settings.fit_auth_timeout_seconds
        )
        self.default_lifetime_seconds = (
            default_lifetime_seconds if default_lifetime_seconds is not None
            else settings.fit_default_token_lifetime_seconds
        )
        self._http_client = http_client
        self._clock = clock

        self.client_id: Optional[str] = None
        self._initialized = False
        self._pending: Optional[asyncio.Task] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def in_progress(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def initialize(self, client_id: str, api_key: str) -> bool:
        """
        Prepare the flow. Idempotent.

        Raises:
            InitError: If client id is missing or the provider API
                cannot be loaded (a later call retries)
        """
        if self._initialized:
            return True

        if not client_id:
            raise InitError("Fitness provider client id is not configured")

        await load_discovery(api_key, self._http_client)

        self.client_id = client_id
        self._initialized = True
        logger.info("Fitness authorization initialized")
        return True

    def get_authorization_url(self, state: str) -> str:
        """
        Build the consent URL.

        Scopes (fixed):
        - fitness.activity.read
        - fitness.body.read
        - fitness.heart_rate.read
        - fitness.location.read
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.surface.redirect_uri,
            "response_type": "token",
            "scope": " ".join(self.scopes),
            "state": state,
            "include_granted_scopes": "true",
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def authorize(self) -> Credential:
        """
        Run the interactive handshake.

        Concurrent callers share the one pending handshake.

        Raises:
            InitError: If initialize() has not succeeded
            UserCancelledError: Surface closed before completion
            AuthTimeoutError: No result within the timeout
            ProviderDeniedError: Provider returned an error
        """
        if not self._initialized:
            raise InitError("Fitness authorization is not initialized")

        if self._pending is None or self._pending.done():
            self._pending = asyncio.create_task(self._handshake())

        # shield: one caller being cancelled must not abort the others
        return await asyncio.shield(self._pending)

    async def sign_out(self) -> None:
        """
        Implicit grant tokens are not revocable here; just stop any handshake.

        Waits for an aborted handshake to unwind so its listener is closed.
        """
        pending = self._pending
        if pending is not None and not pending.done():
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
        await self.surface.close()
        logger.info("Signed out from fitness provider")

    # -------------------------------------------------------------------------
    # Handshake
    # -------------------------------------------------------------------------

    async def _handshake(self) -> Credential:
        loop = asyncio.get_running_loop()
        result: asyncio.Future = loop.create_future()
        state = secrets.token_urlsafe(32)
        trusted_origin = None

        def on_message(origin: Optional[str], payload: dict[str, Any]) -> None:
            if result.done():
                return
            if trusted_origin is None or origin != trusted_origin:
                logger.debug(f"Ignoring authorization message from origin {origin!r}")
                return
            if payload.get("state") != state:
                logger.debug("Ignoring authorization message with unknown state")
                return

            if payload.get("error"):
                message = payload.get("error_description") or payload["error"]
                result.set_exception(ProviderDeniedError(str(message)))
            elif payload.get("access_token"):
                result.set_result(self._credential_from(payload))
            else:
                logger.debug("Ignoring authorization message without token or error")

        def on_closed() -> None:
            if not result.done():
                result.set_exception(UserCancelledError())

        logger.info("Opening fitness provider consent")
        try:
            await self.surface.start(on_message, on_closed)
            # origin and redirect URI are only final once the surface listens
            trusted_origin = self.surface.origin
            await self.surface.launch(self.get_authorization_url(state))
            try:
                credential = await asyncio.wait_for(result, self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("Fitness authorization timed out")
                raise AuthTimeoutError()
        finally:
            await self.surface.close()

        logger.info(f"Fitness provider authorized until {credential.expires_at}")
        return credential

    def _credential_from(self, payload: dict[str, Any]) -> Credential:
        try:
            lifetime = int(payload.get("expires_in") or self.default_lifetime_seconds)
        except (TypeError, ValueError):
            lifetime = self.default_lifetime_seconds

        return Credential(
            access_token=payload["access_token"],
            expires_at=self._clock() + timedelta(seconds=lifetime),
            scope=payload.get("scope"),
        )
