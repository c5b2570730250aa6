"""
HTTP bridge transport.

Yura does not implement the WhatsApp Web protocol.  A separate bridge process
(for example a small Baileys service) owns the WhatsApp session, pushes every
inbound message to Yura's webhook and exposes a tiny REST API for outbound
actions.  This module is Yura's side of that contract.

Inbound (aiohttp server run by Yura):
  POST /events   — one event ``{"key": …, "message": …}`` or a batch
                   ``{"messages": [event, …]}``; answered 202 immediately,
                   each event is handled in its own task
  GET  /health   — liveness probe

Outbound (httpx client calling the bridge):
  GET  /me       — ``{"id": "<own jid>"}``
  POST /send     — ``{"chatId", "text", "quoted"}``
  POST /presence — ``{"chatId", "state": "composing" | "paused"}``
  POST /media    — ``{"event": <event>}`` → raw media bytes

When a bridge token is configured it is sent as ``X-Bridge-Token`` on every
outbound request and required on every inbound one.  A bridge error reply with
JSON ``{"code": "session"}`` means Signal session trouble and is raised as
TransientProtocolError.
"""

from __future__ import annotations

import asyncio
import hmac
import time
from typing import TYPE_CHECKING, Any, Mapping

import httpx
import structlog
from aiohttp import web

from yura.channels.base import BaseTransport
from yura.harness.errors import TransientProtocolError, TransportError
from yura.types import PresenceState

if TYPE_CHECKING:
    from yura.config import WhatsAppConfig

logger = structlog.get_logger(__name__)

TOKEN_HEADER = "X-Bridge-Token"
SESSION_ERROR_CODE = "session"


class BridgeTransport(BaseTransport):
    """Transport backed by an external WhatsApp bridge over HTTP.

    Lifecycle: create → start() → (events flow) → stop()
    """

    def __init__(
        self,
        config: WhatsAppConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._self_jid: str | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._started_at: float = 0.0

        # aiohttp internals
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    # ------------------------------------------------------------------
    # BaseTransport interface
    # ------------------------------------------------------------------

    @property
    def self_jid(self) -> str | None:
        return self._self_jid

    async def start(self) -> None:
        if self._client is None:
            headers = {TOKEN_HEADER: self._config.bridge_token} if self._config.bridge_token else {}
            self._client = httpx.AsyncClient(
                base_url=self._config.bridge_url,
                headers=headers,
                timeout=self._config.bridge_timeout_seconds,
            )
            self._owns_client = True

        await self.refresh_self_jid()

        self._app = self.build_app()
        self._runner = web.AppRunner(self._app, access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._config.webhook_host, self._config.webhook_port)
        await self._site.start()
        self._started_at = time.monotonic()
        logger.info(
            "bridge.started",
            host=self._config.webhook_host,
            port=self._config.webhook_port,
            bridge_url=self._config.bridge_url,
            self_jid=self._self_jid,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self._site is not None:
            await self._site.stop()
            self._site = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        self._app = None

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        logger.info("bridge.stopped")

    async def send_text(
        self,
        chat_id: str,
        text: str,
        *,
        quoted: Mapping[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"chatId": chat_id, "text": text}
        if quoted is not None:
            payload["quoted"] = dict(quoted)
        await self._request("POST", "/send", json=payload)

    async def set_presence(self, chat_id: str, state: PresenceState) -> None:
        await self._request("POST", "/presence", json={"chatId": chat_id, "state": state})

    async def download_media(self, event: Mapping[str, Any]) -> bytes:
        response = await self._request("POST", "/media", json={"event": dict(event)})
        return response.content

    # ------------------------------------------------------------------
    # Outbound helpers
    # ------------------------------------------------------------------

    async def refresh_self_jid(self) -> str | None:
        """Ask the bridge who we are; a failure leaves the JID unknown."""
        try:
            response = await self._request("GET", "/me")
            data = response.json()
        except (TransportError, ValueError) as exc:
            logger.warning("bridge.self_jid_unavailable", error=str(exc))
            return None
        jid = data.get("id") if isinstance(data, Mapping) else None
        if isinstance(jid, str) and jid.strip():
            self._self_jid = jid.strip()
        return self._self_jid

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            raise TransportError("bridge transport is not started")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"bridge request {method} {path} failed: {exc}") from exc
        if response.is_error:
            self._raise_for_bridge_error(method, path, response)
        return response

    @staticmethod
    def _raise_for_bridge_error(method: str, path: str, response: httpx.Response) -> None:
        detail = response.text
        code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, Mapping):
            detail = str(body.get("error") or detail)
            code = body.get("code")
        message = f"bridge {method} {path} returned {response.status_code}: {detail}"
        if code == SESSION_ERROR_CODE:
            raise TransientProtocolError(message)
        raise TransportError(message)

    # ------------------------------------------------------------------
    # Inbound webhook
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/events", self._handle_events)
        app.router.add_get("/health", self._handle_health)
        return app

    def _authorized(self, request: web.Request) -> bool:
        expected = self._config.bridge_token
        if not expected:
            return True
        supplied = request.headers.get(TOKEN_HEADER, "")
        return hmac.compare_digest(supplied.encode(), expected.encode())

    async def _handle_health(self, request: web.Request) -> web.Response:
        uptime = time.monotonic() - self._started_at if self._started_at else 0.0
        return web.json_response({
            "status": "ok",
            "uptime": round(uptime, 1),
            "self_jid": self._self_jid,
            "in_flight": len(self._tasks),
        })

    async def _handle_events(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            logger.warning("bridge.unauthorized_event", remote=request.remote)
            return web.json_response({"error": "unauthorized"}, status=401)
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"error": "invalid json"}, status=400)

        if isinstance(payload, Mapping) and isinstance(payload.get("messages"), list):
            events = payload["messages"]
        else:
            events = [payload]

        accepted = 0
        for event in events:
            if isinstance(event, Mapping):
                self._dispatch(event)
                accepted += 1
        return web.json_response({"accepted": accepted}, status=202)

    def _dispatch(self, event: Mapping[str, Any]) -> None:
        task = asyncio.create_task(self._run_handler(event), name="bridge-event")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_handler(self, event: Mapping[str, Any]) -> None:
        if self._handler is None:
            logger.warning("bridge.no_event_handler")
            return
        if self._self_jid is None:
            await self.refresh_self_jid()
        try:
            await self._handler(event)
        except Exception as exc:
            logger.error("bridge.event_handler_failed", error=str(exc), exc_info=True)
