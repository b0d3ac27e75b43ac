"""Decision HTTP server using aiohttp."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aiohttp import web

from waypoint.config import DecisionServerConfig
from waypoint.utils.logging import get_logger
from waypoint.webhooks.handlers import SECRET_HEADER, parse_decision, validate_generic_secret

if TYPE_CHECKING:
    from waypoint.core.confirmation import ConfirmationGateway

log = get_logger(__name__)


class DecisionServer:
    """Receives confirmation decisions and delivers them to the gateway."""

    def __init__(self, config: DecisionServerConfig, gateway: ConfirmationGateway) -> None:
        self._config = config
        self._gateway = gateway
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if not self._config.secret:
            log.warning(
                "decision_server_no_secret",
                msg="No secret configured; all decisions will be rejected. Set decisions.secret in config.",
            )
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind, self._config.port)
        await site.start()
        log.info("decision_server_started", bind=self._config.bind, port=self._config.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("decision_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/decisions", self._handle_decision)
        app.router.add_get("/confirmations", self._handle_list)
        return app

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_decision(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.json_response({"error": "Invalid secret"}, status=401)

        try:
            payload: Any = await request.json()
        except ValueError:
            return web.json_response({"error": "Invalid JSON"}, status=400)

        try:
            decision = parse_decision(payload)
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        accepted = self._gateway.decide(decision.task_id, decision.step_id, decision.approved)
        log.info(
            "decision_received",
            task_id=decision.task_id,
            step_id=decision.step_id,
            approved=decision.approved,
            accepted=accepted,
        )
        return web.json_response({"accepted": accepted})

    async def _handle_list(self, request: web.Request) -> web.Response:
        if not self._authorized(request):
            return web.json_response({"error": "Invalid secret"}, status=401)
        return web.json_response({"pending": [r.to_dict() for r in self._gateway.pending()]})

    def _authorized(self, request: web.Request) -> bool:
        return validate_generic_secret(request.headers.get(SECRET_HEADER, ""), self._config.secret)
