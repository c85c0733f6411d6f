import logging
from decimal import Decimal, InvalidOperation

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from core.exceptions import InvalidParameters, PlinkoError
from .conf import PlinkoConfig
from .services import FEED_GROUP, commit_round, settle_wager

logger = logging.getLogger(__name__)


class PlinkoConsumer(AsyncJsonWebsocketConsumer):
    """
    Events in:  ``commit`` {client_seed?}
                ``drop``   {bet_amount, risk, rows, token_id?, client_seed?, commitment_id?}
    Events out: ``connected``, ``commitment``, ``bet_result``, ``round_settled``, ``error``
    """

    async def connect(self):
        if self.scope["user"].is_anonymous:
            await self.close()
            return

        self.user = self.scope["user"]
        await self.channel_layer.group_add(FEED_GROUP, self.channel_name)
        await self.accept()
        await self.send_json({"event": "connected", "data": {"user_id": self.user.id}})

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(FEED_GROUP, self.channel_name)

    async def receive_json(self, content, **kwargs):
        event = content.get("event")
        data = content.get("data") or {}

        if event == "drop":
            await self.handle_drop(data)
        elif event == "commit":
            await self.handle_commit(data)
        else:
            await self.send_error(InvalidParameters(f"Unknown event: {event}"))

    async def handle_drop(self, data):
        try:
            game = await self._drop(data)
        except PlinkoError as e:
            await self.send_error(e)
            return

        await self.send_json({"event": "bet_result", "data": game.to_payload()})
        await self.channel_layer.group_send(
            FEED_GROUP,
            {"type": "round.settled", "data": game.to_feed_payload()},
        )

    async def handle_commit(self, data):
        try:
            commitment = await self._commit(data.get("client_seed") or None)
        except PlinkoError as e:
            await self.send_error(e)
            return

        await self.send_json({
            "event": "commitment",
            "data": {
                "id": commitment.id,
                "server_seed_hash": commitment.server_seed_hash,
                "client_seed": commitment.client_seed,
                "nonce": commitment.nonce,
            },
        })

    async def round_settled(self, event):
        await self.send_json({"event": "round_settled", "data": event["data"]})

    async def send_error(self, error: PlinkoError):
        await self.send_json({"event": "error", "data": error.as_payload()})

    @database_sync_to_async
    def _commit(self, client_seed):
        return commit_round(self.user.id, client_seed)

    @database_sync_to_async
    def _drop(self, data):
        config = PlinkoConfig.from_settings()
        try:
            bet_amount = Decimal(str(data.get("bet_amount")))
            token_id = int(data.get("token_id") or config.default_token_id)
            commitment_id = int(data["commitment_id"]) if data.get("commitment_id") else None
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidParameters("Invalid drop parameters")

        logger.debug("Drop from user %s: %s", self.user.id, data)
        return settle_wager(
            user_id=self.user.id,
            bet_amount=bet_amount,
            token_id=token_id,
            risk=data.get("risk"),
            rows=data.get("rows"),
            client_seed=data.get("client_seed") or None,
            commitment_id=commitment_id,
        )
