"""
WebSocket host for the blood request rejection form.

Each connection owns one :class:`RejectionWorkflow`.  Client messages
are JSON objects with an ``action``::

    {"action": "open"}
    {"action": "update_draft", "text": "..."}
    {"action": "quick_reason", "reason": "insufficient_stock"}
    {"action": "submit"}
    {"action": "cancel"}

and the server answers with ``state`` (the rendered form, ``null`` once
closed), ``notice``, ``error``, ``rejected`` and ``closed`` events.
Form actions sent while the form is closed are refused with a
``form_closed`` error.  ``submit`` runs as a background task so a
``cancel`` sent while the rejection is being saved is handled straight
away.
"""
import asyncio
import json
import logging

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from core.exceptions import RequestNotFound
from core.services.blood_requests import format_request, get_request_for_user, reject_request
from core.workflows.notifiers import CollectingNotifier
from core.workflows.rejection import RejectionWorkflow

logger = logging.getLogger(__name__)

REVIEWER_ROLES = ("bloodbank", "admin")
# Actions that need the form to be open.
FORM_ACTIONS = ("update_draft", "quick_reason", "submit", "cancel")


async def _ws_error(ws, code: int, message: str, *, close: bool = False):
    payload = {"type": "error", "code": code, "message": message}
    try:
        await ws.send_json(payload)
    finally:
        if close:
            await ws.close(code=code)


class RejectionFormConsumer(AsyncWebsocketConsumer):
    async def connect(self):
        self.connected = False
        self.submit_task = None
        try:
            self.request_id = int(self.scope["url_route"]["kwargs"].get("request_id"))
        except (KeyError, TypeError, ValueError):
            await self.close(code=4001)
            return

        self.user = self.scope.get("user") or AnonymousUser()
        if not self.user.is_authenticated:
            await self.close(code=4001)
            return
        if getattr(self.user, "role", "") not in REVIEWER_ROLES:
            await self.close(code=4003)
            return

        try:
            self.blood_request = await sync_to_async(get_request_for_user)(self.user, self.request_id)
        except RequestNotFound:
            await self.close(code=4004)
            return

        self.notifier = CollectingNotifier()
        self.rejected = False
        self.workflow = RejectionWorkflow(
            on_confirm=self.confirm_rejection,
            on_close=self.close_form,
            notifier=self.notifier,
            request_code=self.blood_request.request_code,
            is_open=True,
        )
        await self.accept()
        self.connected = True
        await self.send_state()

    async def disconnect(self, close_code):
        self.connected = False
        # A rejection already handed to the service still completes.
        if self.submit_task is not None and not self.submit_task.done():
            await self.submit_task

    # ------------------------------------------------------------------
    # Outgoing
    # ------------------------------------------------------------------
    async def send_json(self, payload: dict):
        if self.connected:
            await self.send(json.dumps(payload))

    async def send_state(self):
        await self.send_json({"type": "state", "form": self.workflow.render()})

    async def flush_notices(self):
        for notice in self.notifier.drain():
            await self.send_json({"type": "notice", **notice})

    # ------------------------------------------------------------------
    # Workflow callbacks
    # ------------------------------------------------------------------
    async def confirm_rejection(self, reason: str):
        await self.send_state()
        try:
            req = await sync_to_async(reject_request)(self.blood_request, self.user, reason)
        except (RequestNotFound, PermissionError, ValueError) as e:
            await _ws_error(self, 4009, str(e))
            raise
        self.blood_request = req
        self.rejected = True
        await self.send_json({"type": "rejected", "request": format_request(req)})

    def close_form(self):
        self.workflow.is_open = False

    async def run_submit(self):
        await self.workflow.submit()
        await self.flush_notices()
        if self.rejected and self.workflow.is_open:
            self.close_form()
            await self.send_json({"type": "closed"})
        await self.send_state()

    # ------------------------------------------------------------------
    # Incoming
    # ------------------------------------------------------------------
    async def receive(self, text_data=None, bytes_data=None):
        if not text_data:
            return
        try:
            data = json.loads(text_data)
        except ValueError:
            await _ws_error(self, 4000, "invalid_json")
            return
        if not isinstance(data, dict):
            await _ws_error(self, 4000, "invalid_payload")
            return

        action = data.get("action")
        if action in FORM_ACTIONS and not self.workflow.is_open:
            await _ws_error(self, 4005, "form_closed")
            return
        if action == "open":
            if not self.rejected:
                self.workflow.open()
            await self.send_state()
        elif action == "update_draft":
            text = data.get("text", "")
            if not isinstance(text, str):
                await _ws_error(self, 4002, "invalid_text")
                return
            self.workflow.update_draft(text)
            await self.send_state()
        elif action == "quick_reason":
            try:
                self.workflow.select_quick_reason(str(data.get("reason", "")))
            except ValueError:
                await _ws_error(self, 4002, "unknown_quick_reason")
                return
            await self.send_state()
        elif action == "submit":
            if self.submit_task is not None and not self.submit_task.done():
                logger.debug("submit already running for %s", self.workflow.request_code)
                return
            self.submit_task = asyncio.ensure_future(self.run_submit())
        elif action == "cancel":
            self.workflow.cancel()
            await self.send_json({"type": "closed"})
            await self.send_state()
        else:
            await _ws_error(self, 4002, "unsupported_action")
