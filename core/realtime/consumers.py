import json

from channels.generic.websocket import AsyncWebsocketConsumer

from core.services.blood_requests import ADMIN_GROUP


def groups_for_user(user) -> list[str]:
    """Channel groups that receive updates for the user's organisation."""
    if not user or not getattr(user, "is_authenticated", False):
        return []
    if user.role == user.ROLE_ADMIN:
        return [ADMIN_GROUP]
    if user.role == user.ROLE_HOSPITAL and user.hospital_id:
        return [f"hospital.{user.hospital_id}"]
    if user.role == user.ROLE_BLOODBANK and user.blood_bank_id:
        return [f"bloodbank.{user.blood_bank_id}"]
    return []


class BloodRequestUpdatesConsumer(AsyncWebsocketConsumer):
    """Pushes blood request changes to the organisation that owns them."""

    async def connect(self):
        self.groups_joined = groups_for_user(self.scope.get("user"))
        if not self.groups_joined:
            await self.close(code=4003)
            return
        for group in self.groups_joined:
            await self.channel_layer.group_add(group, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "welcome", "groups": self.groups_joined}))

    async def disconnect(self, close_code):
        for group in getattr(self, "groups_joined", []):
            await self.channel_layer.group_discard(group, self.channel_name)

    async def request_update(self, event):
        # event: {"type": "request.update", "action": "reject", "request": {...}}
        await self.send(json.dumps({"type": "update", "action": event.get("action"),
                                    "request": event.get("request")}))
