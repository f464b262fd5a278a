import json
from channels.generic.websocket import AsyncWebsocketConsumer

from .realtime import ADMIN_GROUP


class OrderAdminConsumer(AsyncWebsocketConsumer):
    group_name = ADMIN_GROUP

    async def connect(self):
        user = self.scope.get("user")

        # Security: staff only
        if not user or not user.is_authenticated or not user.is_staff:
            await self.close()
            return

        await self.channel_layer.group_add(
            self.group_name,
            self.channel_name
        )
        await self.accept()

    async def disconnect(self, close_code):
        await self.channel_layer.group_discard(
            self.group_name,
            self.channel_name
        )

    # Receive message from group
    async def order_message(self, event):
        await self.send(text_data=json.dumps(event["payload"]))
