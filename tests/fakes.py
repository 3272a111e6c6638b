"""Shared test doubles."""


class FakePlatform:
    """Records every call; `failures[(method, chat_id)]` raises instead."""

    def __init__(self):
        self.calls = []
        self.failures = {}

    async def _call(self, name, chat_id, *args):
        self.calls.append((name, chat_id, *args))
        exc = self.failures.get((name, chat_id))
        if exc is not None:
            raise exc

    def named(self, name):
        return [call for call in self.calls if call[0] == name]

    async def delete_message(self, chat_id, message_id):
        await self._call("delete_message", chat_id, message_id)

    async def restrict_user(self, chat_id, user_id, until_ms):
        await self._call("restrict_user", chat_id, user_id, until_ms)

    async def unrestrict_user(self, chat_id, user_id):
        await self._call("unrestrict_user", chat_id, user_id)

    async def ban_user(self, chat_id, user_id, until_ms):
        await self._call("ban_user", chat_id, user_id, until_ms)

    async def unban_user(self, chat_id, user_id):
        await self._call("unban_user", chat_id, user_id)

    async def send_message(self, chat_id, text):
        await self._call("send_message", chat_id, text)
