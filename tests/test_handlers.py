import os
import sys
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DB_PATH", ":memory:")

from telegram.constants import ChatType, ParseMode

from bot import app as bot_app
from bot.handlers import _reply, _require_admin


class ReplyTest(unittest.IsolatedAsyncioTestCase):
    async def test_plain_text_is_escaped_for_html_defaults(self):
        msg = MagicMock()
        msg.reply_text = AsyncMock()

        await _reply(msg, "❌ Usage: /warn <user> <reason> & more")

        msg.reply_text.assert_awaited_once_with("❌ Usage: /warn &lt;user&gt; &lt;reason&gt; &amp; more")

    async def test_group_only_notice_goes_through_the_escaping_reply(self):
        msg = MagicMock()
        msg.chat.type = ChatType.PRIVATE
        msg.reply_text = AsyncMock()
        update = MagicMock(effective_message=msg)

        self.assertFalse(await _require_admin(update, MagicMock()))
        msg.reply_text.assert_awaited_once_with("❌ This command only works in groups.")


class ApplicationDefaultsTest(unittest.TestCase):
    def test_application_parses_html_by_default(self):
        builder = MagicMock()
        chain = builder.return_value.token.return_value

        with patch.object(bot_app, "ApplicationBuilder", builder):
            bot_app.run_polling()

        defaults = chain.defaults.call_args.args[0]
        self.assertEqual(defaults.parse_mode, ParseMode.HTML)
        chain.defaults.return_value.build.return_value.run_polling.assert_called_once()


if __name__ == "__main__":
    unittest.main()
