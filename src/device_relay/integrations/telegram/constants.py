from __future__ import annotations

import re

TELEGRAM_API_BASE_URL = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_LENGTH = 4096

# Path of the webhook URL is /bot<BOT_TOKEN>.
BOT_TOKEN_PATH_RE = re.compile(r"^/bot([0-9]+:[A-Za-z0-9_-]{30,})/?$")

CALLBACK_SEPARATOR = ":"

UPLOAD_COMMAND = "/send"
REGISTER_COMMAND = "/register"

# Order in which a single message's media is considered for /send.
UPLOAD_MEDIA_PRIORITY = ("document", "photo", "video", "audio")
UPLOAD_DEFAULT_FILE_NAMES = {
    "document": "file",
    "photo": "photo.jpg",
    "video": "video.mp4",
    "audio": "audio.mp3",
}
