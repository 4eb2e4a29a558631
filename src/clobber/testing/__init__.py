"""In-memory stand-ins for running the bot without a homeserver."""
