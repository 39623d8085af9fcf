"""Discord adapters: bot, cogs, voice signaling and embed rendering."""
