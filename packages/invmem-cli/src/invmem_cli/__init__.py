"""invmem CLI: demo runner and memory inspection."""
