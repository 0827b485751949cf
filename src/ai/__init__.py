"""AI reply generation: upstream streaming, tool calls, and run recording."""
