"""Schedule engine, service client and event multiplexer."""
