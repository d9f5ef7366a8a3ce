"""Remote Storage Gateway — HTTP transport, wire models and backend calls."""
