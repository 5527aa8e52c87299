"""Remote REST store: HTTP client, wire mapping, gateways."""
