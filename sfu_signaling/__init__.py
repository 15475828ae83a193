"""SFU signaling relay service."""
