"""Adapters binding the logmonitor core to the operating system and the web."""
