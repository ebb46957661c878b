"""Clients for the market data provider and the alarm playback."""
