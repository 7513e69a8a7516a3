"""
WebSocket handlers for WatchParty.
"""
