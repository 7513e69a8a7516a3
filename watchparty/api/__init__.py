"""
REST API routers for WatchParty.
"""
