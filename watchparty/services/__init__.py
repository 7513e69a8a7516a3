"""
Services package for WatchParty.
"""
