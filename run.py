#!/usr/bin/env python3
"""
WatchParty Application Runner

Simple script to start the WatchParty server with proper configuration.
"""

import sys

import uvicorn

from watchparty.config import HOST, PORT, DEBUG

if __name__ == "__main__":
    print("Starting WatchParty Server...")
    print(f"Server will be available at: http://{HOST}:{PORT} (WebSocket: /ws)")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        uvicorn.run(
            "watchparty.main:app",
            host=HOST,
            port=PORT,
            reload=DEBUG,
            log_level="info",
            access_log=True
        )
    except KeyboardInterrupt:
        print("\n👋 Server stopped. Thanks for using WatchParty!")
    except Exception as e:
        print(f" Error starting server: {e}")
        sys.exit(1)
