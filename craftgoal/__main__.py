"""Module entrypoint for `python -m craftgoal`.

Purpose: Delegate to `craftgoal.server.main` to start the WebSocket server.
"""

from .server import main


if __name__ == "__main__":
    main()
