"""
Screen Relay
============

Near-real-time screen mirroring from one producer to many LAN viewers.

Components:
    - relay: Session-scoped broadcast hub ("latest frame wins")
    - stream: Producer and consumer runtimes (drop-latest rendering)
    - netaddr: Private LAN address discovery for share URLs
    - main: FastAPI application serving the relay endpoint

Example:
    # Relay
    screen-relay serve

    # Producer (prints the share URL)
    screen-relay produce --url ws://localhost:3001

    # Viewer
    screen-relay view --url ws://192.168.1.20:3001 --token <token>
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
