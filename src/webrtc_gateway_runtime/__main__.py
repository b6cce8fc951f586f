"""Allow running as ``python -m webrtc_gateway_runtime``."""

from .cli import main

main()
