# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

MULTICAST_IP = "238.0.0.18"
"""The multicast group on which the bridge publishes heartbeats and reports."""

UDP_PORT_SEND = 32100
"""The UDP port on which the bridge listens for requests."""

UDP_PORT_RECEIVE = 32101
"""The UDP port to which the bridge multicasts notifications."""

PROTOCOL_VERSION = "0.9"
"""The only bridge protocol version this package can talk to."""

DEVICE_TYPE_BRIDGE = "02000002"
DEVICE_TYPE_BLIND = "10000000"

RETRY_SCHEDULE = (0.4, 0.8, 1.2, 1.6)
"""Seconds to wait for a response before each retry of a request."""

MAX_RETRIES = 4
"""Number of times a request is re-sent before it times out."""

RETRY_JITTER = 0.1
"""Upper bound (seconds) of the random extra wait once the retry schedule is exhausted."""

HEARTBEAT_WINDOW = 65.0
"""Seconds without any traffic from the bridge before it is actively probed.
   The bridge sends a heartbeat every 30-60 seconds."""

RECONNECT_DELAY = 3.0
"""Seconds between reconnect attempts after a socket error."""

DEFAULT_POLL_INTERVAL = 60.0
MIN_POLL_INTERVAL = 30.0

MANUFACTURER = "MOTION"

MULTICAST_TTL = 128
