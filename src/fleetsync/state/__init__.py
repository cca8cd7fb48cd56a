"""State layer.

The registry in this package is the single authoritative owner of device
records on the server. Every mutation it accepts is announced as exactly one
:class:`~fleetsync.state.events.DeviceChangeEvent`.
"""
