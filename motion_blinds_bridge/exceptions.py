#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class MotionError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class ConfigurationError(MotionError):
  """The bridge configuration is missing a required setting or has an invalid one."""
  pass

class ProtocolVersionMismatchError(MotionError):
  """The bridge speaks a protocol version this package does not support. Not retried."""
  pass

class MotionTimeoutError(MotionError):
  """No response was received for a request after all retries."""
  pass

class MotionSocketError(MotionError):
  """A socket-level failure. The client reconnects on its own."""
  pass

class NotConnectedError(MotionError):
  """The client has no open socket to send on."""
  pass

class MotionProtocolError(MotionError):
  """A datagram could not be decoded as a protocol message."""
  pass

class MotionRequestError(MotionError):
  """The bridge rejected a request, or answered it without data."""
  pass

class WriteValidationError(MotionError):
  """A device write carried out-of-range values. Raised before anything is sent."""
  pass

class AuthPreconditionError(MotionError):
  """A write was attempted before the bridge issued a session token."""
  pass
