# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration support for retrieving a bridge key from the OS keyring."""

from typing import Optional

import keyring
from keyring.errors import KeyringError

from ..exceptions import ConfigurationError
from .base import Config

class KeyringKeyConfig(Config):
  """Locates a bridge key in the OS keyring:

       {"service": "motion-blinds", "username": "living-room-bridge"}

     The key is stored with e.g. `keyring set motion-blinds living-room-bridge`.
  """
  _keyring_service: Optional[str] = None
  _keyring_username: Optional[str] = None

  def bake(self):
    super().bake()
    self._keyring_service = self.get_cfg_property_str('service')
    self._keyring_username = self.get_cfg_property_str('username')

  @property
  def service(self) -> str:
    assert not self._keyring_service is None
    return self._keyring_service

  @property
  def username(self) -> str:
    assert not self._keyring_username is None
    return self._keyring_username

  def get_key(self) -> str:
    try:
      result = keyring.get_password(self.service, self.username)
    except KeyringError as e:
      raise ConfigurationError(f"KeyringKeyConfig: unable to read keyring service '{self.service}': {e}") from e
    if result is None:
      raise ConfigurationError(f"KeyringKeyConfig: service '{self.service}', username '{self.username}' does not exist")
    return result

  def key_exists(self) -> bool:
    try:
      self.get_key()
    except ConfigurationError:
      return False
    return True
