# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration support.

A Config is created empty, then loaded from JSON text, JSON data or a file. Loading renders
the template data against a ConfigContext and then calls bake(), which subclasses override
to validate and extract their settings.
"""

from typing import Optional, Any, List, TypeVar, Union, overload
from ..internal_types import Jsonable, JsonableDict, JsonableTypes

import os
import json

from ..exceptions import ConfigurationError
from .context import ConfigContext

_T = TypeVar('_T')
_C = TypeVar('_C', bound='Config')

class Config:
  _template_json_data: Optional[JsonableDict] = None
  _json_data: Optional[JsonableDict] = None
  _context: Optional[ConfigContext] = None

  def __init__(self):
    pass

  def get_context(self) -> ConfigContext:
    result = self._context
    assert not result is None
    return result

  def bake(self) -> None:
    pass

  @property
  def json_data(self) -> JsonableDict:
    """The rendered configuration data."""
    result = self._json_data
    assert not result is None
    return result

  @property
  def config_file(self) -> Optional[str]:
    """The fully qualified pathname of the configuration file from which this Config
       originated, or None if not from a file"""
    result: Optional[str]
    if self._context is None:
      result = None
    else:
      result = self._context.get('config_file', None)
    return result

  @property
  def config_dir(self) -> Optional[str]:
    """The fully qualified pathname of the directory containing the configuration
       file from which this Config originated, or None if not from a file"""
    config_file = self.config_file
    result: Optional[str]
    if config_file is None:
      result = None
    else:
      result = os.path.dirname(config_file)
    return result

  def render(self) -> None:
    try:
      rendered = self.get_context().render_template_json_data(self._template_json_data)
    except (KeyError, ValueError) as e:
      raise ConfigurationError(f"Config: unable to render configuration: undefined variable {e}") from e
    if not isinstance(rendered, dict):
      raise ConfigurationError(f"Config: expected a JSON object, got {type(rendered).__name__}")
    self._json_data = rendered

  def render_and_bake(self, context: ConfigContext) -> None:
    self._context = context.clone()
    self.render()
    self.bake()

  def load_json_data(
        self,
        ctx: ConfigContext,
        json_data: JsonableDict
      ) -> None:
    if not isinstance(json_data, dict):
      raise ConfigurationError(f"Config: expected a JSON object, got {type(json_data).__name__}")
    self._template_json_data = json_data
    self.render_and_bake(ctx)

  def load_rendered_json_data(
        self,
        ctx: ConfigContext,
        json_data: JsonableDict
      ) -> None:
    """Loads data that has already been rendered, e.g. a section of a parent Config."""
    self._context = ctx.clone()
    self._template_json_data = json_data
    self._json_data = json_data
    self.bake()

  def loads(
        self,
        ctx: ConfigContext,
        config_text: str
      ) -> None:
    try:
      json_data = json.loads(config_text)
    except ValueError as e:
      raise ConfigurationError(f"Config: invalid JSON: {e}") from e
    self.load_json_data(ctx, json_data)

  def load_file(
        self,
        ctx: ConfigContext,
        config_file: str
      ) -> None:
    ctx = ctx.push_config_file(config_file)
    try:
      with open(os.path.expanduser(config_file)) as f:
        config_text = f.read()
    except OSError as e:
      raise ConfigurationError(f"Config: unable to read {config_file}: {e}") from e
    self.loads(ctx, config_text)

  @classmethod
  def from_json_data(cls: 'type[_C]', json_data: JsonableDict, ctx: Optional[ConfigContext]=None) -> _C:
    cfg = cls()
    cfg.load_json_data(ConfigContext() if ctx is None else ctx, json_data)
    return cfg

  @classmethod
  def from_section(cls: 'type[_C]', parent: 'Config', json_data: JsonableDict) -> _C:
    cfg = cls()
    cfg.load_rendered_json_data(parent.get_context(), json_data)
    return cfg

  @classmethod
  def from_file(cls: 'type[_C]', config_file: str, ctx: Optional[ConfigContext]=None) -> _C:
    cfg = cls()
    cfg.load_file(ConfigContext() if ctx is None else ctx, config_file)
    return cfg

  _no_default = object()

  @overload
  def get_cfg_property(self, key: str, default: _T) -> Union[Jsonable, _T]: pass

  @overload
  def get_cfg_property(self, key: str) -> Jsonable: pass

  def get_cfg_property(self, key: str, default = _no_default):
    result = self.json_data.get(key, default)
    if result is self._no_default:
      raise ConfigurationError(f"Config: Missing [{key}] setting")
    if not result is None and not result is default and not isinstance(result, JsonableTypes):
      raise ConfigurationError(f"Config: Expected property {key} to be JSON-able, got {type(result)}")
    return result

  @overload
  def get_cfg_property_str(self, key: str, default: _T) -> Union[str, _T]: pass

  @overload
  def get_cfg_property_str(self, key: str) -> str: pass

  def get_cfg_property_str(self, key: str, default: Any=_no_default):
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if not isinstance(result, str):
      raise ConfigurationError(f"Config: Expected property {key} to be str, got {type(result).__name__}")
    return result

  @overload
  def get_cfg_property_int(self, key: str, default: _T) -> Union[int, _T]: pass

  @overload
  def get_cfg_property_int(self, key: str) -> int: pass

  def get_cfg_property_int(self, key: str, default: Any=_no_default):
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if isinstance(result, str):
      try:
        result = int(result)
      except ValueError:
        pass
    if isinstance(result, bool) or not isinstance(result, int):
      raise ConfigurationError(f"Config: Expected property {key} to be int, got {type(result).__name__}")
    return result

  @overload
  def get_cfg_property_float(self, key: str, default: _T) -> Union[float, _T]: pass

  @overload
  def get_cfg_property_float(self, key: str) -> float: pass

  def get_cfg_property_float(self, key: str, default: Any=_no_default):
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if isinstance(result, str):
      try:
        result = float(result)
      except ValueError:
        pass
    if isinstance(result, bool) or not isinstance(result, (int, float)):
      raise ConfigurationError(f"Config: Expected property {key} to be a number, got {type(result).__name__}")
    return float(result)

  @overload
  def get_cfg_property_bool(self, key: str, default: _T) -> Union[bool, _T]: pass

  @overload
  def get_cfg_property_bool(self, key: str) -> bool: pass

  def get_cfg_property_bool(self, key: str, default: Any=_no_default):
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if not isinstance(result, bool):
      raise ConfigurationError(f"Config: Expected property {key} to be bool, got {type(result).__name__}")
    return result

  @overload
  def get_cfg_property_dict(self, key: str, default: _T) -> Union[JsonableDict, _T]: pass

  @overload
  def get_cfg_property_dict(self, key: str) -> JsonableDict: pass

  def get_cfg_property_dict(self, key: str, default: Any=_no_default):
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if not isinstance(result, dict):
      raise ConfigurationError(f"Config: Expected property {key} to be dict, got {type(result).__name__}")
    return result

  @overload
  def get_cfg_property_list(self, key: str, default: _T) -> Union[List[Jsonable], _T]: pass

  @overload
  def get_cfg_property_list(self, key: str) -> List[Jsonable]: pass

  def get_cfg_property_list(self, key: str, default: Any=_no_default):
    result = self.get_cfg_property(key, default)
    if result is default:
      return result
    if not isinstance(result, list):
      raise ConfigurationError(f"Config: Expected property {key} to be list, got {type(result).__name__}")
    return result
