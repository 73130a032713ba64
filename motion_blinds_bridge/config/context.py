# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration context.

A ConfigContext holds the variables that may be substituted into configuration text with
string.Template syntax. Every environment variable NAME is available as ${env:NAME}, so
secrets such as the bridge key need not be written into a configuration file:

    {"ip": "192.168.1.20", "key": "${env:MOTION_KEY}"}
"""

from typing import Optional, Dict, Any
from ..internal_types import Jsonable

import os
from collections import UserDict
from copy import deepcopy
from string import Template

from ..util import hash_pathname as g_hash_pathname

class _EnvTemplate(Template):
  # allow "env:NAME" identifiers
  idpattern = r'(?a:[_a-z][_a-z0-9]*(?::[_a-z][_a-z0-9]*)?)'

class ConfigContext(UserDict):
  def __init__(self, globals: Optional[Dict[str, Any]]=None, os_environ: Optional[Dict[str, str]]=None):
    super().__init__()
    if not globals is None:
      globals = deepcopy(globals)
      self.update(globals)
    if os_environ is None:
      os_environ = dict(os.environ)
    for k, v in os_environ.items():
      self[f"env:{k}"] = v

  def clone(self) -> 'ConfigContext':
    result = deepcopy(self)
    return result

  def render_template_str(self, template_str: str) -> str:
    t: Template = _EnvTemplate(template_str)
    result: str = t.substitute(self)
    return result

  def render_template_json_data(self, template_json_data: Jsonable) -> Jsonable:
    if isinstance(template_json_data, str):
      return self.render_template_str(template_json_data)
    if isinstance(template_json_data, list):
      return [ self.render_template_json_data(x) for x in template_json_data ]
    if isinstance(template_json_data, dict):
      return { k: self.render_template_json_data(v) for k, v in template_json_data.items() }
    return template_json_data

  def hash_pathname(self, pathname: str) -> str:
    return g_hash_pathname(pathname=pathname)

  def push_config_file(self, config_file: Optional[str]) -> 'ConfigContext':
    ctx = self.clone()
    ctx.set_config_file(config_file)
    return ctx

  @property
  def config_file(self) -> Optional[str]:
    return self.get('config_file', None)

  def set_config_file(self, config_file: Optional[str]=None):
    if config_file is None:
      for propname in ['config_file','config_dir','config_file_hash','config_dir_hash']:
        if propname in self:
          del self[propname]
    else:
      config_file = os.path.abspath(os.path.expanduser(config_file))
      config_dir = os.path.dirname(config_file)
      self['config_file'] = config_file
      self['config_dir'] = config_dir
      self['config_file_hash'] = self.hash_pathname(config_file)
      self['config_dir_hash'] = self.hash_pathname(config_dir)

  @property
  def config_dir(self) -> Optional[str]:
    return self.get('config_dir', None)
