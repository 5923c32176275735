"""
Copyright 2017-2019 Government of Canada - Public Services and Procurement Canada - buyandsell.gc.ca

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""


import json
import re

from configparser import ConfigParser
from datetime import datetime, timezone
from enum import IntEnum
from os.path import expandvars, isfile
from pprint import pformat
from typing import Any, Sequence, Union


def ppjson(dumpit: Any, elide_to: int = None) -> str:
    """
    JSON pretty printer, whether already json-encoded or not

    :param dumpit: object to pretty-print
    :param elide_to: optional maximum length including ellipses ('...')
    :return: json pretty-print
    """

    if elide_to is not None:
        elide_to = max(elide_to, 3)  # make room for ellipses '...'
    try:
        rv = json.dumps(json.loads(dumpit) if isinstance(dumpit, str) else dumpit, indent=4)
    except TypeError:
        rv = '{}'.format(pformat(dumpit, indent=4, width=120))
    return rv if elide_to is None or len(rv) <= elide_to else '{}...'.format(rv[0 : elide_to - 3])


def canon_json(dumpit: Any) -> str:
    """
    Return canonical json encoding: sorted keys, no insignificant whitespace. Signatures and
    content-addressed tokens operate on this form.

    :param dumpit: json-serializable object
    :return: canonical json
    """

    return json.dumps(dumpit, sort_keys=True, separators=(',', ':'))


def iso_now() -> str:
    """
    Return current UTC time in ISO 8601 format to the second, as credentials and messages stamp it.

    :return: current time as 'YYYY-mm-ddTHH:MM:SS.000Z'
    """

    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')


def _coerce(value: str) -> Any:
    """
    Coerce ini file value to bool or int where it reads as such; leave other strings alone.
    """

    if value.lower() in ('true', 'yes', 'on'):
        return True
    if value.lower() in ('false', 'no', 'off'):
        return False
    if re.match(r'^-?\d+$', value):
        return int(value)
    return value


def inis2dict(ini_paths: Union[str, Sequence[str]], coerce: bool = True) -> dict:
    """
    Take one or more ini files and return a dict with configuration from all,
    interpolating bash-style variables ${VAR} or ${VAR:-DEFAULT}. Section names
    map to configuration keys as validcfg.validate_config() expects them; e.g.,

    ::

        [issuer]
        rr-size-default=${RR_SIZE:-64}
        rr-auto-roll=true

        [holder-prover]
        dir-tails=${HOME}/.von_zkp/tails

    :param ini_paths: path or paths to .ini files
    :param coerce: whether to coerce boolean and integer values from their string forms
    :return: dict mapping sections to dicts of their settings
    """

    var_dflt = r'\${(.*?):-(.*?)}'

    def _interpolate(content):
        rv = expandvars(content)
        while True:
            match = re.search(var_dflt, rv)
            if match is None:
                break
            bash_var = '${{{}}}'.format(match.group(1))
            value = expandvars(bash_var)
            rv = re.sub(var_dflt, match.group(2) if value == bash_var else value, rv, count=1)

        return rv

    parser = ConfigParser()

    for ini in [ini_paths] if isinstance(ini_paths, str) else ini_paths:
        if not isfile(ini):
            raise FileNotFoundError('No such file: {}'.format(ini))
        with open(ini, 'r') as ini_fh:
            parser.read_string(_interpolate(ini_fh.read()))

    return {
        s: {k: _coerce(v) if coerce else v for (k, v) in parser[s].items()} for s in parser.sections()
    }


class Ink(IntEnum):
    """
    Class encapsulating ink colours for logging.
    """

    BLACK = 30
    RED = 31
    GREEN = 32
    YELLOW = 33
    BLUE = 34
    MAGENTA = 35
    CYAN = 36
    WHITE = 37

    def __call__(self, message: str) -> str:
        """
        Return input message in colour.

        :return: input message in colour
        """

        return '\033[{}m{}\033[0m'.format(self.value, message)
