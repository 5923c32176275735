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


import logging

from threading import RLock
from typing import Sequence, Union

from von_zkp.error import CacheIndex
from von_zkp.indytween import SchemaKey
from von_zkp.tails import Tails
from von_zkp.util import ok_schema_id, schema_key


LOGGER = logging.getLogger(__name__)


class SchemaCache:
    """
    Retain schemata and fetch by schema key (origin_did, name, version), schema identifier,
    or sequence number.

    A lock shares access to critical sections as relying code specifies them (e.g., check and get/set).
    Note that this one lock applies across all instances - the design of this class intends it to be a singleton.
    """

    lock = RLock()

    def __init__(self) -> None:
        """
        Initialize schema cache data.
        """

        LOGGER.debug('SchemaCache.__init__ >>>')

        self._schema_key2schema = {}
        self._seq_no2schema_key = {}

        LOGGER.debug('SchemaCache.__init__ <<<')

    def __getitem__(self, index: Union[SchemaKey, int, str]) -> dict:
        """
        Get schema by schema key, sequence number, or schema identifier. Raise CacheIndex for no such schema.

        :param index: schema key, sequence number, or schema identifier
        :return: corresponding schema
        """

        LOGGER.debug('SchemaCache.__getitem__ >>> index: %s', index)

        try:
            if isinstance(index, SchemaKey):
                rv = self._schema_key2schema[index]
            elif isinstance(index, int):
                rv = self._schema_key2schema[self._seq_no2schema_key[index]]
            elif isinstance(index, str) and ok_schema_id(index):
                rv = self._schema_key2schema[schema_key(index)]
            else:
                LOGGER.debug('SchemaCache.__getitem__ <!< index %s must be int, SchemaKey, or schema id', index)
                raise CacheIndex('{} must be int, SchemaKey, or schema id'.format(index))
        except KeyError:
            LOGGER.debug('SchemaCache.__getitem__ <!< index %s not present', index)
            raise CacheIndex('{}'.format(index))

        LOGGER.debug('SchemaCache.__getitem__ <<< %s', rv)
        return rv

    def __setitem__(self, index: Union[SchemaKey, int], schema: dict) -> dict:
        """
        Put schema into cache and return it.

        :param index: schema key or sequence number
        :param schema: schema to put into cache
        :return: input schema
        """

        LOGGER.debug('SchemaCache.__setitem__ >>> index: %s, schema: %s', index, schema)

        if isinstance(index, SchemaKey):
            self._schema_key2schema[index] = schema
            self._seq_no2schema_key[schema['seqNo']] = index
        elif isinstance(index, int):
            s_key = schema_key(schema['id'])
            self._schema_key2schema[s_key] = schema
            self._seq_no2schema_key[index] = s_key
        else:
            LOGGER.debug('SchemaCache.__setitem__ <!< Bad index %s must be a schema key or a sequence number', index)
            raise CacheIndex('Bad index {} must be a schema key or a sequence number'.format(index))

        LOGGER.debug('SchemaCache.__setitem__ <<< %s', schema)
        return schema

    def contains(self, index: Union[SchemaKey, int, str]) -> bool:
        """
        Return whether the cache contains a schema for the input key, sequence number, or schema identifier.

        :param index: schema key, sequence number, or sequence identifier
        :return: whether the cache contains a schema for the input index
        """

        LOGGER.debug('SchemaCache.contains >>> index: %s', index)

        if isinstance(index, SchemaKey):
            rv = (index in self._schema_key2schema)
        elif isinstance(index, int):
            rv = (index in self._seq_no2schema_key)
        elif isinstance(index, str) and ok_schema_id(index):
            rv = (schema_key(index) in self._schema_key2schema)
        else:
            rv = False

        LOGGER.debug('SchemaCache.contains <<< %s', rv)
        return rv

    def schemata(self) -> list:
        """
        Return list with schemata in cache.

        :return: list of schemata
        """

        LOGGER.debug('SchemaCache.schemata >>>')

        rv = list(self._schema_key2schema.values())
        LOGGER.debug('SchemaCache.schemata <<< %s', rv)
        return rv

    def clear(self) -> None:
        """
        Clear the cache.
        """

        LOGGER.debug('SchemaCache.clear >>>')

        self._schema_key2schema = {}
        self._seq_no2schema_key = {}

        LOGGER.debug('SchemaCache.clear <<<')


class RevoCacheEntry:
    """
    Revocation cache entry housing:
    * a revocation registry definition
    * a Tails structure, once a holder-prover or issuer has the tails file locally
    * the delta log frames known so far, in version order.

    The delta log only ever grows, so frames once cached stay valid; relying code fetches
    newer frames from the ledger on every use.
    """

    def __init__(self, rev_reg_def: dict, tails: Tails = None):
        """
        Initialize with revocation registry definition, optional tails file.

        :param rev_reg_def: revocation registry definition
        :param tails: current tails file object
        """

        LOGGER.debug('RevoCacheEntry.__init__ >>> rev_reg_def: %s, tails: %s', rev_reg_def, tails)

        self._rev_reg_def = rev_reg_def or None
        self._tails = tails or None
        self._delta_frames = []

        LOGGER.debug('RevoCacheEntry.__init__ <<<')

    @property
    def rev_reg_def(self) -> dict:
        """
        Return rev reg def from cache entry.
        """

        return self._rev_reg_def

    @property
    def tails(self) -> Tails:
        """
        Return current tails file from cache entry.
        """

        return self._tails

    @tails.setter
    def tails(self, value: Tails) -> None:
        """
        Set tails file for cache entry.

        :param value: tails file
        """

        self._tails = value

    @property
    def delta_frames(self) -> list:
        """
        Return delta log frames known so far, in version order.
        """

        return self._delta_frames

    @property
    def next_version(self) -> int:
        """
        Return version of first delta log frame not yet cached.
        """

        return len(self._delta_frames)

    def extend(self, frames: Sequence[dict]) -> None:
        """
        Append delta log frames in version order, skipping any already cached. Raise CacheIndex
        on a gap in versions.

        :param frames: delta log entries
        """

        LOGGER.debug('RevoCacheEntry.extend >>> frames: %s', frames)

        for frame in frames:
            if frame['version'] < self.next_version:
                continue
            if frame['version'] > self.next_version:
                LOGGER.debug(
                    'RevoCacheEntry.extend <!< Delta frame version %s skips past %s',
                    frame['version'],
                    self.next_version)
                raise CacheIndex('Delta frame version {} skips past {}'.format(frame['version'], self.next_version))
            self._delta_frames.append(frame)

        LOGGER.debug('RevoCacheEntry.extend <<<')

    def __repr__(self):
        """
        Return representation.
        """

        return 'RevoCacheEntry({}, {}, <{} frames>)'.format(
            self._rev_reg_def and self._rev_reg_def['id'],
            self._tails,
            len(self._delta_frames))


class CredDefCache(dict):
    """
    Retain credential definitions by cred def id.

    A lock shares access to critical sections as relying code specifies them (e.g., check and get/set).
    Note that this one lock applies across all instances - the design of this class intends it to be a singleton.
    """

    lock = RLock()

    def __init__(self):
        """
        Initialize cred def cache.
        """

        LOGGER.debug('CredDefCache.__init__ >>>')

        super().__init__()

        LOGGER.debug('CredDefCache.__init__ <<<')


class RevocationCache(dict):
    """
    Retain revocation cache entries by revocation registry identifier.

    A lock shares access to critical sections as relying code specifies them (e.g., check and get/set).
    Note that this one lock applies across all instances - the design of this class intends it to be a singleton.
    """

    lock = RLock()

    def __init__(self):
        """
        Initialize revocation cache.
        """

        LOGGER.debug('RevocationCache.__init__ >>>')

        super().__init__()

        LOGGER.debug('RevocationCache.__init__ <<<')


SCHEMA_CACHE = SchemaCache()
CRED_DEF_CACHE = CredDefCache()
REVO_CACHE = RevocationCache()


class Caches:
    """
    Management utilities for schema, cred def, and revocation caches taken as a whole.
    """

    @staticmethod
    def clear() -> None:
        """
        Clear all caches in memory.
        """

        LOGGER.debug('Caches.clear >>>')

        with SCHEMA_CACHE.lock:
            SCHEMA_CACHE.clear()
        with CRED_DEF_CACHE.lock:
            CRED_DEF_CACHE.clear()
        with REVO_CACHE.lock:
            REVO_CACHE.clear()

        LOGGER.debug('Caches.clear <<<')
