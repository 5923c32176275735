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

from typing import Sequence

from von_zkp.anchor.base import BaseAnchor
from von_zkp.cache import SCHEMA_CACHE
from von_zkp.error import AbsentSchema, BadAttribute, ValidationError
from von_zkp.util import ok_version, schema_id, schema_key


LOGGER = logging.getLogger(__name__)


class Origin(BaseAnchor):
    """
    Mixin for anchor to publish schemata to the identity ledger.
    """

    async def create_schema(
            self,
            name: str,
            attr_names: Sequence[str],
            version: str = '1.0',
            description: str = None,
            required: Sequence[str] = None) -> dict:
        """
        Create schema, publish it to ledger, then retrieve it as published and return it.
        Schemata are immutable: if the ledger already has the schema, log and return it as first published.

        Raise ValidationError for an empty or colon-bearing name or bad version, or BadAttribute for
        empty attribute names, duplicate (case-sensitive) or empty or non-string attribute name, or
        required attribute not in attribute names.

        :param name: schema name
        :param attr_names: attribute names, in order; e.g., ['name', 'age', 'country']
        :param version: schema version, dot-separated integers
        :param description: free-text description, kept with published schema
        :param required: names of attributes that a credential must carry (default all)
        :return: schema as published to ledger (or existed a priori)
        """

        LOGGER.debug(
            'Origin.create_schema >>> name: %s, attr_names: %s, version: %s, description: %s, required: %s',
            name,
            attr_names,
            version,
            description,
            required)

        if not (isinstance(name, str) and name) or ':' in name:
            LOGGER.debug('Origin.create_schema <!< Bad schema name %s', name)
            raise ValidationError('Bad schema name {}'.format(name))
        if not ok_version(version):
            LOGGER.debug('Origin.create_schema <!< Bad schema version %s', version)
            raise ValidationError('Bad schema version {}'.format(version))
        if not attr_names:
            LOGGER.debug('Origin.create_schema <!< Schema %s needs attribute names', name)
            raise BadAttribute('Schema {} needs attribute names'.format(name))
        for attr in attr_names:
            if not (isinstance(attr, str) and attr):
                LOGGER.debug('Origin.create_schema <!< Bad attribute name %s', attr)
                raise BadAttribute('Bad attribute name {}'.format(attr))
        if len(set(attr_names)) != len(attr_names):
            LOGGER.debug('Origin.create_schema <!< Duplicate attribute names in %s', attr_names)
            raise BadAttribute('Duplicate attribute names in {}'.format(attr_names))
        required = list(attr_names) if required is None else list(required)
        if not set(required) <= set(attr_names):
            LOGGER.debug('Origin.create_schema <!< Required attributes %s not all in %s', required, attr_names)
            raise BadAttribute('Required attributes {} not all in {}'.format(required, attr_names))

        s_id = schema_id(self.did, name, version)
        with SCHEMA_CACHE.lock:
            try:
                rv = await self.get_schema(schema_key(s_id))
                LOGGER.info(
                    'Schema %s version %s already exists on ledger for origin-did %s: not publishing',
                    name,
                    version,
                    self.did)
            except AbsentSchema:  # OK - about to create and publish it
                schema = await self.primitives.create_schema(self.did, name, version, attr_names)
                (req, signature) = await self._sign_request('schema', {
                    'id': s_id,
                    'ver': schema.get('ver', '1.0'),
                    'name': name,
                    'version': version,
                    'attrNames': list(attr_names),
                    'description': description or '',
                    'requiredProperties': [attr for attr in attr_names if attr in required]
                })
                published = await self.ledger.publish_schema(req, signature)
                SCHEMA_CACHE[schema_key(s_id)] = published
                rv = published
                LOGGER.info('Origin %s published schema %s on seq no %s', self.name, s_id, rv['seqNo'])

        LOGGER.debug('Origin.create_schema <<< %s', rv)
        return rv
