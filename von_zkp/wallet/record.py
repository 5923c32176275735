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
import logging

from uuid import uuid4

from von_zkp.error import ValidationError


TYPE_MASTER_SECRET = 'master_secret'
TYPE_CRED_DEF_PRIVATE = 'cred_def_private'
TYPE_CRED_OFFER = 'cred_offer'
TYPE_REV_REG_PRIVATE = 'rev_reg_private'
TYPE_REV_ID_INFO = 'rev_id_info'
TYPE_CRED_REQ_METADATA = 'cred_req_metadata'
TYPE_CRED = 'cred'

LOGGER = logging.getLogger(__name__)


class StorageRecord:
    """
    Non-secret wallet record: a value by (type, identifier), with flat string tags to search on.
    """

    def __init__(self, typ: str, value: str, tags: dict = None, ident: str = None) -> None:
        """
        Initialize record. Raise ValidationError if input tags do not map strings to strings.

        :param typ: record type - (typ, ident) identifies a record in the wallet
        :param value: record value
        :param tags: record tags (metadata) dict
        :param ident: record identifier - (typ, ident) identifies a record in the wallet
        """

        self._type = typ
        self._id = ident or uuid4().hex
        self._value = value

        if not StorageRecord.ok_tags(tags):
            LOGGER.debug('StorageRecord.__init__ <!< Tags %s must map strings to strings', tags)
            raise ValidationError('Tags {} must map strings to strings'.format(tags))

        self._tags = tags or {}  # store trivial tags as empty (for iteration), return as None

    @staticmethod
    def ok_tags(tags: dict) -> bool:
        """
        Whether input tags dict is flat, mapping strings to strings.
        """

        if not tags:
            return True
        return all(isinstance(k, str) and isinstance(tags[k], str) for k in tags)

    @property
    def type(self) -> str:
        """
        Accessor for record type.

        :return: type
        """

        return self._type

    @property
    def id(self) -> str:
        """
        Accessor for record identifier.

        :return: record identifier
        """

        return self._id

    @property
    def value(self) -> str:
        """
        Accessor for record value.

        :return: record value
        """

        return self._value

    @value.setter
    def value(self, val: str) -> None:
        """
        Accessor for record value.

        :param val: record value
        """

        self._value = val

    @property
    def value_json(self):
        """
        Accessor for record value, json-decoded.

        :return: record value as decoded from json
        """

        return json.loads(self._value)

    @property
    def tags(self) -> dict:
        """
        Accessor for record tags (metadata).

        :return: record tags
        """

        return self._tags or None  # store trivial tags as empty (for iteration), return as None

    @tags.setter
    def tags(self, val: dict) -> None:
        """
        Accessor for record tags (metadata).

        :param val: record tags
        """

        if not StorageRecord.ok_tags(val):
            LOGGER.debug('StorageRecord.tags <!< Tags %s must map strings to strings', val)
            raise ValidationError('Tags {} must map strings to strings'.format(val))

        self._tags = val or {}

    def matches(self, query: dict) -> bool:
        """
        Whether record tags match all (tag, value) pairs of input query.

        :param query: dict mapping tag names to values
        :return: whether all query pairs match record tags
        """

        return all(self._tags.get(k) == query[k] for k in query or {})

    def __eq__(self, other: 'StorageRecord') -> bool:
        """
        Equivalence operator. Two instances are equivalent when their attributes are.

        :param other: instance to test for equivalence
        :return: whether instances are equivalent
        """

        return self.type == other.type and self.id == other.id and self.value == other.value and self.tags == other.tags

    def __repr__(self) -> str:
        """
        Return representation.

        :return: string representation evaluating to construction call
        """

        return 'StorageRecord({}, {}, {}, {})'.format(self.type, self.value, self.tags, self.id)
