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

from copy import deepcopy
from threading import RLock
from time import time
from typing import Sequence, Union

from base58 import b58decode

from von_zkp.error import AbsentCredDef, AbsentRevReg, AbsentSchema, BadLedgerTxn
from von_zkp.frill import canon_json, iso_now
from von_zkp.ledger.base import IdentityLedger
from von_zkp.util import did_for, ok_did, rev_reg_id2cred_def_id
from von_zkp.wallet import Wallet


LOGGER = logging.getLogger(__name__)


class MemoryLedger(IdentityLedger):
    """
    In-process identity ledger for local deployments and tests. Every write is a transaction
    on a single ledger-wide sequence number; revocation registry delta logs are append-only.
    """

    def __init__(self, name: str = 'memory') -> None:
        """
        Initializer for in-process ledger.

        :param name: ledger name
        """

        LOGGER.debug('MemoryLedger.__init__ >>> name: %s', name)

        self._name = name
        self._lock = RLock()
        self._seq_no = 0
        self._last_time = 0
        self._nyms = {}
        self._schemas = {}
        self._schema_ids = {}  # seq no -> schema id
        self._cred_defs = {}
        self._rev_reg_defs = {}
        self._delta_logs = {}  # rr id -> [entry, ...]
        self._tokens = {}  # rr id -> {token: version}

        LOGGER.debug('MemoryLedger.__init__ <<<')

    @property
    def name(self) -> str:
        """
        Accessor for ledger name.

        :return: ledger name
        """

        return self._name

    def _next_seq_no(self) -> int:
        self._seq_no += 1
        return self._seq_no

    def _next_time(self) -> int:
        """
        Return transaction time in epoch seconds, strictly increasing across transactions.
        """

        self._last_time = max(int(time()), self._last_time + 1)
        return self._last_time

    def _check_signed(self, req: dict, signature: str, owner_did: str, caller: str) -> None:
        """
        Raise BadLedgerTxn unless request submitter is a nym on the ledger, owns the item
        of interest, and signed the request.

        :param req: request
        :param signature: base58 signature over request canonical json
        :param owner_did: DID owning item to write
        :param caller: calling method name, for logging
        """

        submitter = req.get('identifier')
        if submitter not in self._nyms:
            LOGGER.debug('MemoryLedger.%s <!< Unknown nym %s', caller, submitter)
            raise BadLedgerTxn('Unknown nym {}'.format(submitter))
        if submitter != owner_did:
            LOGGER.debug('MemoryLedger.%s <!< Submitter %s does not own item of %s', caller, submitter, owner_did)
            raise BadLedgerTxn('Submitter {} cannot write for {}'.format(submitter, owner_did))
        try:
            signed = Wallet.verify(canon_json(req).encode(), b58decode(signature), self._nyms[submitter]['verkey'])
        except ValueError as x_sig:
            raise BadLedgerTxn('Malformed signature on request from {}'.format(submitter)) from x_sig
        if not signed:
            LOGGER.debug('MemoryLedger.%s <!< Bad signature on request from %s', caller, submitter)
            raise BadLedgerTxn('Bad signature on request from {}'.format(submitter))

    async def add_nym(self, did: str, verkey: str) -> dict:
        """
        Register self-certifying nym. Raise BadLedgerTxn if the DID does not derive from the verification key,
        or if the ledger already has the DID on a different key.

        :param did: DID
        :param verkey: base58 verification key
        :return: nym record
        """

        LOGGER.debug('MemoryLedger.add_nym >>> did: %s, verkey: %s', did, verkey)

        if not ok_did(did) or did_for(verkey) != did:
            LOGGER.debug('MemoryLedger.add_nym <!< DID %s does not derive from verkey %s', did, verkey)
            raise BadLedgerTxn('DID {} does not derive from verification key {}'.format(did, verkey))

        with self._lock:
            if did in self._nyms:
                if self._nyms[did]['verkey'] != verkey:
                    LOGGER.debug('MemoryLedger.add_nym <!< Nym %s already on ledger on another key', did)
                    raise BadLedgerTxn('Nym {} already on ledger on another key'.format(did))
            else:
                self._nyms[did] = {'did': did, 'verkey': verkey, 'seqNo': self._next_seq_no()}
                LOGGER.info('Ledger %s added nym %s', self.name, did)
            rv = deepcopy(self._nyms[did])

        LOGGER.debug('MemoryLedger.add_nym <<< %s', rv)
        return rv

    async def get_nym(self, did: str) -> dict:
        """
        Return nym record for DID, or None for no such nym.

        :param did: DID
        :return: nym record or None
        """

        LOGGER.debug('MemoryLedger.get_nym >>> did: %s', did)

        with self._lock:
            rv = deepcopy(self._nyms.get(did))

        LOGGER.debug('MemoryLedger.get_nym <<< %s', rv)
        return rv

    async def publish_schema(self, req: dict, signature: str) -> dict:
        """
        Publish schema and assign its sequence number. Publishing a schema that the ledger already
        has returns the schema as first published.

        :param req: signed request carrying schema in its data
        :param signature: base58 signature over request
        :return: schema as published
        """

        LOGGER.debug('MemoryLedger.publish_schema >>> req: %s', req)

        schema = req.get('data', {})
        s_id = schema.get('id', '')
        self._check_signed(req, signature, s_id.split(':')[0], 'publish_schema')

        with self._lock:
            if s_id in self._schemas:
                LOGGER.info('Ledger %s already has schema %s', self.name, s_id)
            else:
                published = deepcopy(schema)
                published['seqNo'] = self._next_seq_no()
                self._schemas[s_id] = published
                self._schema_ids[published['seqNo']] = s_id
                LOGGER.info('Ledger %s published schema %s on seq no %s', self.name, s_id, published['seqNo'])
            rv = deepcopy(self._schemas[s_id])

        LOGGER.debug('MemoryLedger.publish_schema <<< %s', rv)
        return rv

    async def get_schema(self, index: Union[str, int]) -> dict:
        """
        Return schema by identifier or sequence number. Raise AbsentSchema for no such schema.

        :param index: schema identifier or sequence number
        :return: schema
        """

        LOGGER.debug('MemoryLedger.get_schema >>> index: %s', index)

        with self._lock:
            s_id = self._schema_ids.get(index) if isinstance(index, int) else index
            if s_id not in self._schemas:
                LOGGER.debug('MemoryLedger.get_schema <!< No schema on ledger at %s', index)
                raise AbsentSchema('No schema on ledger at {}'.format(index))
            rv = deepcopy(self._schemas[s_id])

        LOGGER.debug('MemoryLedger.get_schema <<< %s', rv)
        return rv

    async def publish_cred_def(self, req: dict, signature: str) -> dict:
        """
        Publish credential definition. Raise BadLedgerTxn if the ledger already has it.

        :param req: signed request carrying credential definition in its data
        :param signature: base58 signature over request
        :return: credential definition as published
        """

        LOGGER.debug('MemoryLedger.publish_cred_def >>> req: %s', req)

        cred_def = req.get('data', {})
        cd_id = cred_def.get('id', '')
        self._check_signed(req, signature, cd_id.split(':')[0], 'publish_cred_def')

        with self._lock:
            if cd_id in self._cred_defs:
                LOGGER.debug('MemoryLedger.publish_cred_def <!< Ledger already has cred def %s', cd_id)
                raise BadLedgerTxn('Ledger {} already has credential definition {}'.format(self.name, cd_id))
            if cred_def.get('schemaId') not in self._schemas:
                LOGGER.debug('MemoryLedger.publish_cred_def <!< No schema %s on ledger', cred_def.get('schemaId'))
                raise BadLedgerTxn('No schema {} on ledger'.format(cred_def.get('schemaId')))
            published = deepcopy(cred_def)
            published['seqNo'] = self._next_seq_no()
            self._cred_defs[cd_id] = published
            LOGGER.info('Ledger %s published cred def %s', self.name, cd_id)
            rv = deepcopy(published)

        LOGGER.debug('MemoryLedger.publish_cred_def <<< %s', rv)
        return rv

    async def get_cred_def(self, cd_id: str) -> dict:
        """
        Return credential definition by identifier. Raise AbsentCredDef for no such credential definition.

        :param cd_id: credential definition identifier
        :return: credential definition
        """

        LOGGER.debug('MemoryLedger.get_cred_def >>> cd_id: %s', cd_id)

        with self._lock:
            if cd_id not in self._cred_defs:
                LOGGER.debug('MemoryLedger.get_cred_def <!< No cred def %s on ledger', cd_id)
                raise AbsentCredDef('No credential definition {} on ledger'.format(cd_id))
            rv = deepcopy(self._cred_defs[cd_id])

        LOGGER.debug('MemoryLedger.get_cred_def <<< %s', rv)
        return rv

    async def publish_rev_reg_def(self, req: dict, signature: str) -> dict:
        """
        Publish revocation registry definition and open its (empty) delta log.
        Raise BadLedgerTxn if the ledger already has it, or has no credential definition for it.

        :param req: signed request carrying revocation registry definition in its data
        :param signature: base58 signature over request
        :return: revocation registry definition as published
        """

        LOGGER.debug('MemoryLedger.publish_rev_reg_def >>> req: %s', req)

        rr_def = req.get('data', {})
        rr_id = rr_def.get('id', '')
        self._check_signed(req, signature, rr_id.split(':')[0], 'publish_rev_reg_def')

        with self._lock:
            if rr_id in self._rev_reg_defs:
                LOGGER.debug('MemoryLedger.publish_rev_reg_def <!< Ledger already has rev reg def %s', rr_id)
                raise BadLedgerTxn('Ledger {} already has revocation registry definition {}'.format(self.name, rr_id))
            if rev_reg_id2cred_def_id(rr_id) not in self._cred_defs:
                LOGGER.debug('MemoryLedger.publish_rev_reg_def <!< No cred def on ledger for %s', rr_id)
                raise BadLedgerTxn('No credential definition on ledger for {}'.format(rr_id))
            published = deepcopy(rr_def)
            published['seqNo'] = self._next_seq_no()
            self._rev_reg_defs[rr_id] = published
            self._delta_logs[rr_id] = []
            self._tokens[rr_id] = {}
            LOGGER.info('Ledger %s published rev reg def %s', self.name, rr_id)
            rv = deepcopy(published)

        LOGGER.debug('MemoryLedger.publish_rev_reg_def <<< %s', rv)
        return rv

    async def get_rev_reg_def(self, rr_id: str) -> dict:
        """
        Return revocation registry definition by identifier. Raise AbsentRevReg for no such registry.

        :param rr_id: revocation registry identifier
        :return: revocation registry definition
        """

        LOGGER.debug('MemoryLedger.get_rev_reg_def >>> rr_id: %s', rr_id)

        with self._lock:
            if rr_id not in self._rev_reg_defs:
                LOGGER.debug('MemoryLedger.get_rev_reg_def <!< No rev reg def %s on ledger', rr_id)
                raise AbsentRevReg('No revocation registry definition {} on ledger'.format(rr_id))
            rv = deepcopy(self._rev_reg_defs[rr_id])

        LOGGER.debug('MemoryLedger.get_rev_reg_def <<< %s', rv)
        return rv

    async def append_rev_reg_delta(self, req: dict, signature: str) -> (dict, bool):
        """
        Append delta to revocation registry delta log, atomically. Return the original log entry,
        unappended, for a token that the log already holds.

        :param req: signed request carrying delta in its data
        :param signature: base58 signature over request
        :return: log entry and whether this call appended it
        """

        LOGGER.debug('MemoryLedger.append_rev_reg_delta >>> req: %s', req)

        data = req.get('data', {})
        rr_id = data.get('revRegId', '')
        self._check_signed(req, signature, rr_id.split(':')[0], 'append_rev_reg_delta')

        with self._lock:
            if rr_id not in self._delta_logs:
                LOGGER.debug('MemoryLedger.append_rev_reg_delta <!< No rev reg def %s on ledger', rr_id)
                raise AbsentRevReg('No revocation registry definition {} on ledger'.format(rr_id))

            token = data.get('token')
            if token in self._tokens[rr_id]:
                rv = (deepcopy(self._delta_logs[rr_id][self._tokens[rr_id][token]]), False)
                LOGGER.info('Ledger %s already has delta on token %s for %s', self.name, token, rr_id)
                LOGGER.debug('MemoryLedger.append_rev_reg_delta <<< %s', rv)
                return rv

            entry = {
                'revRegId': rr_id,
                'version': len(self._delta_logs[rr_id]),
                'seqNo': self._next_seq_no(),
                'timestamp': self._next_time(),
                'token': token,
                'issued': list(data.get('issued') or []),
                'revoked': list(data.get('revoked') or []),
                'delta': deepcopy(data.get('delta')),
                'created': iso_now()
            }
            self._delta_logs[rr_id].append(entry)
            self._tokens[rr_id][token] = entry['version']
            LOGGER.info('Ledger %s appended delta version %s to %s', self.name, entry['version'], rr_id)
            rv = (deepcopy(entry), True)

        LOGGER.debug('MemoryLedger.append_rev_reg_delta <<< %s', rv)
        return rv

    async def get_rev_reg_deltas(self, rr_id: str, fro: int = None, to: int = None) -> Sequence[dict]:
        """
        Return ordered slice of revocation registry delta log, from version fro to version to inclusive
        (default entire log). Raise AbsentRevReg for no such registry.

        :param rr_id: revocation registry identifier
        :param fro: earliest version of interest
        :param to: latest version of interest
        :return: log entries in version order
        """

        LOGGER.debug('MemoryLedger.get_rev_reg_deltas >>> rr_id: %s, fro: %s, to: %s', rr_id, fro, to)

        with self._lock:
            if rr_id not in self._delta_logs:
                LOGGER.debug('MemoryLedger.get_rev_reg_deltas <!< No rev reg def %s on ledger', rr_id)
                raise AbsentRevReg('No revocation registry definition {} on ledger'.format(rr_id))
            log = self._delta_logs[rr_id]
            rv = deepcopy(log[max(fro or 0, 0):(len(log) if to is None else to + 1)])

        LOGGER.debug('MemoryLedger.get_rev_reg_deltas <<< %s', rv)
        return rv

    async def get_rev_reg_delta_by_token(self, rr_id: str, token: str) -> dict:
        """
        Return log entry on input idempotence token, or None for no such entry.

        :param rr_id: revocation registry identifier
        :param token: idempotence token
        :return: log entry or None
        """

        LOGGER.debug('MemoryLedger.get_rev_reg_delta_by_token >>> rr_id: %s, token: %s', rr_id, token)

        with self._lock:
            version = self._tokens.get(rr_id, {}).get(token)
            rv = None if version is None else deepcopy(self._delta_logs[rr_id][version])

        LOGGER.debug('MemoryLedger.get_rev_reg_delta_by_token <<< %s', rv)
        return rv

    async def latest_rev_reg_version(self, rr_id: str) -> int:
        """
        Return version of latest entry in revocation registry delta log. Raise AbsentRevReg for no such
        registry or for one with an empty log.

        :param rr_id: revocation registry identifier
        :return: latest version
        """

        LOGGER.debug('MemoryLedger.latest_rev_reg_version >>> rr_id: %s', rr_id)

        with self._lock:
            if not self._delta_logs.get(rr_id):
                LOGGER.debug('MemoryLedger.latest_rev_reg_version <!< No delta log for %s on ledger', rr_id)
                raise AbsentRevReg('No revocation registry delta log for {} on ledger'.format(rr_id))
            rv = len(self._delta_logs[rr_id]) - 1

        LOGGER.debug('MemoryLedger.latest_rev_reg_version <<< %s', rv)
        return rv

    def __repr__(self) -> str:
        """
        Return representation.

        :return: string representation
        """

        return 'MemoryLedger({})'.format(self.name)
