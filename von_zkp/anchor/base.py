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

from typing import Sequence, Union

from base58 import b58encode

from von_zkp.cache import RevoCacheEntry, CRED_DEF_CACHE, REVO_CACHE, SCHEMA_CACHE
from von_zkp.error import AbsentSchema, BadIdentifier, WalletState
from von_zkp.frill import canon_json
from von_zkp.indytween import SchemaKey
from von_zkp.ledger import IdentityLedger
from von_zkp.primitives import CredxPrimitives, Primitives
from von_zkp.util import ok_cred_def_id, ok_did, ok_rev_reg_id, ok_schema_id, schema_id, schema_key
from von_zkp.wallet import Wallet


LOGGER = logging.getLogger(__name__)


class BaseAnchor:
    """
    Base class for common anchor functionality. An anchor has a wallet for its private material,
    an identity ledger for public material, and a primitives backend for CL signature and
    accumulator operations. It has a cryptonym and signs its ledger writes with it.
    """

    def __init__(self, wallet: Wallet, ledger: IdentityLedger, primitives: Primitives = None, **kwargs) -> None:
        """
        Initializer for anchor. Retain wallet, ledger, and primitives backend (default indy-credx).

        :param wallet: wallet for anchor use
        :param ledger: identity ledger for anchor use
        :param primitives: CL primitives backend
        :param kwargs: place holders for super(); implementation ignores
        """

        LOGGER.debug(
            'BaseAnchor.__init__ >>> wallet: %s, ledger: %s, primitives: %s, kwargs: %s',
            wallet,
            ledger,
            primitives,
            kwargs)

        self._wallet = wallet
        self._ledger = ledger
        self._primitives = primitives or CredxPrimitives()

        LOGGER.debug('BaseAnchor.__init__ <<<')

    @property
    def wallet(self) -> Wallet:
        """
        Accessor for wallet.

        :return: wallet
        """

        return self._wallet

    @property
    def ledger(self) -> IdentityLedger:
        """
        Accessor for identity ledger.

        :return: identity ledger
        """

        return self._ledger

    @property
    def primitives(self) -> Primitives:
        """
        Accessor for CL primitives backend.

        :return: primitives backend
        """

        return self._primitives

    @property
    def name(self) -> str:
        """
        Accessor for anchor name, from wallet.

        :return: anchor (wallet) name
        """

        return self.wallet.name

    @property
    def did(self) -> str:
        """
        Accessor for anchor DID.

        :return: anchor DID
        """

        return self.wallet.did

    @property
    def verkey(self) -> str:
        """
        Accessor for anchor verification key.

        :return: anchor verification key
        """

        return self.wallet.verkey

    async def __aenter__(self) -> 'BaseAnchor':
        """
        Context manager entry.
        For use in monolithic call opening, using, and closing the anchor.

        :return: current object
        """

        LOGGER.debug('BaseAnchor.__aenter__ >>>')

        rv = await self.open()

        LOGGER.debug('BaseAnchor.__aenter__ <<<')
        return rv

    async def open(self) -> 'BaseAnchor':
        """
        Explicit entry. Register anchor cryptonym on the ledger if need be.
        Raise WalletState if wallet is closed or has no anchor DID.

        :return: current object
        """

        LOGGER.debug('BaseAnchor.open >>>')

        # Do not open wallet independently: allow for sharing open wallet over many anchor lifetimes
        if not self.wallet.opened:
            LOGGER.debug('BaseAnchor.open <!< Wallet %s is closed', self.name)
            raise WalletState('Wallet {} is closed'.format(self.name))
        if not self.did:
            LOGGER.debug('BaseAnchor.open <!< Wallet %s has no anchor DID', self.name)
            raise WalletState('Wallet {} has no anchor DID'.format(self.name))

        await self.ledger.add_nym(self.did, self.verkey)

        LOGGER.debug('BaseAnchor.open <<<')
        return self

    async def __aexit__(self, exc_type, exc, traceback) -> None:
        """
        Context manager exit.
        For use in monolithic call opening, using, and closing the anchor.

        :param exc_type:
        :param exc:
        :param traceback:
        """

        LOGGER.debug('BaseAnchor.__aexit__ >>> exc_type: %s, exc: %s, traceback: %s', exc_type, exc, traceback)

        await self.close()

        LOGGER.debug('BaseAnchor.__aexit__ <<<')

    async def close(self) -> None:
        """
        Explicit exit.
        For use when keeping anchor open across multiple calls.
        """

        LOGGER.debug('BaseAnchor.close >>>')

        # Do not close wallet independently: allow for sharing open wallet over many anchor lifetimes

        LOGGER.debug('BaseAnchor.close <<<')

    async def _sign_request(self, operation: str, data: dict) -> (dict, str):
        """
        Build ledger write request on operation and data; sign its canonical json with the anchor DID key.
        Raise WalletState if wallet is closed.

        :param operation: ledger operation name
        :param data: request data
        :return: request and its base58 signature
        """

        LOGGER.debug('BaseAnchor._sign_request >>> operation: %s, data: %s', operation, data)

        req = {
            'identifier': self.did,
            'operation': operation,
            'data': data
        }
        signature = await self.wallet.sign(canon_json(req).encode())
        rv = (req, b58encode(signature).decode('ascii'))

        LOGGER.debug('BaseAnchor._sign_request <<< %s', rv)
        return rv

    async def get_nym(self, target_did: str = None) -> dict:
        """
        Get cryptonym (including current verification key) for input DID (default own) from ledger.
        Return None if the ledger has no such cryptonym.

        :param target_did: DID of cryptonym to fetch (default own DID)
        :return: cryptonym
        """

        LOGGER.debug('BaseAnchor.get_nym >>> target_did: %s', target_did)

        if target_did and not ok_did(target_did):
            LOGGER.debug('BaseAnchor.get_nym <!< Bad DID %s', target_did)
            raise BadIdentifier('Bad DID {}'.format(target_did))

        rv = await self.ledger.get_nym(target_did or self.did)

        LOGGER.debug('BaseAnchor.get_nym <<< %s', rv)
        return rv

    async def get_schema(self, index: Union[SchemaKey, int, str]) -> dict:
        """
        Get schema from ledger by SchemaKey namedtuple (origin DID, name, version),
        sequence number, or schema identifier. Raise AbsentSchema for no such schema.

        Retrieve the schema from the schema cache if it has it; cache it
        en passant if it does not (and there is a corresponding schema on the ledger).

        :param index: schema key (origin DID, name, version), sequence number, or schema identifier
        :return: schema as published
        """

        LOGGER.debug('BaseAnchor.get_schema >>> index: %s', index)

        with SCHEMA_CACHE.lock:
            if SCHEMA_CACHE.contains(index):
                LOGGER.info('BaseAnchor.get_schema: got schema %s from cache', index)
                rv = SCHEMA_CACHE[index]
                LOGGER.debug('BaseAnchor.get_schema <<< %s', rv)
                return rv

            if isinstance(index, SchemaKey):
                rv = await self.ledger.get_schema(schema_id(*index))
            elif isinstance(index, int):
                rv = await self.ledger.get_schema(index)
            elif isinstance(index, str) and ok_schema_id(index):
                rv = await self.ledger.get_schema(index)
            else:
                LOGGER.debug('BaseAnchor.get_schema <!< Bad schema index %s', index)
                raise AbsentSchema('Attempt to get schema on ({}) {}, must use schema key, id, or an int'.format(
                    type(index),
                    index))

            SCHEMA_CACHE[schema_key(rv['id'])] = rv  # cache indexes by both seq no and schema key en passant
            LOGGER.info('BaseAnchor.get_schema: got schema %s from ledger', index)

        LOGGER.debug('BaseAnchor.get_schema <<< %s', rv)
        return rv

    async def get_cred_def(self, cd_id: str) -> dict:
        """
        Get credential definition from ledger by its identifier. Raise AbsentCredDef for no such
        credential definition.

        Retrieve the credential definition from the credential definition cache if it has it; cache it
        en passant if it does not (and if there is a corresponding credential definition on the ledger).

        :param cd_id: (credential definition) identifier string ('<issuer-did>:3:CL:<schema-seq-no>:<tag>')
        :return: credential definition as published
        """

        LOGGER.debug('BaseAnchor.get_cred_def >>> cd_id: %s', cd_id)

        if not ok_cred_def_id(cd_id):
            LOGGER.debug('BaseAnchor.get_cred_def <!< Bad cred def id %s', cd_id)
            raise BadIdentifier('Bad cred def id {}'.format(cd_id))

        with CRED_DEF_CACHE.lock:
            if cd_id in CRED_DEF_CACHE:
                LOGGER.info('BaseAnchor.get_cred_def: got cred def for %s from cache', cd_id)
                rv = CRED_DEF_CACHE[cd_id]
                LOGGER.debug('BaseAnchor.get_cred_def <<< %s', rv)
                return rv

            rv = await self.ledger.get_cred_def(cd_id)
            CRED_DEF_CACHE[cd_id] = rv
            LOGGER.info('BaseAnchor.get_cred_def: got cred def %s from ledger', cd_id)

        LOGGER.debug('BaseAnchor.get_cred_def <<< %s', rv)
        return rv

    async def get_rev_reg_def(self, rr_id: str) -> dict:
        """
        Get revocation registry definition from ledger by its identifier. Raise AbsentRevReg
        for no such revocation registry.

        Retrieve the revocation registry definition from the revocation cache if it has it;
        cache it en passant if it does not (and such a revocation registry definition exists on the ledger).

        :param rr_id: (revocation registry) identifier string, of the format
            '<issuer-did>:4:<issuer-did>:3:CL:<schema-seq-no>:<tag>:CL_ACCUM:<tag>'
        :return: revocation registry definition as published
        """

        LOGGER.debug('BaseAnchor.get_rev_reg_def >>> rr_id: %s', rr_id)

        if not ok_rev_reg_id(rr_id):
            LOGGER.debug('BaseAnchor.get_rev_reg_def <!< Bad rev reg id %s', rr_id)
            raise BadIdentifier('Bad rev reg id {}'.format(rr_id))

        with REVO_CACHE.lock:
            revo_cache_entry = REVO_CACHE.get(rr_id, None)
            if revo_cache_entry:
                LOGGER.info('BaseAnchor.get_rev_reg_def: rev reg def for %s from cache', rr_id)
                rv = revo_cache_entry.rev_reg_def
            else:
                rv = await self.ledger.get_rev_reg_def(rr_id)
                REVO_CACHE[rr_id] = RevoCacheEntry(rv, None)

        LOGGER.debug('BaseAnchor.get_rev_reg_def <<< %s', rv)
        return rv

    async def get_rev_reg_deltas(self, rr_id: str, fro: int = 0) -> Sequence[dict]:
        """
        Get revocation registry delta log entries from version fro onward. The delta log moves:
        fetch any entries past those in the revocation cache from the ledger on every call.
        Raise AbsentRevReg for no such revocation registry.

        :param rr_id: revocation registry identifier
        :param fro: earliest version of interest
        :return: log entries in version order
        """

        LOGGER.debug('BaseAnchor.get_rev_reg_deltas >>> rr_id: %s, fro: %s', rr_id, fro)

        await self.get_rev_reg_def(rr_id)  # ensure revocation cache entry
        with REVO_CACHE.lock:
            revo_cache_entry = REVO_CACHE[rr_id]
            revo_cache_entry.extend(await self.ledger.get_rev_reg_deltas(rr_id, revo_cache_entry.next_version))
            rv = revo_cache_entry.delta_frames[fro:]

        LOGGER.debug('BaseAnchor.get_rev_reg_deltas <<< %s', rv)
        return rv

    async def _merge_deltas(self, frames: Sequence[dict]) -> dict:
        """
        Fold opaque deltas of input delta log entries into one, in version order.

        :param frames: delta log entries
        :return: merged opaque delta
        """

        rv = frames[0]['delta']
        for frame in frames[1:]:
            rv = await self.primitives.merge_rev_reg_deltas(rv, frame['delta'])
        return rv

    async def _build_witness(self, rr_id: str, index: int, tails_path: str) -> dict:
        """
        Build witness for credential revocation index at latest version of revocation registry delta log,
        folding the entire log since registry creation.

        :param rr_id: revocation registry identifier
        :param index: credential revocation index
        :param tails_path: path to local tails file
        :return: witness
        """

        LOGGER.debug('BaseAnchor._build_witness >>> rr_id: %s, index: %s, tails_path: %s', rr_id, index, tails_path)

        rr_def = await self.get_rev_reg_def(rr_id)
        frames = await self.get_rev_reg_deltas(rr_id)
        state = await self.primitives.create_witness(
            rr_def['definition'],
            await self._merge_deltas(frames),
            index,
            frames[-1]['timestamp'],
            tails_path)

        rv = {
            'revRegId': rr_id,
            'revocationId': index,
            'version': frames[-1]['version'],
            'state': state
        }
        LOGGER.debug('BaseAnchor._build_witness <<< %s', rv)
        return rv

    def __str__(self) -> str:
        """
        Return string representation for current object.

        :return: string representation for current object
        """

        return '{}({})'.format(self.__class__.__name__, self.name)
