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

from typing import Union

import nacl.bindings
import nacl.exceptions
import nacl.utils

from base58 import b58decode, b58encode

from von_zkp.error import (
    AbsentMasterSecret,
    AbsentRecord,
    BadIdentifier,
    ExtantRecord,
    ValidationError,
    WalletState)
from von_zkp.util import did_for, ok_did
from von_zkp.wallet.didinfo import DIDInfo
from von_zkp.wallet.record import StorageRecord


LOGGER = logging.getLogger(__name__)


class Wallet:
    """
    Class encapsulating in-process wallet for an anchor's private material: signing keys
    on local DIDs, master secrets by label, and storage records by (type, identifier).
    """

    def __init__(self, name: str) -> None:
        """
        Initializer for wallet.

        :param name: wallet name
        """

        LOGGER.debug('Wallet.__init__ >>> name: %s', name)

        self._name = name
        self._opened = False
        self._did = None
        self._verkey = None
        self._dids = {}  # did -> (DIDInfo, secret key)
        self._master_secrets = {}  # label -> opaque master secret
        self._records = {}  # type -> {ident -> StorageRecord}

        LOGGER.debug('Wallet.__init__ <<<')

    @property
    def name(self) -> str:
        """
        Accessor for wallet name.

        :return: wallet name
        """

        return self._name

    @property
    def opened(self) -> bool:
        """
        Accessor for wallet state.

        :return: whether wallet is open
        """

        return self._opened

    @property
    def did(self) -> str:
        """
        Accessor for anchor DID: the first local DID that the wallet creates.

        :return: anchor DID
        """

        return self._did

    @property
    def verkey(self) -> str:
        """
        Accessor for anchor verification key.

        :return: anchor verification key
        """

        return self._verkey

    def _check_open(self, caller: str) -> None:
        if not self._opened:
            LOGGER.debug('Wallet.%s <!< Wallet %s is closed', caller, self.name)
            raise WalletState('Wallet {} is closed'.format(self.name))

    async def __aenter__(self) -> 'Wallet':
        """
        Context manager entry. Open wallet, for closure on context manager exit.

        :return: current object
        """

        LOGGER.debug('Wallet.__aenter__ >>>')

        rv = await self.open()
        LOGGER.debug('Wallet.__aenter__ <<<')
        return rv

    async def open(self) -> 'Wallet':
        """
        Explicit entry. Open wallet, for later closure via close().
        Raise WalletState if wallet is already open.

        :return: current object
        """

        LOGGER.debug('Wallet.open >>>')

        if self._opened:
            LOGGER.debug('Wallet.open <!< Wallet %s is already open', self.name)
            raise WalletState('Wallet {} is already open'.format(self.name))
        self._opened = True
        LOGGER.info('Opened wallet %s', self.name)

        LOGGER.debug('Wallet.open <<<')
        return self

    async def __aexit__(self, exc_type, exc, traceback) -> None:
        """
        Context manager exit. Close wallet.

        :param exc_type:
        :param exc:
        :param traceback:
        """

        LOGGER.debug('Wallet.__aexit__ >>>')

        await self.close()

        LOGGER.debug('Wallet.__aexit__ <<<')

    async def close(self) -> None:
        """
        Explicit exit. Close wallet. Private material persists for the life of the process.
        """

        LOGGER.debug('Wallet.close >>>')

        self._opened = False
        LOGGER.info('Closed wallet %s', self.name)

        LOGGER.debug('Wallet.close <<<')

    async def create_local_did(self, seed: Union[str, bytes] = None, metadata: dict = None) -> DIDInfo:
        """
        Create and store a new local DID on an ed25519 signing key derived from input seed
        (default random). The DID is the base58 encoding of the first 16 bytes of the verification key.
        The first local DID becomes the anchor DID.

        Raise WalletState if wallet is closed, ValidationError for a seed that is not 32 bytes long,
        or ExtantRecord if the DID already exists.

        :param seed: 32-character (or 32-byte) seed
        :param metadata: metadata to associate with the local DID
        :return: DIDInfo for new local DID
        """

        LOGGER.debug('Wallet.create_local_did >>> seed: [SEED] metadata: %s', metadata)

        self._check_open('create_local_did')

        if seed is None:
            seed = nacl.utils.random(nacl.bindings.crypto_sign_SEEDBYTES)
        elif isinstance(seed, str):
            seed = seed.encode('ascii')
        if len(seed) != nacl.bindings.crypto_sign_SEEDBYTES:
            LOGGER.debug('Wallet.create_local_did <!< Seed must be 32 bytes in length')
            raise ValidationError('Seed must be 32 bytes in length')

        (verkey, sigkey) = nacl.bindings.crypto_sign_seed_keypair(seed)
        did = did_for(verkey)
        if did in self._dids:
            LOGGER.debug('Wallet.create_local_did <!< DID %s already present in wallet %s', did, self.name)
            raise ExtantRecord('DID {} already present in wallet {}'.format(did, self.name))

        rv = DIDInfo(did, b58encode(verkey).decode('ascii'), dict(metadata or {}))
        self._dids[did] = (rv, sigkey)
        if self._did is None:
            self._did = rv.did
            self._verkey = rv.verkey
        LOGGER.info('Wallet %s created local DID %s', self.name, did)

        LOGGER.debug('Wallet.create_local_did <<< %s', rv)
        return rv

    async def get_local_did(self, loc_did: str) -> DIDInfo:
        """
        Get local DID info by DID. Raise WalletState if wallet is closed, BadIdentifier for
        bad DID, or AbsentRecord for no such local DID.

        :param loc_did: local DID
        :return: DIDInfo for local DID
        """

        LOGGER.debug('Wallet.get_local_did >>> loc_did: %s', loc_did)

        self._check_open('get_local_did')
        if not ok_did(loc_did):
            LOGGER.debug('Wallet.get_local_did <!< Bad DID %s', loc_did)
            raise BadIdentifier('Bad DID {}'.format(loc_did))
        if loc_did not in self._dids:
            LOGGER.debug('Wallet.get_local_did <!< Wallet %s has no local DID %s', self.name, loc_did)
            raise AbsentRecord('Wallet {} has no local DID {}'.format(self.name, loc_did))

        rv = self._dids[loc_did][0]
        LOGGER.debug('Wallet.get_local_did <<< %s', rv)
        return rv

    async def sign(self, message: bytes, loc_did: str = None) -> bytes:
        """
        Sign message with signing key on local DID (default anchor DID); return detached signature.
        Raise WalletState if wallet is closed, AbsentRecord for no such local DID.

        :param message: message to sign
        :param loc_did: local DID whose key signs
        :return: signature
        """

        LOGGER.debug('Wallet.sign >>> message: %s, loc_did: %s', message, loc_did)

        self._check_open('sign')
        loc_did = loc_did or self.did
        if loc_did not in self._dids:
            LOGGER.debug('Wallet.sign <!< Wallet %s has no local DID %s', self.name, loc_did)
            raise AbsentRecord('Wallet {} has no local DID {}'.format(self.name, loc_did))

        signed = nacl.bindings.crypto_sign(message, self._dids[loc_did][1])
        rv = signed[:nacl.bindings.crypto_sign_BYTES]

        LOGGER.debug('Wallet.sign <<< %s', rv)
        return rv

    @staticmethod
    def verify(message: bytes, signature: bytes, verkey: str) -> bool:
        """
        Verify detached signature on message against base58 verification key.

        :param message: signed message
        :param signature: signature to verify
        :param verkey: base58 verification key
        :return: whether signature is good
        """

        LOGGER.debug('Wallet.verify >>> message: %s, signature: %s, verkey: %s', message, signature, verkey)

        try:
            nacl.bindings.crypto_sign_open(signature + message, b58decode(verkey))
            rv = True
        except nacl.exceptions.BadSignatureError:
            rv = False

        LOGGER.debug('Wallet.verify <<< %s', rv)
        return rv

    async def write_master_secret(self, label: str, value: dict) -> None:
        """
        Store opaque master secret on input label. Raise WalletState if wallet is closed,
        or ExtantRecord if a different master secret already exists on the label.

        :param label: label for master secret
        :param value: opaque master secret
        """

        LOGGER.debug('Wallet.write_master_secret >>> label: %s, value: [SECRET]', label)

        self._check_open('write_master_secret')
        if label in self._master_secrets and self._master_secrets[label] != value:
            LOGGER.debug('Wallet.write_master_secret <!< Wallet %s has master secret on label %s', self.name, label)
            raise ExtantRecord('Wallet {} already has master secret on label {}'.format(self.name, label))
        self._master_secrets[label] = value

        LOGGER.debug('Wallet.write_master_secret <<<')

    async def get_master_secret(self, label: str) -> dict:
        """
        Get opaque master secret on input label. Raise WalletState if wallet is closed,
        AbsentMasterSecret for no master secret on label.

        :param label: label for master secret
        :return: opaque master secret
        """

        LOGGER.debug('Wallet.get_master_secret >>> label: %s', label)

        self._check_open('get_master_secret')
        if label not in self._master_secrets:
            LOGGER.debug('Wallet.get_master_secret <!< Wallet %s has no master secret on label %s', self.name, label)
            raise AbsentMasterSecret('Wallet {} has no master secret on label {}'.format(self.name, label))

        LOGGER.debug('Wallet.get_master_secret <<< [SECRET]')
        return self._master_secrets[label]

    async def has_master_secret(self, label: str) -> bool:
        """
        Whether wallet has master secret on input label.

        :param label: label for master secret
        :return: whether master secret exists on label
        """

        self._check_open('has_master_secret')
        return label in self._master_secrets

    async def write_non_secret(self, storec: StorageRecord) -> StorageRecord:
        """
        Add or replace storage record in wallet. Raise WalletState if wallet is closed.

        :param storec: storage record
        :return: record as written
        """

        LOGGER.debug('Wallet.write_non_secret >>> storec: %s', storec)

        self._check_open('write_non_secret')
        self._records.setdefault(storec.type, {})[storec.id] = storec
        rv = storec

        LOGGER.debug('Wallet.write_non_secret <<< %s', rv)
        return rv

    async def get_non_secret(self, typ: str, filt: Union[dict, str] = None) -> dict:
        """
        Return dict mapping each storage record identifier of input type to its record,
        on input identifier or tag query (default all of type).
        Raise WalletState if wallet is closed.

        :param typ: record type
        :param filt: record identifier, or dict mapping tags to values to match
        :return: dict mapping identifiers to storage records
        """

        LOGGER.debug('Wallet.get_non_secret >>> typ: %s, filt: %s', typ, filt)

        self._check_open('get_non_secret')
        records = self._records.get(typ, {})
        if isinstance(filt, str):
            rv = {filt: records[filt]} if filt in records else {}
        else:
            rv = {ident: rec for (ident, rec) in records.items() if rec.matches(filt)}

        LOGGER.debug('Wallet.get_non_secret <<< %s', rv)
        return rv

    async def get_record(self, typ: str, ident: str) -> StorageRecord:
        """
        Return storage record by type and identifier. Raise WalletState if wallet is closed,
        AbsentRecord for no such record.

        :param typ: record type
        :param ident: record identifier
        :return: storage record
        """

        LOGGER.debug('Wallet.get_record >>> typ: %s, ident: %s', typ, ident)

        self._check_open('get_record')
        rv = self._records.get(typ, {}).get(ident)
        if rv is None:
            LOGGER.debug('Wallet.get_record <!< Wallet %s has no %s record %s', self.name, typ, ident)
            raise AbsentRecord('Wallet {} has no {} record {}'.format(self.name, typ, ident))

        LOGGER.debug('Wallet.get_record <<< %s', rv)
        return rv

    async def delete_non_secret(self, typ: str, ident: str) -> None:
        """
        Remove storage record by type and identifier, if present. Raise WalletState if wallet is closed.

        :param typ: record type
        :param ident: record identifier
        """

        LOGGER.debug('Wallet.delete_non_secret >>> typ: %s, ident: %s', typ, ident)

        self._check_open('delete_non_secret')
        if self._records.get(typ, {}).pop(ident, None) is None:
            LOGGER.info('Wallet.delete_non_secret: no %s record %s to delete', typ, ident)

        LOGGER.debug('Wallet.delete_non_secret <<<')

    def __repr__(self) -> str:
        """
        Return representation.

        :return: string representation
        """

        return 'Wallet({})'.format(self.name)
