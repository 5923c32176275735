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


import asyncio
import json
import logging

from hashlib import sha256
from typing import Sequence
from uuid import uuid4

from von_zkp.anchor.origin import Origin
from von_zkp.anchor.rrbuilder import RevRegBuilder
from von_zkp.cache import CRED_DEF_CACHE
from von_zkp.error import (
    AbsentCredDef,
    AbsentRecord,
    AbsentRevReg,
    AbsentTails,
    BadAttribute,
    BadIdentifier,
    CapacityError,
    CorruptWallet,
    ProtocolError,
    ValidationError)
from von_zkp.frill import canon_json, iso_now
from von_zkp.handshake import Handshake, OfferState, OFFER_TRANSITIONS
from von_zkp.indytween import encode, raw
from von_zkp.ledger import IdentityLedger
from von_zkp.primitives import Primitives, RevocationConfig
from von_zkp.tails import Tails
from von_zkp.util import (
    cred_def_id,
    ok_cred_def_id,
    ok_rev_reg_id,
    ok_schema_id,
    rev_reg_id2cred_def_id,
    rev_reg_token)
from von_zkp.wallet import StorageRecord, Wallet
from von_zkp.wallet.record import TYPE_CRED_DEF_PRIVATE, TYPE_CRED_OFFER, TYPE_REV_ID_INFO, TYPE_REV_REG_PRIVATE


LOGGER = logging.getLogger(__name__)

CRED_CONTEXT = ['https://www.w3.org/2018/credentials/v1', 'https://schema.org']


class Issuer(Origin, RevRegBuilder):
    """
    Mixin for anchor acting in role of Issuer. An Issuer creates schemata and credential definitions
    and publishes them to the ledger, offers and issues credentials, and revokes credentials.
    Revocation support involves the management of tails files and revocation registries.
    """

    def __init__(self, wallet: Wallet, ledger: IdentityLedger, primitives: Primitives = None, **kwargs) -> None:
        """
        Initializer for Issuer anchor. Retain input parameters; see RevRegBuilder.__init__() for configuration.

        :param wallet: wallet for anchor use
        :param ledger: identity ledger for anchor use
        :param primitives: CL primitives backend
        :param config: issuer configuration dict
        """

        LOGGER.debug('Issuer.__init__ >>> wallet: %s, ledger: %s, kwargs: %s', wallet, ledger, kwargs)

        super().__init__(wallet, ledger, primitives, **kwargs)
        self._rr_locks = {}
        self._offers = Handshake('offer', OFFER_TRANSITIONS)

        LOGGER.debug('Issuer.__init__ <<<')

    def _rr_lock(self, rr_id: str) -> asyncio.Lock:
        """
        Return single-writer lock for revocation registry mutations.
        """

        return self._rr_locks.setdefault(rr_id, asyncio.Lock())

    async def _cred_def_private(self, cd_id: str) -> dict:
        """
        Return private key and key correctness proof for own credential definition.
        Raise CorruptWallet if the wallet does not have it.
        """

        try:
            return (await self.wallet.get_record(TYPE_CRED_DEF_PRIVATE, cd_id)).value_json
        except AbsentRecord:
            LOGGER.debug('Issuer._cred_def_private <!< Wallet %s has no private key for %s', self.name, cd_id)
            raise CorruptWallet('Wallet {} has no private key for cred def {}'.format(self.name, cd_id))

    async def create_cred_def(self, s_id: str, revocation: bool = True) -> dict:
        """
        Create a credential definition as Issuer, store its private key in the wallet, and publish it to the ledger.
        Operation is idempotent on schema and revocation support: if the ledger already has the credential
        definition and the wallet its private key, return the credential definition as published.

        Raise BadIdentifier for bad schema id, AbsentSchema for no such schema, CryptoError on key generation
        failure, or CorruptWallet if the ledger has the credential definition but the wallet has no private key.

        :param s_id: schema identifier
        :param revocation: whether to support revocation for cred def
        :return: credential definition as it appears on ledger
        """

        LOGGER.debug('Issuer.create_cred_def >>> s_id: %s, revocation: %s', s_id, revocation)

        if not ok_schema_id(s_id):
            LOGGER.debug('Issuer.create_cred_def <!< Bad schema id %s', s_id)
            raise BadIdentifier('Bad schema id {}'.format(s_id))

        schema = await self.get_schema(s_id)
        cd_id = cred_def_id(self.did, schema['seqNo'], revocation)

        with CRED_DEF_CACHE.lock:
            try:
                rv = await self.get_cred_def(cd_id)
            except AbsentCredDef:
                rv = None  # OK - about to create, store, and publish it
            private_key_ok = bool(await self.wallet.get_non_secret(TYPE_CRED_DEF_PRIVATE, cd_id))

            if rv:
                if not private_key_ok:
                    LOGGER.debug('Issuer.create_cred_def <!< Corrupt wallet %s has no private key for %s', self.name, cd_id)
                    raise CorruptWallet('Corrupt Issuer wallet {} has no private key for cred def {} on ledger'.format(
                        self.name,
                        cd_id))
                LOGGER.info(
                    'Cred def on schema %s version %s already exists on ledger; Issuer %s not publishing another',
                    schema['name'],
                    schema['version'],
                    self.name)
            else:
                (cred_def, cred_def_private, key_proof) = await self.primitives.create_cred_def(
                    self.did,
                    schema,
                    cd_id.split(':')[-1],
                    revocation)
                await self.wallet.write_non_secret(StorageRecord(
                    TYPE_CRED_DEF_PRIVATE,
                    json.dumps({
                        'private': cred_def_private,
                        'keyCorrectnessProof': key_proof
                    }),
                    {'schema_id': s_id},
                    cd_id))
                (req, signature) = await self._sign_request('cred_def', {
                    'id': cd_id,
                    'schemaId': s_id,
                    'revocation': revocation,
                    'definition': cred_def,
                    'keyCorrectnessProof': key_proof
                })
                rv = await self.ledger.publish_cred_def(req, signature)
                CRED_DEF_CACHE[cd_id] = rv
                LOGGER.info('Issuer %s published cred def %s', self.name, cd_id)

        LOGGER.debug('Issuer.create_cred_def <<< %s', rv)
        return rv

    async def create_cred_offer(self, proposal: dict, cd_id: str) -> dict:
        """
        Create credential offer as Issuer in response to credential proposal, on own credential definition.
        Record its nonce as pending, for one issuance only.

        Raise BadIdentifier for bad cred def id, ProtocolError if the proposal does not name this issuer
        and the schema of the credential definition, or CorruptWallet if the wallet has no private key
        for the credential definition.

        :param proposal: credential proposal as HolderProver.create_cred_proposal() creates it
        :param cd_id: credential definition identifier
        :return: credential offer for use in credential request at HolderProver
        """

        LOGGER.debug('Issuer.create_cred_offer >>> proposal: %s, cd_id: %s', proposal, cd_id)

        if not ok_cred_def_id(cd_id, self.did):
            LOGGER.debug('Issuer.create_cred_offer <!< Bad cred def id %s', cd_id)
            raise BadIdentifier('Bad cred def id {}'.format(cd_id))

        cred_def = await self.get_cred_def(cd_id)
        if proposal.get('issuer') != self.did or proposal.get('schema') != cred_def['schemaId']:
            LOGGER.debug(
                'Issuer.create_cred_offer <!< Proposal %s does not name issuer %s on schema %s',
                proposal.get('id'),
                self.did,
                cred_def['schemaId'])
            raise ProtocolError('Proposal {} does not name issuer {} on schema {}'.format(
                proposal.get('id'),
                self.did,
                cred_def['schemaId']))

        self._offers.check(proposal['id'], OfferState.OFFER_SENT)
        key_proof = (await self._cred_def_private(cd_id))['keyCorrectnessProof']
        offer = await self.primitives.create_cred_offer(cred_def['schemaId'], cred_def['definition'], key_proof)

        rv = {
            'type': 'EvanZKPCredentialOffering',
            'id': proposal['id'],
            'issuer': self.did,
            'subject': proposal['subject'],
            'schema': cred_def['schemaId'],
            'credentialDefinition': cd_id,
            'nonce': offer['nonce'],
            'offer': offer
        }
        await self.wallet.write_non_secret(StorageRecord(
            TYPE_CRED_OFFER,
            json.dumps(rv),
            {'cd_id': cd_id, 'thread_id': proposal['id']},
            offer['nonce']))
        self._offers.advance(proposal['id'], OfferState.OFFER_SENT)

        LOGGER.debug('Issuer.create_cred_offer <<< %s', rv)
        return rv

    async def _take_offer(self, request: dict) -> dict:
        """
        Consume pending offer that credential request answers. Raise ProtocolError on a nonce
        that matches no pending offer on the same credential definition and thread.

        :param request: credential request
        :return: pending offer
        """

        pending = (await self.wallet.get_non_secret(TYPE_CRED_OFFER, str(request.get('nonce')))).get(
            str(request.get('nonce')))
        if not pending or pending.tags != {
                'cd_id': request.get('credentialDefinition'),
                'thread_id': request.get('id')}:
            LOGGER.debug('Issuer._take_offer <!< Stale or mismatched nonce %s', request.get('nonce'))
            raise ProtocolError('Credential request carries stale or mismatched nonce')

        await self.wallet.delete_non_secret(TYPE_CRED_OFFER, pending.id)
        return pending.value_json

    def _cred_values(self, schema: dict, values: dict) -> (dict, dict):
        """
        Validate raw attribute values against schema; return raw and encoded values on all schema
        attributes, signing any absent optional attribute as null. Raise BadAttribute on any attribute
        unknown to the schema, or on a missing required attribute.

        :param schema: schema as published
        :param values: dict mapping attribute names to original values
        :return: dicts mapping attribute names to raw and to encoded values
        """

        unknown = [attr for attr in values if attr not in schema['attrNames']]
        if unknown:
            LOGGER.debug('Issuer._cred_values <!< Attributes %s not in schema %s', unknown, schema['id'])
            raise BadAttribute('Attributes {} not in schema {}'.format(unknown, schema['id']))

        required = schema.get('requiredProperties', schema['attrNames'])
        missing = [attr for attr in required if values.get(attr) is None]
        if missing:
            LOGGER.debug('Issuer._cred_values <!< Missing required attributes %s', missing)
            raise BadAttribute('Missing required attributes {} for schema {}'.format(missing, schema['id']))

        raws = {attr: raw(values.get(attr)) for attr in schema['attrNames']}
        return (raws, {attr: encode(raws[attr]) for attr in raws})  # encode raw: verifiers re-encode revealed raws

    async def _active_rev_reg_id(self, cd_id: str) -> str:
        """
        Return current revocation registry identifier on credential definition, creating the first
        one if configured to roll registries automatically. Raise AbsentRevReg otherwise.
        """

        try:
            return Tails.current_rev_reg_id(self.dir_tails, cd_id)
        except AbsentTails:
            if self.config.get('rr-auto-roll', False):
                return await self._roll_rev_reg(cd_id)
            LOGGER.debug('Issuer._active_rev_reg_id <!< No rev reg on cred def %s', cd_id)
            raise AbsentRevReg('No revocation registry on cred def {}'.format(cd_id))

    async def _roll_rev_reg(self, cd_id: str, rr_id_full: str = None, max_cred_num: int = None) -> str:
        """
        Roll over past full (or absent) revocation registry on credential definition: return current
        registry if a concurrent issuance already rolled over, otherwise create a new one.

        :param cd_id: credential definition identifier
        :param rr_id_full: identifier of full revocation registry (None for none yet)
        :param max_cred_num: size of new registry (default per configuration)
        :return: identifier of revocation registry to issue into
        """

        async with self._cd_lock(cd_id):
            try:
                rv = Tails.current_rev_reg_id(self.dir_tails, cd_id)
            except AbsentTails:
                rv = None
            if rv is None or rv == rr_id_full:
                rv = (await self._create_rev_reg(cd_id, max_cred_num))['id']
                LOGGER.info('Issuer %s rolled over to new rev reg %s on cred def %s', self.name, rv, cd_id)

        return rv

    async def _issue_revocable(
            self,
            cred_def: dict,
            offer: dict,
            request: dict,
            raws: dict,
            encodeds: dict,
            rr_id: str = None) -> (dict, str, int, dict):
        """
        Allocate next free index in revocation registry under its lock, sign credential, and append
        issuance delta to ledger; commit registry state only after signing succeeds.

        :return: opaque credential, revocation registry identifier, index, and initial witness
        """

        explicit = rr_id is not None
        rr_id = rr_id or await self._active_rev_reg_id(cred_def['id'])
        if rev_reg_id2cred_def_id(rr_id) != cred_def['id']:
            LOGGER.debug('Issuer._issue_revocable <!< Rev reg %s is not on cred def %s', rr_id, cred_def['id'])
            raise ValidationError('Rev reg {} is not on cred def {}'.format(rr_id, cred_def['id']))

        while True:
            async with self._rr_lock(rr_id):
                rr_def = await self.get_rev_reg_def(rr_id)
                rev_id_info = (await self.wallet.get_record(TYPE_REV_ID_INFO, rr_id)).value_json
                index = rev_id_info['nextUnusedId']
                if index <= rr_def['maximumCredentialCount']:
                    (cred, rev_reg, delta) = await self._sign_revocable(
                        cred_def,
                        offer,
                        request,
                        raws,
                        encodeds,
                        rr_id,
                        rr_def,
                        rev_id_info)
                    break
                if explicit or not self.config.get('rr-auto-roll', False):
                    LOGGER.debug('Issuer._issue_revocable <!< Rev reg %s is full', rr_id)
                    raise CapacityError('Revocation registry {} is full'.format(rr_id))

            # roll over outside the lock on the full registry
            rr_id = await self._roll_rev_reg(cred_def['id'], rr_id, rr_def['maximumCredentialCount'])

        witness = await self._build_witness(rr_id, index, Tails.linked(self.dir_tails, rr_id))
        return (cred, rr_id, index, witness)

    async def _sign_revocable(
            self,
            cred_def: dict,
            offer: dict,
            request: dict,
            raws: dict,
            encodeds: dict,
            rr_id: str,
            rr_def: dict,
            rev_id_info: dict) -> (dict, dict, dict):
        """
        Sign credential on next free index, append issuance delta to ledger, then commit registry
        and index state to wallet. Caller holds the revocation registry lock.

        :return: opaque credential, updated registry, issuance delta
        """

        index = rev_id_info['nextUnusedId']
        rr_private = (await self.wallet.get_record(TYPE_REV_REG_PRIVATE, rr_id)).value_json
        (cred, rev_reg, delta) = await self.primitives.create_cred(
            cred_def['definition'],
            (await self._cred_def_private(cred_def['id']))['private'],
            offer,
            request,
            raws,
            encodeds,
            RevocationConfig(
                rr_def['definition'],
                rr_private['private'],
                rr_private['registry'],
                index,
                rev_id_info['usedIds']))

        (req, signature) = await self._sign_request('rev_reg_delta', {
            'revRegId': rr_id,
            'token': sha256(canon_json({'revRegId': rr_id, 'issued': [index]}).encode()).hexdigest(),
            'issued': [index],
            'revoked': [],
            'delta': delta
        })
        await self.ledger.append_rev_reg_delta(req, signature)

        rr_private['registry'] = rev_reg
        await self.wallet.write_non_secret(StorageRecord(
            TYPE_REV_REG_PRIVATE,
            json.dumps(rr_private),
            {'cd_id': cred_def['id']},
            rr_id))
        rev_id_info['nextUnusedId'] = index + 1
        rev_id_info['usedIds'].append(index)
        await self.wallet.write_non_secret(StorageRecord(
            TYPE_REV_ID_INFO,
            json.dumps(rev_id_info),
            {'cd_id': cred_def['id']},
            rr_id))

        return (cred, rev_reg, delta)

    async def create_cred(self, request: dict, values: dict = None, rr_id: str = None) -> (dict, dict):
        """
        Create credential as Issuer out of credential request and dict of key:value (raw, unencoded)
        entries for attributes, consuming the pending offer that the request answers.

        If the credential definition supports revocation, allocate the next free index in the
        current revocation registry (or in the one specified) and append the issuance delta to the ledger.
        If the registry is full and the issuer configuration sets 'rr-auto-roll', roll over
        to a new revocation registry of the same size en passant.

        Raise ProtocolError for stale or mismatched nonce, BadAttribute for attribute values
        not matching the schema, CapacityError for a full revocation registry, or CryptoError if the
        request's blinded secrets correctness proof does not check.

        :param request: credential request as HolderProver.create_cred_req() creates it
        :param values: dict mapping each attribute to its original value (default request 'credentialValues');
            the operation encodes it; e.g.,

        ::

            {
                'name': 'Alice',
                'age': 30,
                'country': 'CA'
            }

        :param rr_id: revocation registry identifier to issue into (default current)
        :return: credential, and initial witness if cred def supports revocation (None otherwise)
        """

        LOGGER.debug('Issuer.create_cred >>> request: %s, values: %s, rr_id: %s', request, values, rr_id)

        cd_id = request.get('credentialDefinition')
        if not ok_cred_def_id(cd_id, self.did):
            LOGGER.debug('Issuer.create_cred <!< Bad cred def id %s', cd_id)
            raise BadIdentifier('Bad cred def id {}'.format(cd_id))
        if rr_id is not None and not ok_rev_reg_id(rr_id, self.did):
            LOGGER.debug('Issuer.create_cred <!< Bad rev reg id %s', rr_id)
            raise BadIdentifier('Bad rev reg id {}'.format(rr_id))

        self._offers.check(request.get('id'), OfferState.CREDENTIAL_ISSUED)
        cred_def = await self.get_cred_def(cd_id)
        schema = await self.get_schema(cred_def['schemaId'])
        (raws, encodeds) = self._cred_values(
            schema,
            request.get('credentialValues', {}) if values is None else values)
        pending = await self._take_offer(request)

        if cred_def['revocation']:
            (cred, rr_id, index, witness) = await self._issue_revocable(
                cred_def,
                pending['offer'],
                request['request'],
                raws,
                encodeds,
                rr_id)
        else:
            (cred, _, _) = await self.primitives.create_cred(
                cred_def['definition'],
                (await self._cred_def_private(cd_id))['private'],
                pending['offer'],
                request['request'],
                raws,
                encodeds)
            (rr_id, index, witness) = (None, None, None)

        credential = {
            '@context': CRED_CONTEXT,
            'id': uuid4().hex,
            'type': ['VerifiableCredential'],
            'issuer': self.did,
            'issuanceDate': iso_now(),
            'credentialSubject': {
                'id': request['subject'],
                'data': raws
            },
            'credentialSchema': {
                'id': schema['id'],
                'type': 'EvanZKPSchema'
            },
            'proof': {
                'type': 'CLSignature2019',
                'credentialDefinition': cd_id,
                'revocationRegistryDefinition': rr_id,
                'revocationId': index,
                'issuanceNonce': pending['nonce'],
                'signature': cred
            }
        }
        self._offers.advance(request['id'], OfferState.CREDENTIAL_ISSUED)
        LOGGER.info('Issuer %s issued credential %s on cred def %s', self.name, credential['id'], cd_id)

        rv = (credential, witness)
        LOGGER.debug('Issuer.create_cred <<< %s', rv)
        return rv

    async def update_rev_reg(self, rr_id: str, revoked: Sequence[int]) -> dict:
        """
        Revoke input credential revocation indices in revocation registry and append resulting delta
        to ledger, serialized per registry. The update is idempotent: re-applying the same target state
        returns the delta log entry originally appended, leaving accumulator and log unchanged.

        Raise BadIdentifier for bad rev reg id, AbsentRevReg for no such registry, or ValidationError
        for indices that are not integers in [1, registry size] already issued.

        :param rr_id: revocation registry identifier
        :param revoked: credential revocation indices to revoke
        :return: delta log entry
        """

        LOGGER.debug('Issuer.update_rev_reg >>> rr_id: %s, revoked: %s', rr_id, revoked)

        if not ok_rev_reg_id(rr_id, self.did):
            LOGGER.debug('Issuer.update_rev_reg <!< Bad rev reg id %s', rr_id)
            raise BadIdentifier('Bad rev reg id {}'.format(rr_id))
        if not revoked or any(isinstance(i, bool) or not isinstance(i, int) for i in revoked):
            LOGGER.debug('Issuer.update_rev_reg <!< Revocation indices %s must be a non-empty list of ints', revoked)
            raise ValidationError('Revocation indices {} must be a non-empty list of ints'.format(revoked))

        async with self._rr_lock(rr_id):
            rr_def = await self.get_rev_reg_def(rr_id)
            try:
                rev_id_info = (await self.wallet.get_record(TYPE_REV_ID_INFO, rr_id)).value_json
                rr_private = (await self.wallet.get_record(TYPE_REV_REG_PRIVATE, rr_id)).value_json
            except AbsentRecord:
                LOGGER.debug('Issuer.update_rev_reg <!< Wallet %s has no private material for %s', self.name, rr_id)
                raise AbsentRevReg('Wallet {} has no private material for rev reg {}'.format(self.name, rr_id))

            for index in revoked:
                if not 1 <= index <= rr_def['maximumCredentialCount']:
                    LOGGER.debug('Issuer.update_rev_reg <!< Index %s out of range for %s', index, rr_id)
                    raise ValidationError('Index {} out of range for rev reg {}'.format(index, rr_id))
                if index not in rev_id_info['usedIds']:
                    LOGGER.debug('Issuer.update_rev_reg <!< Index %s not issued in %s', index, rr_id)
                    raise ValidationError('Index {} not issued in rev reg {}'.format(index, rr_id))

            token = rev_reg_token(rr_id, revoked)
            rv = await self.ledger.get_rev_reg_delta_by_token(rr_id, token)
            if rv:
                LOGGER.info('Rev reg %s already has delta on token %s: not revoking again', rr_id, token)
                LOGGER.debug('Issuer.update_rev_reg <<< %s', rv)
                return rv

            fresh = sorted(set(revoked) - set(rr_private['revoked']))
            if not fresh:
                rv = [frame for frame in await self.get_rev_reg_deltas(rr_id) if set(frame['revoked']) & set(revoked)][-1]
                LOGGER.info('Rev reg %s already revoked %s: not revoking again', rr_id, revoked)
                LOGGER.debug('Issuer.update_rev_reg <<< %s', rv)
                return rv

            (rev_reg, delta) = await self.primitives.update_rev_reg(
                (await self.get_cred_def(rev_reg_id2cred_def_id(rr_id)))['definition'],
                rr_def['definition'],
                rr_private['private'],
                rr_private['registry'],
                fresh)
            (req, signature) = await self._sign_request('rev_reg_delta', {
                'revRegId': rr_id,
                'token': token,
                'issued': [],
                'revoked': fresh,
                'delta': delta
            })
            (rv, _) = await self.ledger.append_rev_reg_delta(req, signature)

            rr_private['registry'] = rev_reg
            rr_private['revoked'] = sorted(set(rr_private['revoked']) | set(fresh))
            await self.wallet.write_non_secret(StorageRecord(
                TYPE_REV_REG_PRIVATE,
                json.dumps(rr_private),
                {'cd_id': rev_reg_id2cred_def_id(rr_id)},
                rr_id))
            LOGGER.info('Issuer %s revoked %s in rev reg %s at version %s', self.name, fresh, rr_id, rv['version'])

        LOGGER.debug('Issuer.update_rev_reg <<< %s', rv)
        return rv

    async def revoke_cred(self, rr_id: str, index: int) -> dict:
        """
        Revoke credential that input revocation registry identifier and credential revocation index specify.

        :param rr_id: revocation registry identifier
        :param index: credential revocation index
        :return: delta log entry
        """

        LOGGER.debug('Issuer.revoke_cred >>> rr_id: %s, index: %s', rr_id, index)

        rv = await self.update_rev_reg(rr_id, [index])

        LOGGER.debug('Issuer.revoke_cred <<< %s', rv)
        return rv
