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

from os import urandom
from typing import Callable, Mapping, Sequence

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric import dh
from indy_credx import (
    Credential,
    CredentialDefinition,
    CredentialDefinitionPrivate,
    CredentialOffer,
    CredentialRequest,
    CredentialRevocationConfig,
    CredentialRevocationState,
    CredxError,
    LinkSecret,
    PresentCredentials,
    Presentation,
    RevocationRegistry,
    RevocationRegistryDefinition,
    RevocationRegistryDefinitionPrivate,
    RevocationRegistryDelta,
    Schema)

from von_zkp.error import BadAttribute, CryptoError, ValidationError
from von_zkp.indytween import canon
from von_zkp.primitives.base import PresentedCred, Primitives, RevocationConfig


LOGGER = logging.getLogger(__name__)

SAFE_PRIME_BITS_MIN = 512
SIGNATURE_TYPE = 'CL'
REV_REG_TYPE = 'CL_ACCUM'
ISSUANCE_TYPE = 'ISSUANCE_ON_DEMAND'


def _json(obj) -> dict:
    """
    Return indy-credx object as plain (json-serializable) dict.
    """

    return json.loads(obj.to_json())


def _schema(schema: dict) -> dict:
    """
    Return indy-credx view of schema record: the fields that the CL backend reads.
    """

    return {
        'ver': '1.0',
        'id': schema['id'],
        'name': schema['name'],
        'version': schema['version'],
        'attrNames': schema['attrNames'],
        'seqNo': schema['seqNo']
    }


class CredxPrimitives(Primitives):
    """
    CL signature and accumulator primitives on indy-credx. Every call into the library runs
    in the default executor: CL operations are CPU-bound.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop = None) -> None:
        """
        Initializer.

        :param loop: event loop to run library calls on (default current)
        """

        self._loop = loop

    async def _run(self, name: str, fn: Callable, *args):
        """
        Run library call in default executor; raise CryptoError on library failure.

        :param name: operation name, for logging and error messages
        :param fn: function to run
        :param args: function arguments
        :return: function result
        """

        try:
            return await (self._loop or asyncio.get_event_loop()).run_in_executor(None, fn, *args)
        except CredxError as x_credx:
            LOGGER.debug('CredxPrimitives.%s <!< %s', name, x_credx)
            raise CryptoError('Primitive operation {} failed: {}'.format(name, x_credx)) from x_credx

    async def generate_nonce(self) -> str:
        """
        Return fresh 80-bit nonce as a decimal string.

        :return: nonce
        """

        return str(int.from_bytes(urandom(10), 'big'))

    async def create_schema(self, origin_did: str, name: str, version: str, attr_names: Sequence[str]) -> dict:
        """
        Return opaque schema. Raise BadAttribute for attribute names that coincide once canonicalized,
        since the CL backend matches attribute names without regard to case or spaces.

        :param origin_did: DID of schema originator
        :param name: schema name
        :param version: schema version
        :param attr_names: attribute names
        :return: opaque schema
        """

        LOGGER.debug(
            'CredxPrimitives.create_schema >>> origin_did: %s, name: %s, version: %s, attr_names: %s',
            origin_did,
            name,
            version,
            attr_names)

        canons = [canon(attr) for attr in attr_names]
        if len(set(canons)) != len(canons):
            LOGGER.debug('CredxPrimitives.create_schema <!< Attribute names %s collide when canonicalized', attr_names)
            raise BadAttribute('Attribute names {} collide when canonicalized'.format(attr_names))

        rv = await self._run(
            'create_schema',
            lambda: _json(Schema.create(origin_did, name, version, list(attr_names))))
        LOGGER.debug('CredxPrimitives.create_schema <<< %s', rv)
        return rv

    async def create_cred_def(self, origin_did: str, schema: dict, tag: str, revocation: bool) -> (dict, dict, dict):
        """
        Create credential definition key pair and key correctness proof.

        :param origin_did: DID of issuer
        :param schema: schema as published, with sequence number
        :param tag: credential definition tag
        :param revocation: whether to support revocation
        :return: public credential definition, private key, key correctness proof
        """

        LOGGER.debug(
            'CredxPrimitives.create_cred_def >>> origin_did: %s, schema: %s, tag: %s, revocation: %s',
            origin_did,
            schema,
            tag,
            revocation)

        def _create():
            (cred_def, cred_def_private, key_proof) = CredentialDefinition.create(
                origin_did,
                Schema.load(_schema(schema)),
                SIGNATURE_TYPE,
                tag,
                support_revocation=revocation)
            return (_json(cred_def), _json(cred_def_private), _json(key_proof))

        rv = await self._run('create_cred_def', _create)

        LOGGER.debug('CredxPrimitives.create_cred_def <<< %s', rv[0])
        return rv

    async def create_master_secret(self) -> dict:
        """
        Return new master (link) secret.

        :return: opaque master secret
        """

        LOGGER.debug('CredxPrimitives.create_master_secret >>>')

        rv = await self._run('create_master_secret', lambda: _json(LinkSecret.create()))

        LOGGER.debug('CredxPrimitives.create_master_secret <<< [SECRET]')
        return rv

    async def create_cred_offer(self, s_id: str, cred_def: dict, key_proof: dict) -> dict:
        """
        Create credential offer.

        :param s_id: schema identifier
        :param cred_def: public credential definition
        :param key_proof: key correctness proof
        :return: opaque offer
        """

        LOGGER.debug('CredxPrimitives.create_cred_offer >>> s_id: %s, cred_def: %s', s_id, cred_def['id'])

        rv = await self._run(
            'create_cred_offer',
            lambda: _json(CredentialOffer.create(s_id, CredentialDefinition.load(cred_def), key_proof)))

        LOGGER.debug('CredxPrimitives.create_cred_offer <<< %s', rv)
        return rv

    async def create_cred_req(
            self,
            prover_did: str,
            cred_def: dict,
            master_secret: dict,
            master_secret_label: str,
            offer: dict) -> (dict, dict):
        """
        Blind master secret for credential request.

        :param prover_did: DID of prover
        :param cred_def: public credential definition
        :param master_secret: master secret
        :param master_secret_label: label of master secret
        :param offer: opaque offer
        :return: opaque request and its private metadata
        """

        LOGGER.debug(
            'CredxPrimitives.create_cred_req >>> prover_did: %s, cred_def: %s, master_secret_label: %s, offer: %s',
            prover_did,
            cred_def['id'],
            master_secret_label,
            offer)

        def _create():
            (cred_req, cred_req_metadata) = CredentialRequest.create(
                prover_did,
                CredentialDefinition.load(cred_def),
                LinkSecret.load(master_secret),
                master_secret_label,
                CredentialOffer.load(offer))
            return (_json(cred_req), _json(cred_req_metadata))

        rv = await self._run('create_cred_req', _create)

        LOGGER.debug('CredxPrimitives.create_cred_req <<< %s', rv[0])
        return rv

    async def create_cred(
            self,
            cred_def: dict,
            cred_def_private: dict,
            offer: dict,
            request: dict,
            values: Mapping[str, str],
            encoded: Mapping[str, str],
            revocation: RevocationConfig = None) -> (dict, dict, dict):
        """
        Sign attribute values with blinded master secret; for revocable credential, add index to accumulator.

        :param cred_def: public credential definition
        :param cred_def_private: credential definition private key
        :param offer: opaque offer
        :param request: opaque request
        :param values: raw attribute values
        :param encoded: encoded attribute values
        :param revocation: revocation material for revocable credential
        :return: opaque credential, updated registry or None, issuance delta or None
        """

        LOGGER.debug(
            'CredxPrimitives.create_cred >>> cred_def: %s, offer: %s, request: %s, values: %s, revocation: %s',
            cred_def['id'],
            offer,
            request,
            values,
            revocation and revocation.index)

        def _create():
            revoc = None
            if revocation is not None:
                revoc = CredentialRevocationConfig(
                    RevocationRegistryDefinition.load(revocation.rr_def),
                    RevocationRegistryDefinitionPrivate.load(revocation.rr_def_private),
                    RevocationRegistry.load(revocation.rev_reg),
                    revocation.index,
                    list(revocation.issued))
            (cred, rev_reg, delta) = Credential.create(
                CredentialDefinition.load(cred_def),
                CredentialDefinitionPrivate.load(cred_def_private),
                CredentialOffer.load(offer),
                CredentialRequest.load(request),
                dict(values),
                dict(encoded),
                revoc)
            if revocation is None:  # registry and delta come back as null handles
                return (_json(cred), None, None)
            return (_json(cred), _json(rev_reg), _json(delta))

        rv = await self._run('create_cred', _create)

        LOGGER.debug('CredxPrimitives.create_cred <<< %s', rv)
        return rv

    async def process_cred(
            self,
            cred: dict,
            metadata: dict,
            master_secret: dict,
            cred_def: dict,
            rr_def: dict = None) -> dict:
        """
        Verify issuer signature and unblind it.

        :param cred: opaque credential
        :param metadata: request metadata
        :param master_secret: master secret
        :param cred_def: public credential definition
        :param rr_def: revocation registry definition, for revocable credential
        :return: processed credential
        """

        LOGGER.debug('CredxPrimitives.process_cred >>> cred: %s, cred_def: %s', cred, cred_def['id'])

        rv = await self._run(
            'process_cred',
            lambda: _json(Credential.load(cred).process(
                metadata,
                LinkSecret.load(master_secret),
                CredentialDefinition.load(cred_def),
                rr_def and RevocationRegistryDefinition.load(rr_def))))

        LOGGER.debug('CredxPrimitives.process_cred <<< %s', rv)
        return rv

    async def create_rev_reg(
            self,
            origin_did: str,
            cred_def: dict,
            tag: str,
            max_cred_num: int,
            tails_dir: str) -> (dict, dict, dict, dict):
        """
        Create accumulator and tails file for revocation registry, issuing on demand.

        :param origin_did: DID of issuer
        :param cred_def: public credential definition
        :param tag: revocation registry tag
        :param max_cred_num: maximum number of credentials
        :param tails_dir: directory for tails file
        :return: registry definition, registry private key, registry, creation delta
        """

        LOGGER.debug(
            'CredxPrimitives.create_rev_reg >>> origin_did: %s, cred_def: %s, tag: %s, max_cred_num: %s, tails_dir: %s',
            origin_did,
            cred_def['id'],
            tag,
            max_cred_num,
            tails_dir)

        def _create():
            (rr_def, rr_def_private, rev_reg, delta) = RevocationRegistryDefinition.create(
                origin_did,
                CredentialDefinition.load(cred_def),
                tag,
                REV_REG_TYPE,
                max_cred_num,
                issuance_type=ISSUANCE_TYPE,
                tails_dir_path=tails_dir)
            return (_json(rr_def), _json(rr_def_private), _json(rev_reg), _json(delta))

        rv = await self._run('create_rev_reg', _create)

        LOGGER.debug('CredxPrimitives.create_rev_reg <<< %s', rv[0])
        return rv

    async def update_rev_reg(
            self,
            cred_def: dict,
            rr_def: dict,
            rr_def_private: dict,
            rev_reg: dict,
            revoked: Sequence[int]) -> (dict, dict):
        """
        Remove revoked indices from accumulator.

        :param cred_def: public credential definition
        :param rr_def: revocation registry definition
        :param rr_def_private: registry private key
        :param rev_reg: current registry
        :param revoked: indices to revoke
        :return: updated registry and delta
        """

        LOGGER.debug('CredxPrimitives.update_rev_reg >>> rr_def: %s, revoked: %s', rr_def['id'], revoked)

        def _update():
            registry = RevocationRegistry.load(rev_reg)
            delta = registry.update(  # updates registry in place
                CredentialDefinition.load(cred_def),
                RevocationRegistryDefinition.load(rr_def),
                RevocationRegistryDefinitionPrivate.load(rr_def_private),
                issued=None,
                revoked=list(revoked))
            return (_json(registry), _json(delta))

        rv = await self._run('update_rev_reg', _update)

        LOGGER.debug('CredxPrimitives.update_rev_reg <<< %s', rv[1])
        return rv

    async def merge_rev_reg_deltas(self, fro_delta: dict, to_delta: dict) -> dict:
        """
        Merge two contiguous deltas into one.

        :param fro_delta: earlier delta
        :param to_delta: later delta
        :return: merged delta
        """

        def _merge():
            delta = RevocationRegistryDelta.load(fro_delta)
            delta.update_with(RevocationRegistryDelta.load(to_delta))
            return _json(delta)

        return await self._run('merge_rev_reg_deltas', _merge)

    async def create_witness(self, rr_def: dict, delta: dict, index: int, timestamp: int, tails_path: str) -> dict:
        """
        Create membership witness for index from cumulative delta since registry creation.

        :param rr_def: revocation registry definition
        :param delta: cumulative delta
        :param index: credential revocation index
        :param timestamp: timestamp of latest delta folded in
        :param tails_path: path to tails file
        :return: opaque revocation state
        """

        LOGGER.debug(
            'CredxPrimitives.create_witness >>> rr_def: %s, index: %s, timestamp: %s, tails_path: %s',
            rr_def['id'],
            index,
            timestamp,
            tails_path)

        rv = await self._run(
            'create_witness',
            lambda: _json(CredentialRevocationState.create(
                RevocationRegistryDefinition.load(rr_def),
                RevocationRegistryDelta.load(delta),
                int(index),
                int(timestamp),
                tails_path)))

        LOGGER.debug('CredxPrimitives.create_witness <<< %s', rv)
        return rv

    async def update_witness(
            self,
            rev_state: dict,
            rr_def: dict,
            delta: dict,
            index: int,
            timestamp: int,
            tails_path: str) -> dict:
        """
        Fold delta since witness state into witness.

        :param rev_state: current opaque revocation state
        :param rr_def: revocation registry definition
        :param delta: merged delta since revocation state
        :param index: credential revocation index
        :param timestamp: timestamp of latest delta folded in
        :param tails_path: path to tails file
        :return: updated opaque revocation state
        """

        LOGGER.debug(
            'CredxPrimitives.update_witness >>> rr_def: %s, index: %s, timestamp: %s, tails_path: %s',
            rr_def['id'],
            index,
            timestamp,
            tails_path)

        def _update():
            state = CredentialRevocationState.load(rev_state)
            state.update(
                RevocationRegistryDefinition.load(rr_def),
                RevocationRegistryDelta.load(delta),
                int(index),
                int(timestamp),
                tails_path)
            return _json(state)

        rv = await self._run('update_witness', _update)

        LOGGER.debug('CredxPrimitives.update_witness <<< %s', rv)
        return rv

    async def create_proof(
            self,
            proof_req: dict,
            presented: Sequence[PresentedCred],
            master_secret: dict,
            schemas: Sequence[dict],
            cred_defs: Sequence[dict]) -> dict:
        """
        Create one aggregated proof over all presented credentials.

        :param proof_req: opaque proof request
        :param presented: credentials with their referents and revocation states
        :param master_secret: master secret
        :param schemas: schemas of credentials
        :param cred_defs: public credential definitions of credentials
        :return: opaque proof
        """

        LOGGER.debug('CredxPrimitives.create_proof >>> proof_req: %s, presented: %s', proof_req, presented)

        def _create():
            present_creds = PresentCredentials()
            for pres in presented:
                cred = Credential.load(pres.cred)
                rev_state = pres.rev_state and CredentialRevocationState.load(pres.rev_state)
                if pres.revealed:
                    present_creds.add_attributes(
                        cred,
                        *pres.revealed,
                        reveal=True,
                        timestamp=pres.timestamp,
                        rev_state=rev_state)
                if pres.unrevealed:
                    present_creds.add_attributes(
                        cred,
                        *pres.unrevealed,
                        reveal=False,
                        timestamp=pres.timestamp,
                        rev_state=rev_state)
                if pres.predicates:
                    present_creds.add_predicates(
                        cred,
                        *pres.predicates,
                        timestamp=pres.timestamp,
                        rev_state=rev_state)
            return _json(Presentation.create(
                proof_req,
                present_creds,
                {},
                LinkSecret.load(master_secret),
                [Schema.load(_schema(s)) for s in schemas],
                [CredentialDefinition.load(cd) for cd in cred_defs]))

        rv = await self._run('create_proof', _create)

        LOGGER.debug('CredxPrimitives.create_proof <<< %s', rv)
        return rv

    async def verify_proof(
            self,
            proof: dict,
            proof_req: dict,
            schemas: Sequence[dict],
            cred_defs: Sequence[dict],
            rr_defs: Sequence[dict],
            rr_entries: Mapping[str, Mapping[int, dict]]) -> bool:
        """
        Check proof against proof request and public parameters.

        :param proof: opaque proof
        :param proof_req: opaque proof request
        :param schemas: schemas of credentials
        :param cred_defs: public credential definitions
        :param rr_defs: revocation registry definitions
        :param rr_entries: dict mapping revocation registry identifiers to dicts mapping timestamps to registries
        :return: whether proof verifies
        """

        LOGGER.debug('CredxPrimitives.verify_proof >>> proof: %s, proof_req: %s', proof, proof_req)

        rv = await self._run(
            'verify_proof',
            lambda: Presentation.load(proof).verify(
                proof_req,
                [Schema.load(_schema(s)) for s in schemas],
                [CredentialDefinition.load(cd) for cd in cred_defs],
                [RevocationRegistryDefinition.load(rrd) for rrd in rr_defs],
                {
                    rr_id: {ts: RevocationRegistry.load(rr_entries[rr_id][ts]) for ts in rr_entries[rr_id]}
                    for rr_id in rr_entries
                }))

        LOGGER.debug('CredxPrimitives.verify_proof <<< %s', rv)
        return bool(rv)

    async def generate_safe_prime(self, bits: int) -> int:
        """
        Return safe prime of input bit length, via Diffie-Hellman parameter generation (generator 2).
        Raise ValidationError for bit length under minimum.

        :param bits: bit length
        :return: safe prime
        """

        LOGGER.debug('CredxPrimitives.generate_safe_prime >>> bits: %s', bits)

        if bits < SAFE_PRIME_BITS_MIN:
            LOGGER.debug('CredxPrimitives.generate_safe_prime <!< Safe prime needs at least %s bits', SAFE_PRIME_BITS_MIN)
            raise ValidationError('Safe prime needs at least {} bits'.format(SAFE_PRIME_BITS_MIN))

        params = await (self._loop or asyncio.get_event_loop()).run_in_executor(
            None,
            lambda: dh.generate_parameters(generator=2, key_size=bits, backend=default_backend()))
        rv = params.parameter_numbers().p

        LOGGER.debug('CredxPrimitives.generate_safe_prime <<< %s', rv)
        return rv
