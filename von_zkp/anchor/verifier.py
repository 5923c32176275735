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
from time import time
from typing import Mapping, Sequence
from uuid import uuid4

from von_zkp.anchor.base import BaseAnchor
from von_zkp.error import BadAttribute, BadIdentifier, CryptoError, ValidationError, VerificationError
from von_zkp.frill import iso_now
from von_zkp.handshake import Handshake, ProofState, PROOF_TRANSITIONS
from von_zkp.indytween import encode, Predicate
from von_zkp.ledger import IdentityLedger
from von_zkp.primitives import Primitives
from von_zkp.util import ok_did, ok_schema_id, revealed_attrs
from von_zkp.validcfg import validate_config
from von_zkp.wallet import Wallet


LOGGER = logging.getLogger(__name__)

NONCE_TTL_DEFAULT = 86400  # seconds


class Verifier(BaseAnchor):
    """
    Mixin for anchor acting in the role of Verifier. A Verifier creates proof requests
    and checks presentations against them, without learning unrevealed attributes.
    """

    def __init__(self, wallet: Wallet, ledger: IdentityLedger, primitives: Primitives = None, **kwargs) -> None:
        """
        Initializer for Verifier anchor. Retain input parameters; validate configuration.

        :param wallet: wallet for anchor use
        :param ledger: identity ledger for anchor use
        :param primitives: CL primitives backend
        :param config: verifier configuration dict; e.g.,

        ::

            {
                'consume-nonces': True,
                'nonce-ttl': 86400
            }

        """

        LOGGER.debug('Verifier.__init__ >>> wallet: %s, ledger: %s, kwargs: %s', wallet, ledger, kwargs)

        super().__init__(wallet, ledger, primitives, **kwargs)

        self._config = kwargs.get('config', None) or {}
        validate_config('verifier', self._config)

        self._proofs = Handshake('proof', PROOF_TRANSITIONS)
        self._pending = {}  # nonce -> expiry epoch

        LOGGER.debug('Verifier.__init__ <<<')

    @property
    def config(self) -> dict:
        """
        Accessor for configuration dict

        :return: verifier config dict
        """

        return self._config

    @staticmethod
    def _predicate(sub_index: int, s_id: str, spec: dict) -> (str, dict):
        """
        Return referent and opaque request entry for predicate specification
        {attribute, type, value}. Raise ValidationError for bad relation or non-integer bound.
        """

        pred = Predicate.get(spec.get('type'))
        if pred is None:
            LOGGER.debug('Verifier._predicate <!< Bad predicate type %s', spec.get('type'))
            raise ValidationError('Bad predicate type {}'.format(spec.get('type')))
        value = spec.get('value')
        if isinstance(value, bool) or not isinstance(value, int):
            LOGGER.debug('Verifier._predicate <!< Predicate bound %s is not an integer', value)
            raise ValidationError('Predicate bound {} is not an integer'.format(value))
        attr = spec.get('attribute')
        if not (isinstance(attr, str) and attr):
            LOGGER.debug('Verifier._predicate <!< Bad predicate attribute %s', attr)
            raise BadAttribute('Bad predicate attribute {}'.format(attr))

        return ('{}_{}_{}_{}'.format(sub_index, attr, pred.value.fortran, uuid4().hex), {
            'name': attr,
            'p_type': pred.value.math,
            'p_value': value,
            'restrictions': [{'schema_id': s_id}]
        })

    async def create_proof_req(self, sub_proof_reqs: Sequence[dict], prover_did: str = None) -> dict:
        """
        Create proof request on sub-requests, each of the form

        ::

            {
                'schema': 'WgWxqztrNooG92RXvxSTWv:2:person:1.0',
                'revealedAttributes': ['name', 'country'],
                'predicates': [
                    {
                        'attribute': 'age',
                        'type': '>=',
                        'value': 18
                    }
                ]
            }

        Construction does not resolve schemata. Every request carries a fresh nonce, pending on this
        verifier until verification consumes it or it expires, and asks for non-revocation as of its creation time.

        Raise BadIdentifier for bad schema identifier or prover DID, BadAttribute or ValidationError
        for a malformed attribute or predicate.

        :param sub_proof_reqs: sub-requests, one per credential to present
        :param prover_did: DID of prover (default any)
        :return: proof request
        """

        LOGGER.debug('Verifier.create_proof_req >>> sub_proof_reqs: %s, prover_did: %s', sub_proof_reqs, prover_did)

        if not sub_proof_reqs:
            LOGGER.debug('Verifier.create_proof_req <!< Proof request needs sub-requests')
            raise ValidationError('Proof request needs sub-requests')
        if prover_did is not None and not ok_did(prover_did):
            LOGGER.debug('Verifier.create_proof_req <!< Bad prover DID %s', prover_did)
            raise BadIdentifier('Bad prover DID {}'.format(prover_did))

        now = int(time())
        nonce = await self.primitives.generate_nonce()
        requested_attributes = {}
        requested_predicates = {}
        for (sub_index, sub_req) in enumerate(sub_proof_reqs):
            s_id = sub_req.get('schema')
            if not ok_schema_id(s_id):
                LOGGER.debug('Verifier.create_proof_req <!< Bad schema id %s', s_id)
                raise BadIdentifier('Bad schema id {}'.format(s_id))
            for attr in sub_req.get('revealedAttributes') or []:
                if not (isinstance(attr, str) and attr):
                    LOGGER.debug('Verifier.create_proof_req <!< Bad attribute name %s', attr)
                    raise BadAttribute('Bad attribute name {}'.format(attr))
                requested_attributes['{}_{}_{}'.format(sub_index, attr, uuid4().hex)] = {
                    'name': attr,
                    'restrictions': [{'schema_id': s_id}],
                    'non_revoked': {'to': now}
                }
            for spec in sub_req.get('predicates') or []:
                (referent, pred) = Verifier._predicate(sub_index, s_id, spec)
                pred['non_revoked'] = {'to': now}
                requested_predicates[referent] = pred

        rv = {
            'type': 'EvanZKPProofRequest',
            'id': uuid4().hex,
            'verifier': self.did,
            'prover': prover_did,
            'createdAt': iso_now(),
            'nonce': nonce,
            'subProofRequests': [
                {
                    'schema': sub_req['schema'],
                    'revealedAttributes': list(sub_req.get('revealedAttributes') or []),
                    'predicates': [dict(spec) for spec in sub_req.get('predicates') or []]
                } for sub_req in sub_proof_reqs
            ],
            'request': {
                'name': 'proof-request',
                'version': '1.0',
                'nonce': nonce,
                'requested_attributes': requested_attributes,
                'requested_predicates': requested_predicates
            }
        }

        self._prune()
        self._pending[nonce] = now + self.config.get('nonce-ttl', NONCE_TTL_DEFAULT)

        LOGGER.debug('Verifier.create_proof_req <<< %s', rv)
        return rv

    def _reject(self, thread: str, message: str) -> None:
        """
        Record rejection on proof handshake, log, and raise VerificationError.
        """

        if self._proofs.state(thread) is None:
            self._proofs.advance(thread, ProofState.REJECTED)
        LOGGER.debug('Verifier.verify_proof <!< %s', message)
        raise VerificationError(message)

    def _prune(self) -> None:
        """
        Drop expired proof request nonces from pending.
        """

        now = int(time())
        for nonce in [n for (n, expiry) in self._pending.items() if expiry <= now]:
            del self._pending[nonce]

    async def _check_attrs(self, proof_req: dict) -> list:
        """
        Raise ValidationError if any sub-request asks for an attribute that its schema does not have;
        return schemata of sub-requests.
        """

        rv = []
        for sub_req in proof_req['subProofRequests']:
            schema = await self.get_schema(sub_req['schema'])
            attrs = list(sub_req['revealedAttributes']) + [spec['attribute'] for spec in sub_req['predicates']]
            for attr in attrs:
                if attr not in schema['attrNames']:
                    LOGGER.debug('Verifier._check_attrs <!< Schema %s has no attribute %s', schema['id'], attr)
                    raise ValidationError('Schema {} has no attribute {}'.format(schema['id'], attr))
            if schema not in rv:
                rv.append(schema)
        return rv

    async def verify_proof(
            self,
            presentation: dict,
            proof_req: dict,
            cred_defs: Mapping[str, dict] = None,
            rr_defs: Mapping[str, dict] = None) -> bool:
        """
        Verify presentation against proof request: nonce, revealed value encodings, revocation state
        currency, and the aggregated proof itself against public parameters.

        Raise VerificationError on any negative outcome, ValidationError for a proof request
        asking for an attribute that its schema lacks. The verifier accepts only nonces of its own proof
        requests, pending until they expire per configured 'nonce-ttl' (default one day). By configuration
        (default on), verification consumes the request nonce: a presentation on a consumed nonce fails.

        :param presentation: presentation as HolderProver.create_proof() creates it
        :param proof_req: proof request as Verifier.create_proof_req() creates it
        :param cred_defs: dict mapping cred def ids to cred defs (default fetch from ledger)
        :param rr_defs: dict mapping rev reg ids to rev reg defs (default fetch from ledger)
        :return: True
        """

        LOGGER.debug(
            'Verifier.verify_proof >>> presentation: %s, proof_req: %s, cred_defs: %s, rr_defs: %s',
            presentation,
            proof_req,
            cred_defs,
            rr_defs)

        thread = proof_req['id']
        nonce = proof_req['nonce']
        if presentation.get('proofRequest') != thread:
            self._reject(thread, 'Presentation answers proof request {}, not {}'.format(
                presentation.get('proofRequest'),
                thread))
        if presentation.get('nonce') != nonce or proof_req['request']['nonce'] != nonce:
            self._reject(thread, 'Presentation nonce does not match proof request {}'.format(thread))
        self._prune()
        if nonce not in self._pending:
            self._reject(thread, 'Nonce on proof request {} is not pending here: spent or expired'.format(thread))

        schemata = await self._check_attrs(proof_req)
        if self.config.get('consume-nonces', True):
            self._pending.pop(nonce)

        proof = presentation['proof']
        s_ids = [schema['id'] for schema in schemata]
        cd_ids = []
        rr_ids = []
        rr_entries = {}
        for ident in proof['identifiers']:
            if ident['schema_id'] not in s_ids:
                self._reject(thread, 'Proof cites schema {} outside request'.format(ident['schema_id']))
            if ident['cred_def_id'] not in cd_ids:
                cd_ids.append(ident['cred_def_id'])
            rr_id = ident.get('rev_reg_id')
            if not rr_id:
                continue
            frames = await self.get_rev_reg_deltas(rr_id)
            latest = frames[-1]
            if ident.get('timestamp') != latest['timestamp']:
                self._reject(thread, 'Proof on {} has stale revocation state at {}, latest is {}'.format(
                    rr_id,
                    ident.get('timestamp'),
                    latest['timestamp']))
            if rr_id not in rr_ids:
                rr_ids.append(rr_id)
            rr_entries.setdefault(rr_id, {})[latest['timestamp']] = {
                'ver': '1.0',
                'value': {
                    'accum': latest['delta']['value']['accum']
                }
            }

        for (reft, attr) in proof['requested_proof']['revealed_attrs'].items():
            if encode(attr['raw']) != attr['encoded']:
                self._reject(thread, 'Revealed value {} on referent {} disagrees with its encoding'.format(
                    attr['raw'],
                    reft))
        revealed = revealed_attrs(proof)
        for vc in presentation.get('verifiableCredential') or []:
            claimed = vc['credentialSubject']['data']
            if claimed != revealed.get(vc['credentialSchema']['id'], {}):
                self._reject(thread, 'Presented data on schema {} disagrees with proof'.format(
                    vc['credentialSchema']['id']))

        # request asks non-revocation only of sub-proofs on revocable credentials, as of their timestamps
        request = deepcopy(proof_req['request'])
        for group in ('revealed_attrs', 'predicates'):
            for (reft, attr) in proof['requested_proof'].get(group, {}).items():
                ident = proof['identifiers'][attr['sub_proof_index']]
                entry = request[
                    'requested_attributes' if group == 'revealed_attrs' else 'requested_predicates'].get(reft)
                if entry is None:
                    continue
                if ident.get('rev_reg_id'):
                    entry['non_revoked'] = {'to': ident['timestamp']}
                else:
                    entry.pop('non_revoked', None)

        try:
            verified = await self.primitives.verify_proof(
                proof,
                request,
                schemata,
                [((cred_defs or {}).get(cd_id) or await self.get_cred_def(cd_id))['definition'] for cd_id in cd_ids],
                [((rr_defs or {}).get(rr_id) or await self.get_rev_reg_def(rr_id))['definition'] for rr_id in rr_ids],
                rr_entries)
        except CryptoError as x_crypto:
            if self._proofs.state(thread) is None:
                self._proofs.advance(thread, ProofState.REJECTED)
            LOGGER.debug('Verifier.verify_proof <!< Proof on request %s does not verify: %s', thread, x_crypto)
            raise VerificationError('Proof on request {} does not verify: {}'.format(thread, x_crypto)) from x_crypto
        if not verified:
            self._reject(thread, 'Proof on request {} does not verify'.format(thread))

        if self._proofs.state(thread) is None:
            self._proofs.advance(thread, ProofState.VERIFIED)
        LOGGER.info('Verifier %s verified presentation %s on proof request %s', self.name, presentation['id'], thread)

        rv = True
        LOGGER.debug('Verifier.verify_proof <<< %s', rv)
        return rv
