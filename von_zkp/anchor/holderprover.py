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

from copy import deepcopy
from os import makedirs
from os.path import expanduser, isfile, join
from typing import Mapping, Sequence
from uuid import uuid4

from von_zkp.anchor.base import BaseAnchor
from von_zkp.error import (
    AbsentCred,
    AbsentRecord,
    BadIdentifier,
    CryptoError,
    ProtocolError,
    StaleWitnessError,
    ValidationError)
from von_zkp.frill import iso_now
from von_zkp.handshake import Handshake, IssuanceState, ISSUANCE_TRANSITIONS, ProofState, PROOF_TRANSITIONS
from von_zkp.ledger import IdentityLedger
from von_zkp.primitives import PresentedCred, Primitives
from von_zkp.tails import Tails
from von_zkp.util import ok_did, ok_rev_reg_id, ok_schema_id, revealed_attrs
from von_zkp.validcfg import validate_config
from von_zkp.wallet import StorageRecord, Wallet
from von_zkp.wallet.record import TYPE_CRED, TYPE_CRED_REQ_METADATA


LOGGER = logging.getLogger(__name__)


class HolderProver(BaseAnchor):
    """
    Mixin for anchor acting in the role of w3c Holder and indy Prover. A Holder holds
    credentials; a Prover produces proof of credentials. Revocation support requires
    the holder-prover anchor to manage tails files and witnesses.
    """

    DIR_TAILS = join(expanduser('~'), '.indy_client', 'tails')
    MASTER_SECRET_LABEL = 'default'

    def __init__(self, wallet: Wallet, ledger: IdentityLedger, primitives: Primitives = None, **kwargs) -> None:
        """
        Initializer for HolderProver anchor. Retain input parameters; validate configuration.

        :param wallet: wallet for anchor use
        :param ledger: identity ledger for anchor use
        :param primitives: CL primitives backend
        :param config: holder-prover configuration dict; e.g.,

        ::

            {
                'dir-tails': '/home/holder/tails',
                'master-secret-label': 'secret'
            }

        """

        LOGGER.debug('HolderProver.__init__ >>> wallet: %s, ledger: %s, kwargs: %s', wallet, ledger, kwargs)

        super().__init__(wallet, ledger, primitives, **kwargs)

        self._config = kwargs.get('config', None) or {}
        validate_config('holder-prover', self._config)

        self._dir_tails = self._config.get('dir-tails', HolderProver.DIR_TAILS)
        makedirs(self._dir_tails, exist_ok=True)

        self._issuance = Handshake('issuance', ISSUANCE_TRANSITIONS)
        self._proofs = Handshake('proof', PROOF_TRANSITIONS)

        LOGGER.debug('HolderProver.__init__ <<<')

    @property
    def config(self) -> dict:
        """
        Accessor for configuration dict

        :return: holder-prover config dict
        """

        return self._config

    @property
    def dir_tails(self) -> str:
        """
        Accessor for root of tails directory

        :return: tails directory
        """

        return self._dir_tails

    @property
    def master_secret_label(self) -> str:
        """
        Accessor for default master secret label

        :return: master secret label
        """

        return self.config.get('master-secret-label', HolderProver.MASTER_SECRET_LABEL)

    async def create_master_secret(self, label: str = None) -> str:
        """
        Create master (link) secret on input label (default per configuration) unless wallet already has one there.

        :param label: label for master secret
        :return: label
        """

        LOGGER.debug('HolderProver.create_master_secret >>> label: %s', label)

        rv = label or self.master_secret_label
        if await self.wallet.has_master_secret(rv):
            LOGGER.info('Wallet %s already has master secret on label %s', self.name, rv)
        else:
            await self.wallet.write_master_secret(rv, await self.primitives.create_master_secret())

        LOGGER.debug('HolderProver.create_master_secret <<< %s', rv)
        return rv

    async def _sync_tails(self, rr_id: str) -> str:
        """
        Return path to local tails file for revocation registry, fetching it from its published location
        if need be. Raise AbsentTails if the published location has no tails file.

        :param rr_id: revocation registry identifier
        :return: path to local tails file
        """

        rv = Tails.linked(self.dir_tails, rr_id)
        if not (rv and isfile(rv)):
            rr_def = await self.get_rev_reg_def(rr_id)
            rv = Tails.fetch(
                self.dir_tails,
                rr_id,
                rr_def['definition']['value']['tailsLocation'],
                rr_def['definition']['value']['tailsHash'])
        return rv

    async def create_cred_proposal(self, issuer_did: str, s_id: str) -> dict:
        """
        Create credential proposal to issuer on schema, opening issuance handshake.

        :param issuer_did: DID of issuer
        :param s_id: schema identifier
        :return: credential proposal
        """

        LOGGER.debug('HolderProver.create_cred_proposal >>> issuer_did: %s, s_id: %s', issuer_did, s_id)

        if not ok_did(issuer_did):
            LOGGER.debug('HolderProver.create_cred_proposal <!< Bad DID %s', issuer_did)
            raise BadIdentifier('Bad DID {}'.format(issuer_did))
        if not ok_schema_id(s_id):
            LOGGER.debug('HolderProver.create_cred_proposal <!< Bad schema id %s', s_id)
            raise BadIdentifier('Bad schema id {}'.format(s_id))

        rv = {
            'type': 'EvanZKPCredentialProposal',
            'id': uuid4().hex,
            'issuer': issuer_did,
            'subject': self.did,
            'schema': s_id,
            'createdAt': iso_now()
        }
        self._issuance.advance(rv['id'], IssuanceState.PROPOSAL_SENT)

        LOGGER.debug('HolderProver.create_cred_proposal <<< %s', rv)
        return rv

    async def create_cred_req(self, offer: dict, master_secret_label: str = None, values: dict = None) -> dict:
        """
        Create credential request as HolderProver in response to credential offer: blind master secret
        and prove correctness of blinding against offer nonce. Keep blinding factors in wallet,
        on offer nonce, to finish credential on receipt.

        Raise ProtocolError for offer out of order or not for this holder, AbsentMasterSecret for no
        master secret on label, or CryptoError on blinding failure.

        :param offer: credential offer as Issuer.create_cred_offer() creates it
        :param master_secret_label: label of master secret (default per configuration)
        :param values: proposed attribute values for issuer to sign
        :return: credential request
        """

        LOGGER.debug(
            'HolderProver.create_cred_req >>> offer: %s, master_secret_label: %s, values: %s',
            offer,
            master_secret_label,
            values)

        self._issuance.check(offer['id'], IssuanceState.OFFER_RECEIVED)
        if offer.get('subject') != self.did:
            LOGGER.debug('HolderProver.create_cred_req <!< Offer %s is not for %s', offer['id'], self.did)
            raise ProtocolError('Offer {} is not for {}'.format(offer['id'], self.did))

        cred_def = await self.get_cred_def(offer['credentialDefinition'])
        if cred_def['schemaId'] != offer.get('schema'):
            LOGGER.debug('HolderProver.create_cred_req <!< Offer %s schema mismatches cred def', offer['id'])
            raise ProtocolError('Offer {} schema {} mismatches cred def {}'.format(
                offer['id'],
                offer.get('schema'),
                cred_def['id']))

        label = master_secret_label or self.master_secret_label
        master_secret = await self.wallet.get_master_secret(label)
        (request, metadata) = await self.primitives.create_cred_req(
            self.did,
            cred_def['definition'],
            master_secret,
            label,
            offer['offer'])

        await self.wallet.write_non_secret(StorageRecord(
            TYPE_CRED_REQ_METADATA,
            json.dumps({
                'blindingFactors': metadata,
                'masterSecretLabel': label,
                'threadId': offer['id']
            }),
            {'cd_id': cred_def['id']},
            str(offer['nonce'])))
        self._issuance.advance(offer['id'], IssuanceState.OFFER_RECEIVED)
        self._issuance.advance(offer['id'], IssuanceState.REQUEST_SENT)

        rv = {
            'type': 'EvanZKPCredentialRequest',
            'id': offer['id'],
            'subject': self.did,
            'schema': offer['schema'],
            'credentialDefinition': cred_def['id'],
            'nonce': offer['nonce'],
            'credentialValues': values or {},
            'request': request
        }
        LOGGER.debug('HolderProver.create_cred_req <<< %s', rv)
        return rv

    @staticmethod
    def _check_witness(witness: dict, proof: dict) -> None:
        """
        Raise CryptoError if witness does not pertain to credential revocation registry and index.
        """

        if (witness.get('revRegId'), witness.get('revocationId')) != (
                proof['revocationRegistryDefinition'],
                proof['revocationId']):
            LOGGER.debug(
                'HolderProver._check_witness <!< Witness on %s #%s does not match credential on %s #%s',
                witness.get('revRegId'),
                witness.get('revocationId'),
                proof['revocationRegistryDefinition'],
                proof['revocationId'])
            raise CryptoError('Witness on {} #{} does not match credential on {} #{}'.format(
                witness.get('revRegId'),
                witness.get('revocationId'),
                proof['revocationRegistryDefinition'],
                proof['revocationId']))

    async def store_cred(self, credential: dict, witness: dict = None) -> str:
        """
        Finish credential as HolderProver: verify issuer signature and unblind it with the blinding
        factors of the pending request and the master secret, then store credential (and witness, if any)
        in wallet.

        Raise ProtocolError for no pending request on the credential's issuance nonce, CryptoError
        if the signature does not verify or the witness does not match the credential.

        :param credential: credential as Issuer.create_cred() creates it
        :param witness: initial witness for revocable credential
        :return: credential identifier in wallet
        """

        LOGGER.debug('HolderProver.store_cred >>> credential: %s, witness: %s', credential, witness)

        proof = credential['proof']
        nonce = str(proof['issuanceNonce'])
        pending = (await self.wallet.get_non_secret(TYPE_CRED_REQ_METADATA, nonce)).get(nonce)
        if not pending:
            LOGGER.debug('HolderProver.store_cred <!< No pending credential request on nonce %s', nonce)
            raise ProtocolError('No pending credential request on nonce {}'.format(nonce))
        metadata = pending.value_json
        self._issuance.check(metadata['threadId'], IssuanceState.CREDENTIAL_ISSUED)

        cred_def = await self.get_cred_def(proof['credentialDefinition'])
        rr_id = proof['revocationRegistryDefinition']
        rr_def = None
        if rr_id:
            rr_def = await self.get_rev_reg_def(rr_id)
            await self._sync_tails(rr_id)
            if witness:
                HolderProver._check_witness(witness, proof)

        signature = await self.primitives.process_cred(
            proof['signature'],
            metadata['blindingFactors'],
            await self.wallet.get_master_secret(metadata['masterSecretLabel']),
            cred_def['definition'],
            rr_def and rr_def['definition'])

        stored = deepcopy(credential)
        stored['proof']['signature'] = signature
        rv = credential['id']
        await self.wallet.write_non_secret(StorageRecord(
            TYPE_CRED,
            json.dumps({
                'credential': stored,
                'witness': witness,
                'masterSecretLabel': metadata['masterSecretLabel']
            }),
            {
                'schema_id': credential['credentialSchema']['id'],
                'cred_def_id': cred_def['id'],
                'rev_reg_id': rr_id or '',
                'rev_id': '' if proof['revocationId'] is None else str(proof['revocationId'])
            },
            rv))
        await self.wallet.delete_non_secret(TYPE_CRED_REQ_METADATA, nonce)
        self._issuance.advance(metadata['threadId'], IssuanceState.CREDENTIAL_ISSUED)
        LOGGER.info('HolderProver %s stored credential %s', self.name, rv)

        LOGGER.debug('HolderProver.store_cred <<< %s', rv)
        return rv

    async def get_cred(self, cred_id: str) -> dict:
        """
        Get credential, with its witness, from wallet. Raise AbsentCred for no such credential.

        :param cred_id: credential identifier
        :return: dict with credential, witness (None for irrevocable credential), master secret label
        """

        LOGGER.debug('HolderProver.get_cred >>> cred_id: %s', cred_id)

        try:
            rv = (await self.wallet.get_record(TYPE_CRED, cred_id)).value_json
        except AbsentRecord:
            LOGGER.debug('HolderProver.get_cred <!< Wallet %s has no credential %s', self.name, cred_id)
            raise AbsentCred('Wallet {} has no credential {}'.format(self.name, cred_id))

        LOGGER.debug('HolderProver.get_cred <<< %s', rv)
        return rv

    async def get_cred_ids(self, filt: dict = None) -> list:
        """
        Return identifiers of credentials in wallet, on tags filter if specified; e.g.,

        ::

            {
                'schema_id': 'WgWxqztrNooG92RXvxSTWv:2:bc-reg:1.0',
                'cred_def_id': 'WgWxqztrNooG92RXvxSTWv:3:CL:17:revocable'
            }

        :param filt: dict mapping tags to values to match
        :return: credential identifiers
        """

        LOGGER.debug('HolderProver.get_cred_ids >>> filt: %s', filt)

        rv = sorted(await self.wallet.get_non_secret(TYPE_CRED, filt))

        LOGGER.debug('HolderProver.get_cred_ids <<< %s', rv)
        return rv

    async def _save_witness(self, witness: dict) -> None:
        """
        Replace witness on any stored credential on its revocation registry and index.
        """

        records = await self.wallet.get_non_secret(TYPE_CRED, {
            'rev_reg_id': witness['revRegId'],
            'rev_id': str(witness['revocationId'])
        })
        for record in records.values():
            value = record.value_json
            value['witness'] = witness
            record.value = json.dumps(value)
            await self.wallet.write_non_secret(record)

    async def create_witness(self, cred_id: str) -> dict:
        """
        Create witness for stored revocable credential at latest version of its revocation registry,
        from the entire delta log and the public tails file. Store it with the credential.

        Raise AbsentCred for no such credential, or ValidationError for irrevocable credential.

        :param cred_id: credential identifier
        :return: witness
        """

        LOGGER.debug('HolderProver.create_witness >>> cred_id: %s', cred_id)

        proof = (await self.get_cred(cred_id))['credential']['proof']
        rr_id = proof['revocationRegistryDefinition']
        if not rr_id:
            LOGGER.debug('HolderProver.create_witness <!< Credential %s is not revocable', cred_id)
            raise ValidationError('Credential {} is not revocable'.format(cred_id))

        rv = await self._build_witness(rr_id, proof['revocationId'], await self._sync_tails(rr_id))
        await self._save_witness(rv)

        LOGGER.debug('HolderProver.create_witness <<< %s', rv)
        return rv

    async def refresh_witness(self, witness: dict) -> dict:
        """
        Bring witness up to the latest version of its revocation registry: fetch the deltas since
        its version and fold them in locally with the public tails file. Replace the witness on any
        stored credential that it serves.

        :param witness: witness to refresh
        :return: refreshed witness, or input witness if already current
        """

        LOGGER.debug('HolderProver.refresh_witness >>> witness: %s', witness)

        rr_id = witness['revRegId']
        if not ok_rev_reg_id(rr_id):
            LOGGER.debug('HolderProver.refresh_witness <!< Bad rev reg id %s', rr_id)
            raise BadIdentifier('Bad rev reg id {}'.format(rr_id))

        frames = await self.get_rev_reg_deltas(rr_id, witness['version'] + 1)
        if not frames:
            LOGGER.info('Witness on %s #%s is current at version %s', rr_id, witness['revocationId'], witness['version'])
            LOGGER.debug('HolderProver.refresh_witness <<< %s', witness)
            return witness

        rr_def = await self.get_rev_reg_def(rr_id)
        state = await self.primitives.update_witness(
            witness['state'],
            rr_def['definition'],
            await self._merge_deltas(frames),
            witness['revocationId'],
            frames[-1]['timestamp'],
            await self._sync_tails(rr_id))
        rv = {
            'revRegId': rr_id,
            'revocationId': witness['revocationId'],
            'version': frames[-1]['version'],
            'state': state
        }
        await self._save_witness(rv)

        LOGGER.debug('HolderProver.refresh_witness <<< %s', rv)
        return rv

    async def _present(self, sub_index: int, stored: dict, proof_req: dict, witness: dict) -> PresentedCred:
        """
        Return credential's part in presentation for sub-request at input index: referents to reveal,
        predicate referents, and for a revocable credential its timestamp and revocation state.

        Raise ProtocolError for revocable credential without witness, CryptoError for witness not matching
        credential, or StaleWitnessError for witness predating the latest delta when the credential is
        still unrevoked.
        """

        prefix = '{}_'.format(sub_index)
        revealed = [reft for reft in proof_req['request']['requested_attributes'] if reft.startswith(prefix)]
        predicates = [reft for reft in proof_req['request']['requested_predicates'] if reft.startswith(prefix)]

        proof = stored['credential']['proof']
        rr_id = proof['revocationRegistryDefinition']
        if not rr_id:
            return PresentedCred(proof['signature'], revealed, [], predicates, None, None)

        if not witness:
            LOGGER.debug('HolderProver._present <!< No witness for revocable credential %s', stored['credential']['id'])
            raise ProtocolError('No witness for revocable credential {}'.format(stored['credential']['id']))
        HolderProver._check_witness(witness, proof)

        frames = await self.get_rev_reg_deltas(rr_id)
        latest = frames[-1]['version']
        if witness['version'] < latest:
            revoked = any(proof['revocationId'] in frame['revoked'] for frame in frames[witness['version'] + 1:])
            if not revoked:
                LOGGER.debug(
                    'HolderProver._present <!< Witness on %s at version %s predates latest %s',
                    rr_id,
                    witness['version'],
                    latest)
                raise StaleWitnessError(
                    'Witness on {} at version {} predates latest {}'.format(rr_id, witness['version'], latest),
                    rr_id,
                    witness['version'],
                    latest)
            LOGGER.warning('Credential %s on %s is revoked: presenting anyway', stored['credential']['id'], rr_id)

        return PresentedCred(
            proof['signature'],
            revealed,
            [],
            predicates,
            frames[witness['version']]['timestamp'],
            witness['state'])

    async def create_proof(
            self,
            proof_req: dict,
            cred_ids: Sequence[str],
            witnesses: Mapping[str, dict] = None,
            master_secret_label: str = None) -> dict:
        """
        Create presentation for proof request as HolderProver: one aggregated proof over all credentials,
        binding the request nonce. Each sub-request takes the credential on its schema.

        Raise ProtocolError for request out of order or not for this prover, AbsentCred for no
        credential on a sub-request schema, StaleWitnessError for a witness needing refresh, or
        CryptoError on proof creation failure.

        :param proof_req: proof request as Verifier.create_proof_req() creates it
        :param cred_ids: identifiers of credentials to present
        :param witnesses: dict mapping credential identifiers to witnesses, overriding those in wallet
        :param master_secret_label: label of master secret (default that of first credential)
        :return: presentation
        """

        LOGGER.debug(
            'HolderProver.create_proof >>> proof_req: %s, cred_ids: %s, witnesses: %s, master_secret_label: %s',
            proof_req,
            cred_ids,
            witnesses,
            master_secret_label)

        thread = proof_req['id']
        if self._proofs.state(thread) is None:
            self._proofs.advance(thread, ProofState.REQUEST_RECEIVED)
        self._proofs.check(thread, ProofState.PRESENTATION_BUILT)
        if proof_req.get('prover') and proof_req['prover'] != self.did:
            LOGGER.debug('HolderProver.create_proof <!< Proof request %s is not for %s', thread, self.did)
            raise ProtocolError('Proof request {} is not for {}'.format(thread, self.did))

        stored = {}
        for cred_id in cred_ids:
            value = await self.get_cred(cred_id)
            stored[value['credential']['credentialSchema']['id']] = value

        presented = []
        s_ids = []
        cd_ids = []
        for (sub_index, sub_req) in enumerate(proof_req['subProofRequests']):
            if sub_req['schema'] not in stored:
                LOGGER.debug('HolderProver.create_proof <!< No credential presented on schema %s', sub_req['schema'])
                raise AbsentCred('No credential presented on schema {}'.format(sub_req['schema']))
            value = stored[sub_req['schema']]
            witness = (witnesses or {}).get(value['credential']['id'], value['witness'])
            presented.append(await self._present(sub_index, value, proof_req, witness))
            if sub_req['schema'] not in s_ids:
                s_ids.append(sub_req['schema'])
            if value['credential']['proof']['credentialDefinition'] not in cd_ids:
                cd_ids.append(value['credential']['proof']['credentialDefinition'])

        label = master_secret_label or list(stored.values())[0]['masterSecretLabel']
        proof = await self.primitives.create_proof(
            proof_req['request'],
            presented,
            await self.wallet.get_master_secret(label),
            [await self.get_schema(s_id) for s_id in s_ids],
            [(await self.get_cred_def(cd_id))['definition'] for cd_id in cd_ids])

        revealed = revealed_attrs(proof)
        rv = {
            'type': 'EvanZKPProofPresentation',
            'id': uuid4().hex,
            'proofRequest': thread,
            'nonce': proof_req['nonce'],
            'verifiableCredential': [
                {
                    'credentialSchema': {
                        'id': s_id,
                        'type': 'EvanZKPSchema'
                    },
                    'credentialDefinition': stored[s_id]['credential']['proof']['credentialDefinition'],
                    'revocationRegistryDefinition': stored[s_id]['credential']['proof']['revocationRegistryDefinition'],
                    'credentialSubject': {
                        'data': revealed.get(s_id, {})
                    }
                } for s_id in s_ids
            ],
            'proof': proof
        }
        self._proofs.advance(thread, ProofState.PRESENTATION_BUILT)

        LOGGER.debug('HolderProver.create_proof <<< %s', rv)
        return rv
