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

from von_zkp.anchor import HolderProver, Issuer, Verifier
from von_zkp.error import BadIdentifier, JSONValidation, VerificationError, WalletState
from von_zkp.ledger import IdentityLedger
from von_zkp.primitives import CredxPrimitives, Primitives
from von_zkp.proto import validate
from von_zkp.validcfg import validate_config
from von_zkp.wallet import Wallet


LOGGER = logging.getLogger(__name__)

EVAN_METHOD = 'did:evan'
PROOF_METHOD_CL = 'cl'
SAFE_PRIME_BITS_DEFAULT = 1024
CUSTOM_FUNCTIONS = ('create_master_secret', 'generate_safe_prime', 'create_witness', 'refresh_witness')


class PluginResult:
    """
    Outcome of plugin call: success with a serialized value, or ignored as pertaining to
    another method or credential type.
    """

    SUCCESS = 'success'
    IGNORED = 'ignored'

    def __init__(self, status: str, value: str = None) -> None:
        self._status = status
        self._value = value

    @staticmethod
    def success(value: str = None) -> 'PluginResult':
        return PluginResult(PluginResult.SUCCESS, value)

    @staticmethod
    def ignored() -> 'PluginResult':
        return PluginResult(PluginResult.IGNORED)

    @property
    def status(self) -> str:
        return self._status

    @property
    def value(self) -> str:
        return self._value

    @property
    def ignored_call(self) -> bool:
        return self._status == PluginResult.IGNORED

    def json(self):
        """
        Return value parsed from json, None for no value.
        """

        return None if self._value is None else json.loads(self._value)

    def __eq__(self, other: 'PluginResult') -> bool:
        return isinstance(other, PluginResult) and (self.status, self.value) == (other.status, other.value)

    def __repr__(self) -> str:
        return 'PluginResult({}, {})'.format(self.status, self.value)


def _loads(text: str, what: str) -> dict:
    """
    Parse json text; raise JSONValidation for bad json or anything but an object.
    """

    try:
        rv = json.loads(text or '{}')
    except ValueError as x_json:
        LOGGER.debug('_loads <!< Bad json in %s: %s', what, x_json)
        raise JSONValidation('Bad json in {}: {}'.format(what, x_json)) from x_json
    if not isinstance(rv, dict):
        LOGGER.debug('_loads <!< The %s must be a json object', what)
        raise JSONValidation('The {} must be a json object'.format(what))
    return rv


class ZkpPlugin:
    """
    Plugin surface for CL credential operations on method did:evan. Each operation takes
    method, options, and payload as json text and returns a PluginResult; calls naming another
    method or credential type come back ignored, for the host to try the next plugin.

    The plugin holds one issuer, one holder-prover, and one verifier anchor on the same ledger,
    each on its own wallet.
    """

    def __init__(self, ledger: IdentityLedger, primitives: Primitives = None, config: dict = None) -> None:
        """
        Initializer for plugin. Validate configuration; build anchors on their wallets, for
        opening via open() or context manager.

        :param ledger: identity ledger
        :param primitives: CL primitives backend (default indy-credx)
        :param config: plugin configuration dict; e.g.,

        ::

            {
                'issuer-seed': 'Issuer00000000000000000000000000',
                'holder-seed': 'Holder00000000000000000000000000',
                'verifier-seed': 'Verifier000000000000000000000000',
                'issuer': {
                    'rr-size-default': 64,
                    'rr-auto-roll': True
                },
                'holder-prover': {
                    'dir-tails': '/home/holder/tails'
                },
                'verifier': {
                    'consume-nonces': True
                }
            }

        """

        LOGGER.debug('ZkpPlugin.__init__ >>> ledger: %s, primitives: %s, config: %s', ledger, primitives, config)

        self._config = config or {}
        validate_config('plugin', self._config)

        primitives = primitives or CredxPrimitives()
        self._issuer = Issuer(Wallet('issuer'), ledger, primitives, config=self._config.get('issuer'))
        self._holder = HolderProver(Wallet('holder'), ledger, primitives, config=self._config.get('holder-prover'))
        self._verifier = Verifier(Wallet('verifier'), ledger, primitives, config=self._config.get('verifier'))
        self._opened = False

        LOGGER.debug('ZkpPlugin.__init__ <<<')

    @property
    def issuer(self) -> Issuer:
        return self._issuer

    @property
    def holder(self) -> HolderProver:
        return self._holder

    @property
    def verifier(self) -> Verifier:
        return self._verifier

    async def __aenter__(self) -> 'ZkpPlugin':
        """
        Context manager entry.

        :return: current object
        """

        LOGGER.debug('ZkpPlugin.__aenter__ >>>')

        rv = await self.open()

        LOGGER.debug('ZkpPlugin.__aenter__ <<<')
        return rv

    async def open(self) -> 'ZkpPlugin':
        """
        Open wallets, create anchor DIDs on configured seeds (default random), register them
        on the ledger, and create the holder's default master secret.

        :return: current object
        """

        LOGGER.debug('ZkpPlugin.open >>>')

        for (anchor, seed_key) in (
                (self._issuer, 'issuer-seed'),
                (self._holder, 'holder-seed'),
                (self._verifier, 'verifier-seed')):
            if not anchor.wallet.opened:
                await anchor.wallet.open()
            if not anchor.did:
                await anchor.wallet.create_local_did(self._config.get(seed_key))
            await anchor.open()
        await self._holder.create_master_secret()
        self._opened = True

        LOGGER.debug('ZkpPlugin.open <<<')
        return self

    async def __aexit__(self, exc_type, exc, traceback) -> None:
        LOGGER.debug('ZkpPlugin.__aexit__ >>> exc_type: %s, exc: %s, traceback: %s', exc_type, exc, traceback)

        await self.close()

        LOGGER.debug('ZkpPlugin.__aexit__ <<<')

    async def close(self) -> None:
        """
        Close anchors and their wallets.
        """

        LOGGER.debug('ZkpPlugin.close >>>')

        for anchor in (self._issuer, self._holder, self._verifier):
            await anchor.close()
            await anchor.wallet.close()
        self._opened = False

        LOGGER.debug('ZkpPlugin.close <<<')

    def _related(self, method: str, options: str) -> bool:
        """
        Return whether call is for this plugin: method did:evan and credential type cl.
        Raise WalletState if plugin is not open, JSONValidation for bad options.
        """

        if method != EVAN_METHOD:
            return False
        opts = _loads(options, 'options')
        validate('options', opts)
        if opts.get('type') != PROOF_METHOD_CL:
            return False

        if not self._opened:
            LOGGER.debug('ZkpPlugin._related <!< Plugin is not open')
            raise WalletState('Plugin is not open')
        return True

    @staticmethod
    def _payload(op: str, payload: str) -> dict:
        rv = _loads(payload, 'payload')
        validate(op, rv)
        return rv

    @staticmethod
    def _check_did(did: str, anchor, role: str) -> None:
        if did != anchor.did:
            LOGGER.debug('ZkpPlugin._check_did <!< The plugin %s is %s, not %s', role, anchor.did, did)
            raise BadIdentifier('The plugin {} is {}, not {}'.format(role, anchor.did, did))

    async def run_custom_function(self, method: str, function: str, options: str, payload: str) -> PluginResult:
        """
        Run custom function:

        - create_master_secret (in holder wallet, on optional label)
        - generate_safe_prime (on optional bit length, default 1024)
        - create_witness (afresh for stored credential, on credentialId)
        - refresh_witness (to latest registry version, on witness), to recover from a stale witness.

        Any other function comes back ignored.

        :param method: method, did:evan for this plugin
        :param function: function name
        :param options: json options; type cl for this plugin
        :param payload: json payload
        :return: label of master secret, decimal safe prime, or witness, as json
        """

        LOGGER.debug('ZkpPlugin.run_custom_function >>> method: %s, function: %s', method, function)

        if not self._related(method, options) or function not in CUSTOM_FUNCTIONS:
            LOGGER.debug('ZkpPlugin.run_custom_function <<< ignored')
            return PluginResult.ignored()

        form = ZkpPlugin._payload(function, payload)
        if function == 'create_master_secret':
            rv = PluginResult.success(json.dumps({'label': await self._holder.create_master_secret(form.get('label'))}))
        elif function == 'create_witness':
            rv = PluginResult.success(json.dumps(await self._holder.create_witness(form['credentialId'])))
        elif function == 'refresh_witness':
            rv = PluginResult.success(json.dumps(await self._holder.refresh_witness(form['witness'])))
        else:
            rv = PluginResult.success(json.dumps(str(
                await self._holder.primitives.generate_safe_prime(form.get('bits', SAFE_PRIME_BITS_DEFAULT)))))

        LOGGER.debug('ZkpPlugin.run_custom_function <<< %s', rv)
        return rv

    async def vc_zkp_create_credential_schema(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Create and publish credential schema. The attribute names are the payload's property names;
        description and required properties go with the published schema.

        :return: schema as published
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_create_credential_schema', payload)
        ZkpPlugin._check_did(form['issuer'], self._issuer, 'issuer')

        schema = await self._issuer.create_schema(
            form['schemaName'],
            sorted(form['properties']),
            form.get('schemaVersion', '1.0'),
            form.get('description'),
            form.get('requiredProperties', []))
        return PluginResult.success(json.dumps(schema))

    async def vc_zkp_create_credential_definition(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Create credential definition on schema, publishing its public part.

        :return: credential definition as published
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_create_credential_definition', payload)
        ZkpPlugin._check_did(form['issuerDid'], self._issuer, 'issuer')

        cred_def = await self._issuer.create_cred_def(form['schemaDid'], form.get('revocation', True))
        return PluginResult.success(json.dumps(cred_def))

    async def vc_zkp_create_credential_proposal(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Create credential proposal from holder to issuer.

        :return: credential proposal
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_create_credential_proposal', payload)
        ZkpPlugin._check_did(form['subject'], self._holder, 'holder')

        proposal = await self._holder.create_cred_proposal(form['issuer'], form['schema'])
        return PluginResult.success(json.dumps(proposal))

    async def vc_zkp_create_credential_offer(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Create credential offer on proposal.

        :return: credential offering
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_create_credential_offer', payload)

        offer = await self._issuer.create_cred_offer(form['credentialProposal'], form['credentialDefinition'])
        return PluginResult.success(json.dumps(offer))

    async def vc_zkp_request_credential(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Create credential request on offering, blinding the holder master secret.

        :return: credential request
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_request_credential', payload)

        request = await self._holder.create_cred_req(
            form['credentialOffering'],
            form.get('masterSecretLabel'),
            form.get('credentialValues'))
        return PluginResult.success(json.dumps(request))

    async def vc_zkp_create_revocation_registry_definition(
            self,
            method: str,
            options: str,
            payload: str) -> PluginResult:
        """
        Create revocation registry on credential definition, publishing its definition and creation delta.

        :return: revocation registry definition as published
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_create_revocation_registry_definition', payload)

        rr_def = await self._issuer.create_rev_reg(form['credentialDefinition'], form.get('maximumCredentialCount'))
        return PluginResult.success(json.dumps(rr_def))

    async def vc_zkp_update_revocation_registry(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Revoke credential revocation indices on registry, publishing one delta.

        :return: delta log entry
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_update_revocation_registry', payload)

        entry = await self._issuer.update_rev_reg(form['revocationRegistryDefinition'], form['revokedIds'])
        return PluginResult.success(json.dumps(entry))

    async def vc_zkp_issue_credential(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Issue credential on request.

        :return: credential and initial witness (null for irrevocable credential)
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_issue_credential', payload)

        (credential, witness) = await self._issuer.create_cred(
            form['credentialRequest'],
            form.get('credentialValues'),
            form.get('credentialRevocationDefinition'))
        return PluginResult.success(json.dumps({'credential': credential, 'witness': witness}))

    async def vc_zkp_finish_credential(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Finish credential as holder: verify and unblind its signature, then store it with its witness.

        :return: credential identifier in holder wallet
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_finish_credential', payload)

        cred_id = await self._holder.store_cred(form['credential'], form.get('witness'))
        return PluginResult.success(json.dumps({'credentialId': cred_id}))

    async def vc_zkp_revoke_credential(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Revoke credential by its registry and revocation index.

        :return: delta log entry
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_revoke_credential', payload)

        entry = await self._issuer.revoke_cred(form['revocationRegistryDefinition'], form['credentialRevocationId'])
        return PluginResult.success(json.dumps(entry))

    async def vc_zkp_request_proof(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Create proof request on sub-requests.

        :return: proof request
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_request_proof', payload)
        ZkpPlugin._check_did(form['verifierDid'], self._verifier, 'verifier')

        proof_req = await self._verifier.create_proof_req(form['subProofRequests'], form.get('proverDid'))
        return PluginResult.success(json.dumps(proof_req))

    async def vc_zkp_present_proof(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Create presentation on proof request from stored credentials.

        :return: presentation
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_present_proof', payload)

        presentation = await self._holder.create_proof(
            form['proofRequest'],
            form['credentialIds'],
            form.get('witnesses'),
            form.get('masterSecretLabel'))
        return PluginResult.success(json.dumps(presentation))

    async def vc_zkp_verify_proof(self, method: str, options: str, payload: str) -> PluginResult:
        """
        Verify presentation against proof request. A negative outcome is a normal result,
        with status rejected and its reason.

        :return: proof verification {presentedProof, status, reason}
        """

        if not self._related(method, options):
            return PluginResult.ignored()
        form = ZkpPlugin._payload('vc_zkp_verify_proof', payload)

        rv = {
            'presentedProof': form['presentedProof'].get('id'),
            'status': 'verified',
            'reason': None
        }
        try:
            await self._verifier.verify_proof(form['presentedProof'], form['proofRequest'])
        except VerificationError as x_verify:
            LOGGER.info('Proof %s rejected: %s', rv['presentedProof'], x_verify.message)
            rv['status'] = 'rejected'
            rv['reason'] = x_verify.message
        return PluginResult.success(json.dumps(rv))
