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

import pytest

from von_zkp import MemoryLedger, PluginResult, ZkpPlugin
from von_zkp.error import BadIdentifier, JSONValidation, StaleWitnessError, WalletState
from von_zkp.frill import Ink


METHOD = 'did:evan'
OPTIONS = json.dumps({'type': 'cl'})


@pytest.fixture
def plugin_config(seed_issuer, seed_holder, seed_verifier, dir_tails):
    return {
        'issuer-seed': seed_issuer,
        'holder-seed': seed_holder,
        'verifier-seed': seed_verifier,
        'issuer': {
            'rr-size-default': 4,
            'rr-auto-roll': True,
            'dir-tails': dir_tails['issuer']
        },
        'holder-prover': {
            'dir-tails': dir_tails['holder']
        }
    }


async def _call(plugin: ZkpPlugin, op: str, payload: dict) -> dict:
    result = await getattr(plugin, op)(METHOD, OPTIONS, json.dumps(payload))
    assert result.status == PluginResult.SUCCESS
    return result.json()


async def _custom(plugin: ZkpPlugin, function: str, payload: dict):
    result = await plugin.run_custom_function(METHOD, function, OPTIONS, json.dumps(payload))
    assert result.status == PluginResult.SUCCESS
    return result.json()


@pytest.mark.asyncio
async def test_plugin_ignores(ledger, plugin_config):
    print(Ink.YELLOW('\n\n== Testing Plugin Call Routing =='))

    plugin = ZkpPlugin(ledger, config=plugin_config)
    with pytest.raises(WalletState):
        await plugin.vc_zkp_create_credential_proposal(METHOD, OPTIONS, '{}')
    print('\n\n== 1 == Unopened plugin raises on calls for it')

    async with plugin:
        assert plugin.issuer.did and plugin.holder.did and plugin.verifier.did
        assert await plugin.holder.wallet.has_master_secret('default')

        ignored = PluginResult.ignored()
        assert ignored.ignored_call and ignored.json() is None
        assert await plugin.vc_zkp_create_credential_schema('did:web', OPTIONS, '{}') == ignored
        assert await plugin.vc_zkp_create_credential_schema(METHOD, json.dumps({'type': 'bbs'}), '{}') == ignored
        assert await plugin.vc_zkp_verify_proof(METHOD, json.dumps({}), '{}') == ignored
        assert await plugin.run_custom_function(METHOD, 'no_such_function', OPTIONS, '{}') == ignored
        print('\n\n== 2 == Calls on other methods, types, and functions come back ignored')

        with pytest.raises(JSONValidation):
            await plugin.vc_zkp_create_credential_proposal(METHOD, 'not json', '{}')
        with pytest.raises(JSONValidation):
            await plugin.vc_zkp_create_credential_proposal(METHOD, OPTIONS, '[]')
        with pytest.raises(JSONValidation):
            await plugin.vc_zkp_create_credential_proposal(METHOD, OPTIONS, json.dumps({'issuer': plugin.issuer.did}))
        with pytest.raises(BadIdentifier):
            await plugin.vc_zkp_create_credential_schema(METHOD, OPTIONS, json.dumps({
                'issuer': plugin.holder.did,
                'schemaName': 'test',
                'properties': {
                    'name': {
                        'type': 'string'
                    }
                }
            }))
        print('\n\n== 3 == Bad json, bad payloads, and foreign DIDs raise')

        result = await plugin.run_custom_function(METHOD, 'create_master_secret', OPTIONS, json.dumps({'label': 'other'}))
        assert result.json() == {'label': 'other'}
        assert await plugin.holder.wallet.has_master_secret('other')
        result = await plugin.run_custom_function(METHOD, 'generate_safe_prime', OPTIONS, json.dumps({'bits': 512}))
        prime = int(result.json())
        assert prime.bit_length() == 512 and prime % 2 == 1
        with pytest.raises(JSONValidation):
            await plugin.run_custom_function(METHOD, 'generate_safe_prime', OPTIONS, json.dumps({'bits': 64}))
        print('\n\n== 4 == Custom functions create master secret and safe prime')


@pytest.mark.asyncio
async def test_plugin_flow(ledger, plugin_config):
    print(Ink.YELLOW('\n\n== Testing Plugin Issuance and Proof =='))

    async with ZkpPlugin(ledger, config=plugin_config) as plugin:
        schema = await _call(plugin, 'vc_zkp_create_credential_schema', {
            'issuer': plugin.issuer.did,
            'schemaName': 'test-schema',
            'description': 'Test schema',
            'properties': {
                'age': {
                    'type': 'string'
                },
                'country': {
                    'type': 'string'
                }
            },
            'requiredProperties': ['age']
        })
        assert schema['attrNames'] == ['age', 'country']
        assert schema['requiredProperties'] == ['age']
        cred_def = await _call(plugin, 'vc_zkp_create_credential_definition', {
            'issuerDid': plugin.issuer.did,
            'schemaDid': schema['id']
        })
        rr_def = await _call(plugin, 'vc_zkp_create_revocation_registry_definition', {
            'credentialDefinition': cred_def['id'],
            'maximumCredentialCount': 4
        })
        print('\n\n== 1 == Published schema, cred def, and rev reg {}'.format(rr_def['id']))

        cred_ids = []
        witnesses = []
        for (age, country) in ((42, 'DE'), (17, 'CA')):
            proposal = await _call(plugin, 'vc_zkp_create_credential_proposal', {
                'issuer': plugin.issuer.did,
                'subject': plugin.holder.did,
                'schema': schema['id']
            })
            offer = await _call(plugin, 'vc_zkp_create_credential_offer', {
                'credentialProposal': proposal,
                'credentialDefinition': cred_def['id']
            })
            request = await _call(plugin, 'vc_zkp_request_credential', {
                'credentialOffering': offer,
                'credentialValues': {
                    'age': age,
                    'country': country
                }
            })
            issued = await _call(plugin, 'vc_zkp_issue_credential', {
                'credentialRequest': request,
                'credentialRevocationDefinition': rr_def['id']
            })
            assert issued['witness']['revRegId'] == rr_def['id']
            finished = await _call(plugin, 'vc_zkp_finish_credential', issued)
            cred_ids.append(finished['credentialId'])
            witnesses.append(issued['witness'])
        print('\n\n== 2 == Issued credentials {}'.format(cred_ids))

        proof_req = await _call(plugin, 'vc_zkp_request_proof', {
            'verifierDid': plugin.verifier.did,
            'proverDid': plugin.holder.did,
            'subProofRequests': [{
                'schema': schema['id'],
                'revealedAttributes': ['country'],
                'predicates': [{
                    'attribute': 'age',
                    'type': '>=',
                    'value': 18
                }]
            }]
        })
        with pytest.raises(StaleWitnessError) as x_stale:
            await _call(plugin, 'vc_zkp_present_proof', {
                'proofRequest': proof_req,
                'credentialIds': [cred_ids[0]],
                'witnesses': {
                    cred_ids[0]: witnesses[0]
                }
            })
        assert (x_stale.value.version, x_stale.value.latest) == (1, 2)
        witness = await _custom(plugin, 'refresh_witness', {'witness': witnesses[0]})
        assert witness['version'] == 2 and witness['revocationId'] == witnesses[0]['revocationId']
        assert await _custom(plugin, 'refresh_witness', {'witness': witness}) == witness
        with pytest.raises(JSONValidation):
            await _custom(plugin, 'refresh_witness', {'witness': {'revRegId': rr_def['id']}})
        print('\n\n== 3 == Stale witness raises on presentation, refreshes through custom function')

        presentation = await _call(plugin, 'vc_zkp_present_proof', {
            'proofRequest': proof_req,
            'credentialIds': [cred_ids[0]],
            'witnesses': {
                cred_ids[0]: witness
            }
        })
        assert presentation['verifiableCredential'][0]['credentialSubject']['data'] == {'country': 'DE'}
        verification = await _call(plugin, 'vc_zkp_verify_proof', {
            'presentedProof': presentation,
            'proofRequest': proof_req
        })
        assert verification == {'presentedProof': presentation['id'], 'status': 'verified', 'reason': None}
        print('\n\n== 4 == Presentation verifies')

        verification = await _call(plugin, 'vc_zkp_verify_proof', {
            'presentedProof': presentation,
            'proofRequest': proof_req
        })
        assert verification['status'] == 'rejected' and verification['reason']
        print('\n\n== 5 == Replayed presentation is rejected: {}'.format(verification['reason']))

        entry = await _call(plugin, 'vc_zkp_revoke_credential', {
            'revocationRegistryDefinition': rr_def['id'],
            'credentialRevocationId': 1
        })
        assert entry['revoked'] == [1]
        again = await _call(plugin, 'vc_zkp_update_revocation_registry', {
            'revocationRegistryDefinition': rr_def['id'],
            'revokedIds': [1]
        })
        assert again == entry
        proof_req = await _call(plugin, 'vc_zkp_request_proof', {
            'verifierDid': plugin.verifier.did,
            'subProofRequests': [{
                'schema': schema['id'],
                'revealedAttributes': ['country']
            }]
        })
        presentation = await _call(plugin, 'vc_zkp_present_proof', {
            'proofRequest': proof_req,
            'credentialIds': [cred_ids[0]]
        })
        verification = await _call(plugin, 'vc_zkp_verify_proof', {
            'presentedProof': presentation,
            'proofRequest': proof_req
        })
        assert verification['status'] == 'rejected'
        print('\n\n== 6 == Presentation on revoked credential is rejected')

        witness = await _custom(plugin, 'create_witness', {'credentialId': cred_ids[1]})
        assert witness['version'] == entry['version'] and witness['revocationId'] == 2
        proof_req = await _call(plugin, 'vc_zkp_request_proof', {
            'verifierDid': plugin.verifier.did,
            'subProofRequests': [{
                'schema': schema['id'],
                'revealedAttributes': ['country']
            }]
        })
        presentation = await _call(plugin, 'vc_zkp_present_proof', {
            'proofRequest': proof_req,
            'credentialIds': [cred_ids[1]]
        })
        verification = await _call(plugin, 'vc_zkp_verify_proof', {
            'presentedProof': presentation,
            'proofRequest': proof_req
        })
        assert verification['status'] == 'verified'
        print('\n\n== 7 == Witness created afresh through custom function serves unrevoked credential')


@pytest.mark.asyncio
async def test_plugin_shared_ledger(plugin_config):
    print(Ink.YELLOW('\n\n== Testing Plugins on Shared Ledger =='))

    ledger = MemoryLedger('shared')
    async with ZkpPlugin(ledger, config=plugin_config) as plugin:
        schema = await _call(plugin, 'vc_zkp_create_credential_schema', {
            'issuer': plugin.issuer.did,
            'schemaName': 'shared',
            'schemaVersion': '2.0',
            'properties': {
                'name': {
                    'type': 'string'
                }
            }
        })

    async with ZkpPlugin(ledger, config={  # random seeds
            'issuer': plugin_config['issuer'],
            'holder-prover': plugin_config['holder-prover']}) as other:
        assert other.issuer.did != plugin.issuer.did
        assert (await other.verifier.get_schema(schema['id']))['seqNo'] == schema['seqNo']
        print('\n\n== 1 == Second plugin reads schema from shared ledger')
