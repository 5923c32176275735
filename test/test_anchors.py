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
import time

from copy import deepcopy

import pytest

from von_zkp import HolderProver, Issuer, Verifier
from von_zkp.error import (
    AbsentCred,
    AbsentRevReg,
    BadAttribute,
    BadIdentifier,
    CapacityError,
    ProtocolError,
    StaleWitnessError,
    ValidationError,
    VerificationError)
from von_zkp.frill import Ink, ppjson
from von_zkp.indytween import encode
from von_zkp.tails import Tails
from von_zkp.util import rev_reg_id
from von_zkp.wallet import Wallet


async def _open_anchors(ledger, dir_tails, seeds, issuer_config=None, verifier_config=None):
    wallets = {name: await Wallet('{}-wallet'.format(name)).open() for name in seeds}
    for name in seeds:
        await wallets[name].create_local_did(seeds[name])

    issuer = await Issuer(
        wallets['issuer'],
        ledger,
        config=dict(issuer_config or {}, **{'dir-tails': dir_tails['issuer']})).open()
    holder = await HolderProver(wallets['holder'], ledger, config={'dir-tails': dir_tails['holder']}).open()
    verifier = await Verifier(wallets['verifier'], ledger, config=verifier_config).open()
    await holder.create_master_secret()
    return (issuer, holder, verifier)


async def _close_anchors(*anchors):
    for anchor in anchors:
        await anchor.close()
        await anchor.wallet.close()


async def _request(issuer, holder, s_id, cd_id, values):
    proposal = await holder.create_cred_proposal(issuer.did, s_id)
    offer = await issuer.create_cred_offer(proposal, cd_id)
    return await holder.create_cred_req(offer, values=values)


async def _issue(issuer, holder, s_id, cd_id, values, rr_id=None):
    request = await _request(issuer, holder, s_id, cd_id, values)
    (credential, witness) = await issuer.create_cred(request, rr_id=rr_id)
    cred_id = await holder.store_cred(credential, witness)
    return (credential, witness, cred_id)


@pytest.fixture
def seeds(seed_issuer, seed_holder, seed_verifier):
    return {
        'issuer': seed_issuer,
        'holder': seed_holder,
        'verifier': seed_verifier
    }


@pytest.mark.asyncio
async def test_issue_prove(ledger, dir_tails, seeds):
    print(Ink.YELLOW('\n\n== Testing Issuance and Proof =='))

    (issuer, holder, verifier) = await _open_anchors(ledger, dir_tails, seeds, {'rr-size-default': 8})

    schema = await issuer.create_schema('person', ['name', 'age', 'country'], '1.0', 'A person', ['name', 'age'])
    assert schema['attrNames'] == ['name', 'age', 'country']
    assert schema['requiredProperties'] == ['name', 'age']
    assert (await issuer.create_schema('person', ['name', 'age', 'country'], '1.0'))['seqNo'] == schema['seqNo']
    assert await verifier.get_schema(schema['seqNo']) == schema
    print('\n\n== 1 == Schema published once: {}'.format(ppjson(schema)))

    for (name, attrs) in (('', ['a']), ('a:b', ['a']), ('dup', ['a', 'a']), ('empty', []), ('blank', ['a', ''])):
        with pytest.raises(ValidationError):  # BadAttribute is a ValidationError
            await issuer.create_schema(name, attrs)
    with pytest.raises(BadAttribute):
        await issuer.create_schema('person', ['name'], '2.0', required=['age'])
    with pytest.raises(ValidationError):
        await issuer.create_schema('person', ['name'], 'one')
    print('\n\n== 2 == Bad schema names, versions, and attributes raise')

    cred_def = await issuer.create_cred_def(schema['id'])
    cd_id = cred_def['id']
    assert cred_def['revocation']
    assert (await issuer.create_cred_def(schema['id']))['seqNo'] == cred_def['seqNo']
    with pytest.raises(AbsentRevReg):
        await _issue(issuer, holder, schema['id'], cd_id, {'name': 'Alice', 'age': 30})
    rr_def = await issuer.create_rev_reg(cd_id)
    rr_id = rr_def['id']
    assert rr_id == rev_reg_id(cd_id, 0)
    assert rr_def['maximumCredentialCount'] == 8
    assert [frame['version'] for frame in await verifier.get_rev_reg_deltas(rr_id)] == [0]
    print('\n\n== 3 == Created cred def {} and rev reg {}'.format(cd_id, rr_id))

    proposal = await holder.create_cred_proposal(issuer.did, schema['id'])
    offer = await issuer.create_cred_offer(proposal, cd_id)
    assert offer['subject'] == holder.did
    with pytest.raises(ProtocolError):
        await issuer.create_cred_offer(proposal, cd_id)  # one offer per proposal
    request = await holder.create_cred_req(offer, values={'name': 'Alice', 'age': 30})
    with pytest.raises(BadAttribute):
        await issuer.create_cred(request, {'age': 30})
    with pytest.raises(BadAttribute):
        await issuer.create_cred(request, {'name': 'Alice', 'age': 30, 'height': 170})
    (credential, witness) = await issuer.create_cred(request)
    with pytest.raises(ProtocolError):
        await issuer.create_cred(request)  # offer nonce is spent
    assert credential['credentialSubject'] == {
        'id': holder.did,
        'data': {
            'name': 'Alice',
            'age': '30',
            'country': 'null'
        }
    }
    assert credential['proof']['revocationRegistryDefinition'] == rr_id
    assert credential['proof']['revocationId'] == 1
    assert witness['revRegId'] == rr_id and witness['version'] == 1
    cred_id = await holder.store_cred(credential, witness)
    with pytest.raises(ProtocolError):
        await holder.store_cred(credential, witness)  # request metadata is spent
    assert await holder.get_cred_ids() == [cred_id]
    assert await holder.get_cred_ids({'cred_def_id': cd_id, 'rev_id': '1'}) == [cred_id]
    assert await holder.get_cred_ids({'schema_id': 'no-such-schema'}) == []
    assert (await holder.get_cred(cred_id))['witness'] == witness
    with pytest.raises(AbsentCred):
        await holder.get_cred('no-such-cred')
    print('\n\n== 4 == Issued and stored credential: {}'.format(ppjson(credential['credentialSubject'])))

    proof_req = await verifier.create_proof_req([{
        'schema': schema['id'],
        'revealedAttributes': ['name'],
        'predicates': [{'attribute': 'age', 'type': '>=', 'value': 18}]
    }], holder.did)
    assert proof_req['request']['nonce'] == proof_req['nonce']
    assert len(proof_req['request']['requested_attributes']) == 1
    assert all(reft.startswith('0_age_GE_') for reft in proof_req['request']['requested_predicates'])
    presentation = await holder.create_proof(proof_req, [cred_id])
    assert presentation['verifiableCredential'][0]['credentialSubject']['data'] == {'name': 'Alice'}
    assert presentation['verifiableCredential'][0]['revocationRegistryDefinition'] == rr_id
    print('\n\n== 5 == Created presentation on proof request {}'.format(proof_req['id']))

    bad_req = deepcopy(proof_req)
    bad_req['subProofRequests'][0]['revealedAttributes'].append('height')
    with pytest.raises(ValidationError):
        await verifier.verify_proof(presentation, bad_req)
    assert await verifier.verify_proof(presentation, proof_req)
    with pytest.raises(VerificationError):
        await verifier.verify_proof(presentation, proof_req)  # nonce is spent
    print('\n\n== 6 == Presentation verifies once; bad request does not spend nonce')

    proof_req = await verifier.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['name', 'age']}])
    presentation = await holder.create_proof(proof_req, [cred_id])
    forged = deepcopy(presentation)
    forged['verifiableCredential'][0]['credentialSubject']['data']['name'] = 'Mallory'
    with pytest.raises(VerificationError):
        await verifier.verify_proof(forged, proof_req)

    proof_req = await verifier.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['name']}])
    presentation = await holder.create_proof(proof_req, [cred_id])
    forged = deepcopy(presentation)
    for attr in forged['proof']['requested_proof']['revealed_attrs'].values():
        attr['raw'] = 'Mallory'
    forged['verifiableCredential'][0]['credentialSubject']['data']['name'] = 'Mallory'
    with pytest.raises(VerificationError):
        await verifier.verify_proof(forged, proof_req)
    print('\n\n== 7 == Forged revealed values do not verify')

    with pytest.raises(ValidationError):
        await verifier.create_proof_req([])
    with pytest.raises(BadIdentifier):
        await verifier.create_proof_req([{'schema': 'not-a-schema-id'}])
    with pytest.raises(ValidationError):
        await verifier.create_proof_req([{
            'schema': schema['id'],
            'predicates': [{'attribute': 'age', 'type': '!=', 'value': 18}]
        }])
    with pytest.raises(ValidationError):
        await verifier.create_proof_req([{
            'schema': schema['id'],
            'predicates': [{'attribute': 'age', 'type': '>=', 'value': '18'}]
        }])
    other_req = await verifier.create_proof_req([{'schema': schema['id']}], verifier.did)
    with pytest.raises(ProtocolError):
        await holder.create_proof(other_req, [cred_id])  # request is for another prover
    print('\n\n== 8 == Bad proof requests raise')

    await _close_anchors(issuer, holder, verifier)


@pytest.mark.asyncio
async def test_revocation(ledger, dir_tails, seeds):
    print(Ink.YELLOW('\n\n== Testing Revocation and Witnesses =='))

    (issuer, holder, verifier) = await _open_anchors(ledger, dir_tails, seeds, {'rr-size-default': 4})

    schema = await issuer.create_schema('resident', ['name', 'age', 'country'])
    cd_id = (await issuer.create_cred_def(schema['id']))['id']
    rr_id = (await issuer.create_rev_reg(cd_id))['id']

    (cred_1, witness_1, cred_id_1) = await _issue(
        issuer,
        holder,
        schema['id'],
        cd_id,
        {'name': 'Alice', 'age': 30, 'country': 'CA'})
    (cred_2, witness_2, cred_id_2) = await _issue(
        issuer,
        holder,
        schema['id'],
        cd_id,
        {'name': 'Bob', 'age': 16, 'country': 'CA'})
    assert (cred_1['proof']['revocationId'], cred_2['proof']['revocationId']) == (1, 2)
    assert (witness_1['version'], witness_2['version']) == (1, 2)
    print('\n\n== 1 == Issued credentials #1 and #2 on {}'.format(rr_id))

    sub_reqs = [{
        'schema': schema['id'],
        'revealedAttributes': ['name'],
        'predicates': [{'attribute': 'age', 'type': '>=', 'value': 18}]
    }]
    proof_req = await verifier.create_proof_req(sub_reqs)
    with pytest.raises(StaleWitnessError) as x_stale:
        await holder.create_proof(proof_req, [cred_id_1])
    assert (x_stale.value.rr_id, x_stale.value.version, x_stale.value.latest) == (rr_id, 1, 2)
    refreshed = await holder.refresh_witness(witness_1)
    assert refreshed['version'] == 2
    assert await holder.refresh_witness(refreshed) == refreshed
    assert (await holder.get_cred(cred_id_1))['witness'] == refreshed
    presentation = await holder.create_proof(proof_req, [cred_id_1])
    assert await verifier.verify_proof(presentation, proof_req)
    print('\n\n== 2 == Stale witness raises, refreshes, and proves')

    entry = await issuer.revoke_cred(rr_id, 1)
    assert entry['version'] == 3 and entry['revoked'] == [1]
    again = await issuer.update_rev_reg(rr_id, [1])
    assert again == entry
    assert len(await verifier.get_rev_reg_deltas(rr_id)) == 4
    with pytest.raises(ValidationError):
        await issuer.update_rev_reg(rr_id, [3])  # not issued
    with pytest.raises(ValidationError):
        await issuer.update_rev_reg(rr_id, [5])  # out of range
    with pytest.raises(ValidationError):
        await issuer.update_rev_reg(rr_id, [])
    print('\n\n== 3 == Revoked #1 at version {}; revocation is idempotent'.format(entry['version']))

    proof_req = await verifier.create_proof_req(sub_reqs)
    presentation = await holder.create_proof(proof_req, [cred_id_1])  # revoked: presents at old witness version
    with pytest.raises(VerificationError):
        await verifier.verify_proof(presentation, proof_req)
    print('\n\n== 4 == Revoked credential #1 does not verify')

    age_req = await verifier.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['name', 'age']}])
    with pytest.raises(StaleWitnessError):
        await holder.create_proof(age_req, [cred_id_2])  # revocation of #1 moved the accumulator
    witness_2 = await holder.refresh_witness(witness_2)
    assert witness_2['version'] == 3
    presentation = await holder.create_proof(age_req, [cred_id_2])
    assert presentation['verifiableCredential'][0]['credentialSubject']['data'] == {'name': 'Bob', 'age': '16'}
    assert await verifier.verify_proof(presentation, age_req)
    print('\n\n== 5 == Unrevoked credential #2 proves after witness refresh')

    created = await holder.create_witness(cred_id_2)
    assert created['version'] == 3 and created['revocationId'] == 2
    print('\n\n== 6 == Witness created from delta log matches latest version')

    await _close_anchors(issuer, holder, verifier)


@pytest.mark.asyncio
async def test_capacity(ledger, dir_tails, seeds):
    print(Ink.YELLOW('\n\n== Testing Revocation Registry Capacity =='))

    (issuer, holder, verifier) = await _open_anchors(ledger, dir_tails, seeds, {'rr-size-default': 2})

    schema = await issuer.create_schema('member', ['name'])
    cd_id = (await issuer.create_cred_def(schema['id']))['id']
    with pytest.raises(ValidationError):
        await issuer.create_rev_reg(cd_id, 0)
    rr_id = (await issuer.create_rev_reg(cd_id))['id']

    for name in ('Alice', 'Bob'):
        await _issue(issuer, holder, schema['id'], cd_id, {'name': name})
    with pytest.raises(CapacityError):
        await _issue(issuer, holder, schema['id'], cd_id, {'name': 'Carol'})
    print('\n\n== 1 == Full rev reg {} raises CapacityError'.format(rr_id))

    rolling = await Issuer(
        issuer.wallet,
        ledger,
        config={'rr-size-default': 2, 'rr-auto-roll': True, 'dir-tails': dir_tails['issuer']}).open()
    with pytest.raises(CapacityError):
        await _issue(rolling, holder, schema['id'], cd_id, {'name': 'Carol'}, rr_id)  # explicit rev reg: no roll
    (credential, witness, cred_id) = await _issue(rolling, holder, schema['id'], cd_id, {'name': 'Carol'})
    assert credential['proof']['revocationRegistryDefinition'] == rev_reg_id(cd_id, 1)
    assert credential['proof']['revocationId'] == 1
    assert Tails.current_rev_reg_id(dir_tails['issuer'], cd_id) == rev_reg_id(cd_id, 1)
    assert (await rolling.get_rev_reg_def(rev_reg_id(cd_id, 1)))['maximumCredentialCount'] == 2
    print('\n\n== 2 == Auto-roll issues into new rev reg {}'.format(credential['proof']['revocationRegistryDefinition']))

    proof_req = await verifier.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['name']}])
    presentation = await holder.create_proof(proof_req, [cred_id])
    assert await verifier.verify_proof(presentation, proof_req)
    print('\n\n== 3 == Credential on rolled rev reg proves')

    await rolling.close()
    await _close_anchors(issuer, holder, verifier)


@pytest.mark.asyncio
async def test_concurrency(ledger, dir_tails, seeds):
    print(Ink.YELLOW('\n\n== Testing Concurrent Issuance and Revocation =='))

    (issuer, holder, verifier) = await _open_anchors(
        ledger,
        dir_tails,
        seeds,
        {'rr-size-default': 4, 'rr-auto-roll': True})

    schema = await issuer.create_schema('ticket', ['seat'])
    cd_id = (await issuer.create_cred_def(schema['id']))['id']
    rr_id = (await issuer.create_rev_reg(cd_id))['id']

    requests = [await _request(issuer, holder, schema['id'], cd_id, {'seat': seat}) for seat in range(4)]
    issued = await asyncio.gather(*[issuer.create_cred(request) for request in requests])
    assert {credential['proof']['revocationRegistryDefinition'] for (credential, _) in issued} == {rr_id}
    assert sorted(credential['proof']['revocationId'] for (credential, _) in issued) == [1, 2, 3, 4]
    print('\n\n== 1 == Concurrent issuance allocates distinct indices in {}'.format(rr_id))

    requests = [await _request(issuer, holder, schema['id'], cd_id, {'seat': seat}) for seat in range(4, 7)]
    results = await asyncio.gather(
        *[issuer.create_cred(request) for request in requests],
        issuer.revoke_cred(rr_id, 1),
        issuer.revoke_cred(rr_id, 2))
    rolled = [credential for (credential, _) in results[:3]]
    assert {credential['proof']['revocationRegistryDefinition'] for credential in rolled} == {rev_reg_id(cd_id, 1)}
    assert sorted(credential['proof']['revocationId'] for credential in rolled) == [1, 2, 3]
    assert Tails.current_rev_reg_id(dir_tails['issuer'], cd_id) == rev_reg_id(cd_id, 1)
    print('\n\n== 2 == Concurrent issuances on full rev reg roll over once, to {}'.format(rev_reg_id(cd_id, 1)))

    frames = await verifier.get_rev_reg_deltas(rr_id)
    assert [frame['version'] for frame in frames] == list(range(7))
    assert all(frames[i]['timestamp'] < frames[i + 1]['timestamp'] for i in range(len(frames) - 1))
    issued_ids = [index for frame in frames for index in frame['issued']]
    assert sorted(issued_ids) == [1, 2, 3, 4]
    assert sorted(index for frame in frames for index in frame['revoked']) == [1, 2]
    assert await ledger.latest_rev_reg_version(rev_reg_id(cd_id, 1)) == 3
    print('\n\n== 3 == Delta log on {} has no gaps and stays within capacity'.format(rr_id))

    rr_ids = await asyncio.gather(*[issuer.create_rev_reg(cd_id) for _ in range(2)])
    assert sorted(rr_def['id'] for rr_def in rr_ids) == [rev_reg_id(cd_id, 2), rev_reg_id(cd_id, 3)]
    print('\n\n== 4 == Concurrent rev reg creation takes distinct tags')

    await _close_anchors(issuer, holder, verifier)


@pytest.mark.asyncio
async def test_nonce_expiry(ledger, dir_tails, seeds, monkeypatch):
    print(Ink.YELLOW('\n\n== Testing Proof Request Nonce Expiry =='))

    (issuer, holder, verifier) = await _open_anchors(ledger, dir_tails, seeds, None, {'nonce-ttl': 60})

    schema = await issuer.create_schema('pass', ['holder'])
    cd_id = (await issuer.create_cred_def(schema['id'], False))['id']
    (_, _, cred_id) = await _issue(issuer, holder, schema['id'], cd_id, {'holder': 'Alice'})

    stale_req = await verifier.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['holder']}])
    stale = await holder.create_proof(stale_req, [cred_id])
    fresh_req = await verifier.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['holder']}])
    fresh = await holder.create_proof(fresh_req, [cred_id])
    print('\n\n== 1 == Created presentations on two proof requests')

    later = time.time() + 120
    monkeypatch.setattr('von_zkp.anchor.verifier.time', lambda: later)
    with pytest.raises(VerificationError):
        await verifier.verify_proof(stale, stale_req)
    with pytest.raises(VerificationError):
        await verifier.verify_proof(fresh, fresh_req)
    print('\n\n== 2 == Presentations on expired proof requests do not verify')

    fresh_req = await verifier.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['holder']}])
    fresh = await holder.create_proof(fresh_req, [cred_id])
    assert await verifier.verify_proof(fresh, fresh_req)
    with pytest.raises(VerificationError):
        await verifier.verify_proof(fresh, fresh_req)

    other = await Verifier(verifier.wallet, ledger).open()
    foreign_req = await other.create_proof_req([{'schema': schema['id'], 'revealedAttributes': ['holder']}])
    foreign = await holder.create_proof(foreign_req, [cred_id])
    with pytest.raises(VerificationError):
        await verifier.verify_proof(foreign, foreign_req)
    assert await other.verify_proof(foreign, foreign_req)
    print('\n\n== 3 == Verifier accepts only its own pending nonces')

    await other.close()
    await _close_anchors(issuer, holder, verifier)


@pytest.mark.asyncio
async def test_irrevocable(ledger, dir_tails, seeds):
    print(Ink.YELLOW('\n\n== Testing Irrevocable Credentials =='))

    (issuer, holder, verifier) = await _open_anchors(
        ledger,
        dir_tails,
        seeds,
        {'rr-auto-roll': True, 'rr-size-default': 4},
        {'consume-nonces': False})

    license_schema = await issuer.create_schema('license', ['name', 'class'])
    lcd_id = (await issuer.create_cred_def(license_schema['id'], revocation=False))['id']
    with pytest.raises(ValidationError):
        await issuer.create_rev_reg(lcd_id)
    (license_cred, witness, license_id) = await _issue(
        issuer,
        holder,
        license_schema['id'],
        lcd_id,
        {'name': 'Alice', 'class': 'G'})
    assert witness is None
    assert license_cred['proof']['revocationRegistryDefinition'] is None
    assert (await holder.get_cred(license_id))['witness'] is None
    with pytest.raises(ValidationError):
        await holder.create_witness(license_id)
    print('\n\n== 1 == Irrevocable credential issued without witness')

    person_schema = await issuer.create_schema('citizen', ['name', 'age'])
    pcd_id = (await issuer.create_cred_def(person_schema['id']))['id']
    (person_cred, _, person_id) = await _issue(  # auto-roll creates first rev reg
        issuer,
        holder,
        person_schema['id'],
        pcd_id,
        {'name': 'Alice', 'age': 42})
    assert person_cred['proof']['revocationRegistryDefinition'] == rev_reg_id(pcd_id, 0)
    print('\n\n== 2 == Auto-roll created first rev reg on demand')

    proof_req = await verifier.create_proof_req([
        {
            'schema': license_schema['id'],
            'revealedAttributes': ['class']
        },
        {
            'schema': person_schema['id'],
            'revealedAttributes': ['name'],
            'predicates': [{'attribute': 'age', 'type': '>', 'value': 21}]
        }
    ])
    presentation = await holder.create_proof(proof_req, [license_id, person_id])
    assert [vc['credentialSubject']['data'] for vc in presentation['verifiableCredential']] == [
        {'class': 'G'},
        {'name': 'Alice'}
    ]
    assert [vc['revocationRegistryDefinition'] for vc in presentation['verifiableCredential']] == [
        None,
        rev_reg_id(pcd_id, 0)
    ]
    assert await verifier.verify_proof(presentation, proof_req)
    assert await verifier.verify_proof(presentation, proof_req)  # nonces not consumed by configuration
    print('\n\n== 3 == Combined presentation on revocable and irrevocable credentials verifies')

    with pytest.raises(AbsentCred):
        await holder.create_proof(
            await verifier.create_proof_req([{'schema': person_schema['id']}, {'schema': license_schema['id']}]),
            [person_id])
    revealed = presentation['proof']['requested_proof']['revealed_attrs']
    assert all(attr['encoded'] == encode(attr['raw']) for attr in revealed.values())
    print('\n\n== 4 == Presentation needs a credential for every sub-request')

    await _close_anchors(issuer, holder, verifier)
