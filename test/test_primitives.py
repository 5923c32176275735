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



import pytest

from von_zkp.error import CryptoError, ValidationError
from von_zkp.frill import Ink
from von_zkp.indytween import encode
from von_zkp.primitives import CredxPrimitives, RevocationConfig


DID = 'LjgpST2rjsoxYegQDRm7EL'
VALUES = {
    'seat': '12',
    'row': 'C'
}


async def _sign(primitives, schema, cred_def, cred_def_private, key_proof, revocation=None):
    offer = await primitives.create_cred_offer(schema['id'], cred_def, key_proof)
    master_secret = await primitives.create_master_secret()
    (request, metadata) = await primitives.create_cred_req(DID, cred_def, master_secret, 'default', offer)
    (cred, rev_reg, delta) = await primitives.create_cred(
        cred_def,
        cred_def_private,
        offer,
        request,
        VALUES,
        {attr: encode(VALUES[attr]) for attr in VALUES},
        revocation)
    return (cred, rev_reg, delta, metadata, master_secret)


@pytest.mark.asyncio
async def test_credx(tmp_path):
    print(Ink.YELLOW('\n\n== Testing CL Primitives on indy-credx =='))

    primitives = CredxPrimitives()
    schema = dict(await primitives.create_schema(DID, 'ticket', '1.0', ['seat', 'row']), seqNo=17)
    assert sorted(schema['attrNames']) == ['row', 'seat']

    (cred_def, cred_def_private, key_proof) = await primitives.create_cred_def(DID, schema, 'tag', False)
    (cred, rev_reg, delta, metadata, master_secret) = await _sign(
        primitives,
        schema,
        cred_def,
        cred_def_private,
        key_proof)
    assert rev_reg is None and delta is None
    assert cred['values']['seat']['raw'] == '12'
    processed = await primitives.process_cred(cred, metadata, master_secret, cred_def)
    assert processed['values'] == cred['values']
    print('\n\n== 1 == Irrevocable credential signs without registry or delta')

    (cred_def, cred_def_private, key_proof) = await primitives.create_cred_def(DID, schema, 'rev', True)
    (rr_def, rr_def_private, rev_reg, _) = await primitives.create_rev_reg(DID, cred_def, '0', 4, str(tmp_path))
    (cred, rev_reg_issued, delta, metadata, master_secret) = await _sign(
        primitives,
        schema,
        cred_def,
        cred_def_private,
        key_proof,
        RevocationConfig(rr_def, rr_def_private, rev_reg, 1, []))
    assert rev_reg_issued and delta
    await primitives.process_cred(cred, metadata, master_secret, cred_def, rr_def)
    print('\n\n== 2 == Revocable credential signs on index 1')

    (rev_reg_revoked, delta) = await primitives.update_rev_reg(cred_def, rr_def, rr_def_private, rev_reg_issued, [1])
    assert rev_reg_revoked['value']['accum'] != rev_reg_issued['value']['accum']
    assert delta['value']['revoked'] == [1]
    print('\n\n== 3 == Revocation updates accumulator')

    with pytest.raises(CryptoError):
        await primitives.create_cred_offer(schema['id'], {'not': 'a cred def'}, key_proof)
    with pytest.raises(CryptoError):
        await primitives.update_rev_reg(cred_def, rr_def, {'not': 'a private key'}, rev_reg_revoked, [1])
    with pytest.raises(CryptoError):
        await primitives.update_witness({'not': 'a witness'}, rr_def, delta, 1, 1, str(tmp_path))
    print('\n\n== 4 == Library failures on bad input raise CryptoError')

    with pytest.raises(ValidationError):
        await primitives.generate_safe_prime(256)
    print('\n\n== 5 == Short safe prime raises ValidationError')
