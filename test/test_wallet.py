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

from von_zkp.error import AbsentMasterSecret, AbsentRecord, BadIdentifier, ExtantRecord, ValidationError, WalletState
from von_zkp.frill import Ink
from von_zkp.util import ok_did
from von_zkp.wallet import DIDInfo, StorageRecord, Wallet


@pytest.mark.asyncio
async def test_wallet_dids(seed_issuer, seed_holder):
    print(Ink.YELLOW('\n\n== Testing Wallet DIDs and Signatures =='))

    wallet = Wallet('test-wallet')
    with pytest.raises(WalletState):
        await wallet.create_local_did(seed_issuer)
    print('\n\n== 1 == Closed wallet rejects operations')

    async with wallet:
        assert wallet.opened
        with pytest.raises(WalletState):
            await wallet.open()

        info = await wallet.create_local_did(seed_issuer, {'role': 'issuer'})
        assert ok_did(info.did)
        assert wallet.did == info.did
        assert wallet.verkey == info.verkey
        assert info.metadata == {'role': 'issuer'}
        assert await wallet.get_local_did(info.did) == info
        print('\n\n== 2 == Created anchor DID {} on seed'.format(info.did))

        again = await Wallet('another-wallet').open()
        assert (await again.create_local_did(seed_issuer)).did == info.did  # seed derives DID deterministically
        await again.close()

        other = await wallet.create_local_did(seed_holder)
        assert other.did != info.did and other.metadata == {}
        assert wallet.did == info.did  # first DID stays anchor DID
        assert isinstance(await wallet.create_local_did(), DIDInfo)
        print('\n\n== 3 == Further local DIDs do not displace anchor DID')

        with pytest.raises(ExtantRecord):
            await wallet.create_local_did(seed_issuer)
        with pytest.raises(ValidationError):
            await wallet.create_local_did('too-short')
        with pytest.raises(BadIdentifier):
            await wallet.get_local_did('not-a-did')
        with pytest.raises(AbsentRecord):
            await wallet.get_local_did('Q4zqM7aXqm7gDQkUVLng9h')
        print('\n\n== 4 == Duplicate DID, bad seed, bad and absent DIDs raise')

        message = b'Hello World'
        signature = await wallet.sign(message)
        assert Wallet.verify(message, signature, info.verkey)
        assert not Wallet.verify(b'Hello Xorld', signature, info.verkey)
        assert not Wallet.verify(message, signature, other.verkey)
        assert Wallet.verify(message, await wallet.sign(message, other.did), other.verkey)
        print('\n\n== 5 == Signatures verify against signer verkey only')

    assert not wallet.opened


@pytest.mark.asyncio
async def test_wallet_secrets_records():
    print(Ink.YELLOW('\n\n== Testing Wallet Master Secrets and Records =='))

    async with Wallet('test-records') as wallet:
        assert not await wallet.has_master_secret('default')
        with pytest.raises(AbsentMasterSecret):
            await wallet.get_master_secret('default')
        await wallet.write_master_secret('default', {'value': {'ms': '1234'}})
        await wallet.write_master_secret('default', {'value': {'ms': '1234'}})  # same value: no-op
        with pytest.raises(ExtantRecord):
            await wallet.write_master_secret('default', {'value': {'ms': '5678'}})
        assert await wallet.has_master_secret('default')
        assert (await wallet.get_master_secret('default')) == {'value': {'ms': '1234'}}
        print('\n\n== 1 == Master secret on label is write-once')

        with pytest.raises(ValidationError):
            StorageRecord('cred', '{}', {'seq': 1})
        rec = await wallet.write_non_secret(StorageRecord('cred', json.dumps({'a': 1}), {'cd': 'x', 'rr': ''}, 'c1'))
        await wallet.write_non_secret(StorageRecord('cred', json.dumps({'a': 2}), {'cd': 'y', 'rr': ''}, 'c2'))
        assert rec.id == 'c1'
        assert rec.value_json == {'a': 1}
        assert set(await wallet.get_non_secret('cred')) == {'c1', 'c2'}
        assert set(await wallet.get_non_secret('cred', {'cd': 'y'})) == {'c2'}
        assert set(await wallet.get_non_secret('cred', {'rr': ''})) == {'c1', 'c2'}
        assert await wallet.get_non_secret('cred', 'c9') == {}
        assert await wallet.get_non_secret('no-such-type') == {}
        assert (await wallet.get_record('cred', 'c2')).value_json == {'a': 2}
        print('\n\n== 2 == Records search by identifier and by tags')

        rec.value = json.dumps({'a': 3})
        await wallet.write_non_secret(rec)
        assert (await wallet.get_record('cred', 'c1')).value_json == {'a': 3}
        await wallet.delete_non_secret('cred', 'c1')
        await wallet.delete_non_secret('cred', 'c1')  # absent: no-op
        with pytest.raises(AbsentRecord):
            await wallet.get_record('cred', 'c1')
        print('\n\n== 3 == Records replace and delete')

    with pytest.raises(WalletState):
        await wallet.get_non_secret('cred')
