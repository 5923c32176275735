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

from von_zkp.cache import Caches, CRED_DEF_CACHE, REVO_CACHE, RevoCacheEntry, SCHEMA_CACHE
from von_zkp.error import CacheIndex
from von_zkp.frill import Ink
from von_zkp.indytween import SchemaKey
from von_zkp.util import cred_def_id, rev_reg_id, schema_id


@pytest.mark.asyncio
async def test_schema_cache():
    print(Ink.YELLOW('\n\n== Testing Schema Cache =='))
    N = 32
    s_key = []
    schema = []
    for i in range(N):
        s_key.append(
            SchemaKey('Q4zqM7aXqm7gDQkUVLng{:02d}'.format(i).replace('0', 'Q'),
            'schema-{}'.format(i//5),
            '{}'.format(i%5)))
        schema.append({
            'id': schema_id(*s_key[i]),
            'name': s_key[i].name,
            'version': s_key[i].version,
            'seqNo': i + 1,
            'attrNames': ['attr-{}-{}'.format(i, j) for j in range(N)],
            'ver': '1.0'
        })

    for i in range(N):
        if i % 2:
            SCHEMA_CACHE[s_key[i]] = schema[i]
        else:
            SCHEMA_CACHE[schema[i]['seqNo']] = schema[i]

    for i in range(N):
        assert SCHEMA_CACHE.contains(s_key[i])
        assert SCHEMA_CACHE.contains(schema[i]['seqNo'])
        assert SCHEMA_CACHE.contains(schema[i]['id'])
        assert SCHEMA_CACHE[s_key[i]] == SCHEMA_CACHE[schema[i]['seqNo']] == SCHEMA_CACHE[schema[i]['id']]
    print('\n\n== 1 == Schema cache indexes by key, sequence number, and identifier')

    assert len(SCHEMA_CACHE.schemata()) == N
    assert not SCHEMA_CACHE.contains(-1)
    assert not SCHEMA_CACHE.contains('not-a-schema-id')

    with pytest.raises(CacheIndex):
        SCHEMA_CACHE[-1]
    with pytest.raises(CacheIndex):
        SCHEMA_CACHE[1.5]
    with pytest.raises(CacheIndex):
        SCHEMA_CACHE['x'] = schema[0]
    print('\n\n== 2 == Schema cache rejects bad indices')

    SCHEMA_CACHE.clear()
    assert not SCHEMA_CACHE.schemata()
    print('\n\n== 3 == Schema cache clears')


@pytest.mark.asyncio
async def test_revo_cache_entry():
    print(Ink.YELLOW('\n\n== Testing Revocation Cache Entry =='))

    rr_id = rev_reg_id(cred_def_id('LjgpST2rjsoxYegQDRm7EL', 20), 0)
    entry = RevoCacheEntry({'id': rr_id}, None)
    assert entry.rev_reg_def == {'id': rr_id}
    assert entry.tails is None
    assert entry.next_version == 0

    frames = [{'revRegId': rr_id, 'version': v} for v in range(4)]
    entry.extend(frames[:2])
    assert entry.next_version == 2
    entry.extend(frames[1:])  # overlap: skip frames already cached
    assert [f['version'] for f in entry.delta_frames] == [0, 1, 2, 3]
    print('\n\n== 1 == Delta frames extend in version order, skipping overlap')

    with pytest.raises(CacheIndex):
        entry.extend([{'revRegId': rr_id, 'version': 6}])
    assert entry.next_version == 4
    print('\n\n== 2 == Gap in delta frame versions raises CacheIndex')


@pytest.mark.asyncio
async def test_caches_clear():
    print(Ink.YELLOW('\n\n== Testing Cache Clearing =='))

    s_id = schema_id('LjgpST2rjsoxYegQDRm7EL', 'person', '1.0')
    cd_id = cred_def_id('LjgpST2rjsoxYegQDRm7EL', 20)
    rr_id = rev_reg_id(cd_id, 0)
    with SCHEMA_CACHE.lock:
        SCHEMA_CACHE[20] = {'id': s_id, 'seqNo': 20}
    with CRED_DEF_CACHE.lock:
        CRED_DEF_CACHE[cd_id] = {'id': cd_id}
    with REVO_CACHE.lock:
        REVO_CACHE[rr_id] = RevoCacheEntry({'id': rr_id})

    with SCHEMA_CACHE.lock:
        with SCHEMA_CACHE.lock:  # re-entrant
            assert SCHEMA_CACHE.contains(s_id)

    Caches.clear()
    assert not SCHEMA_CACHE.contains(20)
    assert cd_id not in CRED_DEF_CACHE
    assert rr_id not in REVO_CACHE
    print('\n\n== 1 == All caches clear together')
